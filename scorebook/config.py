"""
Application configuration from environment variables
"""
import logging
import os
from dotenv import load_dotenv

load_dotenv()


def _get_env_int(name: str, default: int) -> int:
    raw = os.getenv(name, str(default)).strip()
    try:
        return int(raw)
    except ValueError:
        return default


def _get_env_float(name: str, default: float) -> float:
    raw = os.getenv(name, str(default)).strip()
    try:
        return float(raw)
    except ValueError:
        return default


def _get_env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


class Settings:
    """Settings from environment variables"""

    # Database
    DATABASE_URL: str = os.getenv("DATABASE_URL", f"sqlite:///{os.getenv('DATABASE_PATH', 'scorebook.db')}")

    # JWT settings
    JWT_SECRET_KEY: str = os.getenv("JWT_SECRET_KEY", "change-me-in-production")
    JWT_ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = _get_env_int("ACCESS_TOKEN_EXPIRE_MINUTES", 60)

    # Approvals
    DEFAULT_APPROVAL_TIMEOUT_MINUTES: int = _get_env_int("DEFAULT_APPROVAL_TIMEOUT_MINUTES", 5)
    MIN_APPROVAL_TIMEOUT_MINUTES: int = 1
    MAX_APPROVAL_TIMEOUT_MINUTES: int = 60
    # When true the requester of a FINAL_SCORE counts as having signed it
    FINAL_SCORE_COUNTS_REQUESTER: bool = _get_env_bool("FINAL_SCORE_COUNTS_REQUESTER", True)

    # Transactions
    BALL_TRANSACTION_TIMEOUT_SECONDS: float = _get_env_float("BALL_TRANSACTION_TIMEOUT_SECONDS", 20.0)
    APPROVAL_TRANSACTION_TIMEOUT_SECONDS: float = _get_env_float("APPROVAL_TRANSACTION_TIMEOUT_SECONDS", 15.0)
    DB_MAX_RETRIES: int = _get_env_int("DB_MAX_RETRIES", 2)
    DB_RETRY_INITIAL_DELAY: float = _get_env_float("DB_RETRY_INITIAL_DELAY", 1.0)
    DB_RETRY_MAX_DELAY: float = _get_env_float("DB_RETRY_MAX_DELAY", 5.0)

    # Logging
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()

    # Comma-separated extra CORS origins
    CORS_ORIGINS: str = os.getenv("CORS_ORIGINS", "")


settings = Settings()


def configure_logging(level: str = None):
    """Configure root logging once for the process"""
    logging.basicConfig(
        level=getattr(logging, (level or settings.LOG_LEVEL), logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

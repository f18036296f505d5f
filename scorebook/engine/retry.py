"""
Retry with exponential backoff for transient database failures
"""
import logging
import time
from typing import Callable, TypeVar

from sqlalchemy.exc import DBAPIError, OperationalError

from scorebook.errors import TransientStorageError

logger = logging.getLogger(__name__)

T = TypeVar("T")

TRANSIENT_MESSAGES = (
    "database is locked",
    "deadlock",
    "could not serialize",
    "lock timeout",
    "statement timeout",
    "canceling statement due to",
    "connection timeout",
    "connection closed",
    "server closed the connection",
    "can't reach database server",
    "could not connect",
)


def is_transient_error(error: BaseException) -> bool:
    """Lock contention, timeouts and dropped connections are worth another try"""
    if isinstance(error, TransientStorageError):
        return True
    if isinstance(error, DBAPIError) and error.connection_invalidated:
        return True
    if isinstance(error, OperationalError):
        message = str(error).lower()
        return any(fragment in message for fragment in TRANSIENT_MESSAGES)
    return False


def with_retry(
    operation: Callable[[], T],
    max_retries: int = 2,
    initial_delay: float = 1.0,
    max_delay: float = 5.0,
    backoff_multiplier: float = 2.0,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """
    Run `operation`, retrying transient storage errors up to `max_retries` times.

    Any other error propagates immediately. When retries run out the last error
    is surfaced as TransientStorageError.
    """
    delay = initial_delay
    for attempt in range(max_retries + 1):
        try:
            return operation()
        except Exception as error:
            if not is_transient_error(error):
                raise
            if attempt == max_retries:
                raise TransientStorageError(
                    "The database is busy, please try again"
                ) from error
            logger.warning(
                f"Database operation failed (attempt {attempt + 1}/{max_retries + 1}), "
                f"retrying in {delay:.1f}s: {error}"
            )
            sleep(delay)
            delay = min(delay * backoff_multiplier, max_delay)

"""
User accounts and per-captain approval settings
"""
import enum
import uuid
from typing import Optional
from sqlalchemy import String, Integer, Boolean, DateTime, ForeignKey, Enum
from sqlalchemy.orm import Mapped, mapped_column
from datetime import datetime
from scorebook.database import Base


class UserRole(enum.Enum):
    PLAYER = "PLAYER"
    CAPTAIN = "CAPTAIN"
    ADMIN = "ADMIN"


class User(Base):
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    email: Mapped[str] = mapped_column(String(255), unique=True, index=True)
    full_name: Mapped[str] = mapped_column(String(255))
    role: Mapped[UserRole] = mapped_column(Enum(UserRole), default=UserRole.PLAYER)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    def __repr__(self):
        return f"<User '{self.email}'>"


class CaptainSettings(Base):
    """
    How a captain's approval requests behave when the opponent does not answer.
    Missing rows mean defaults (auto-approve after 5 minutes).
    """
    __tablename__ = "captain_settings"

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[str] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), unique=True)
    auto_approve_enabled: Mapped[bool] = mapped_column(Boolean, default=True)
    timeout_minutes: Mapped[int] = mapped_column(Integer, default=5)
    notify_on_auto_approve: Mapped[bool] = mapped_column(Boolean, default=True)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f"<CaptainSettings {self.user_id} auto={self.auto_approve_enabled} {self.timeout_minutes}m>"

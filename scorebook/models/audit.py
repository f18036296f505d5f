import enum
from typing import Optional
from sqlalchemy import String, Integer, ForeignKey, Enum, DateTime, Boolean, JSON
from sqlalchemy.orm import Mapped, mapped_column
from datetime import datetime
from scorebook.database import Base
from scorebook.models.approval import ApprovalType


class AuditAction(enum.Enum):
    APPROVAL_REQUESTED = "APPROVAL_REQUESTED"
    APPROVAL_GRANTED = "APPROVAL_GRANTED"
    APPROVAL_REJECTED = "APPROVAL_REJECTED"
    APPROVAL_AUTO_APPROVED = "APPROVAL_AUTO_APPROVED"
    APPROVAL_CANCELLED = "APPROVAL_CANCELLED"
    BALL_ENTERED = "BALL_ENTERED"
    BALL_DELETED = "BALL_DELETED"


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id: Mapped[int] = mapped_column(primary_key=True)
    match_id: Mapped[Optional[str]] = mapped_column(ForeignKey("matches.id", ondelete="CASCADE"), nullable=True, index=True)
    action: Mapped[AuditAction] = mapped_column(Enum(AuditAction))
    performed_by: Mapped[str] = mapped_column(String(36))
    previous_state: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    new_state: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    approval_type: Mapped[Optional[ApprovalType]] = mapped_column(Enum(ApprovalType), nullable=True)
    was_auto_approved: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)
    ball_number: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    over_number: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    performed_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    def __repr__(self):
        return f"<AuditLog {self.action.value} by {self.performed_by}>"

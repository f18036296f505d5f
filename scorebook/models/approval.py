"""
Captain approval requests that gate match status transitions
"""
import enum
import uuid
from typing import Optional
from sqlalchemy import String, ForeignKey, Enum, DateTime, Boolean, Index, text
from sqlalchemy.orm import Mapped, mapped_column, relationship
from datetime import datetime
from scorebook.database import Base


class ApprovalType(enum.Enum):
    START_SCORING = "START_SCORING"
    START_SECOND_INNINGS = "START_SECOND_INNINGS"
    FINAL_SCORE = "FINAL_SCORE"


class ApprovalStatus(enum.Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    CANCELLED = "CANCELLED"
    AUTO_APPROVED = "AUTO_APPROVED"
    EXPIRED = "EXPIRED"


class ApprovalRequest(Base):
    __tablename__ = "approval_requests"
    __table_args__ = (
        # At most one PENDING request per (match, type)
        Index(
            "uq_approval_pending_per_type", "match_id", "type", unique=True,
            sqlite_where=text("status = 'PENDING'"),
            postgresql_where=text("status = 'PENDING'"),
        ),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    match_id: Mapped[str] = mapped_column(ForeignKey("matches.id", ondelete="CASCADE"), index=True)
    match: Mapped["Match"] = relationship("Match")

    type: Mapped[ApprovalType] = mapped_column(Enum(ApprovalType))
    requested_by: Mapped[str] = mapped_column(ForeignKey("users.id"))
    requester: Mapped["User"] = relationship("User", foreign_keys=[requested_by])
    status: Mapped[ApprovalStatus] = mapped_column(Enum(ApprovalStatus), default=ApprovalStatus.PENDING)

    approved_by: Mapped[Optional[str]] = mapped_column(ForeignKey("users.id"), nullable=True)
    requested_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    approved_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)  # resolution time

    auto_approve_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    auto_approve_enabled: Mapped[bool] = mapped_column(Boolean, default=True)
    was_auto_approved: Mapped[bool] = mapped_column(Boolean, default=False)

    def __repr__(self):
        return f"<ApprovalRequest {self.type.value} {self.status.value} on {self.match_id}>"


class MatchStartApproval(Base):
    """
    Legacy single-step approval: SCHEDULED -> LIVE once the opponent agrees.
    Kept alongside ApprovalRequest for clients still on the old flow.
    """
    __tablename__ = "match_start_approvals"
    __table_args__ = (
        Index(
            "uq_match_start_pending", "match_id", unique=True,
            sqlite_where=text("status = 'PENDING'"),
            postgresql_where=text("status = 'PENDING'"),
        ),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    match_id: Mapped[str] = mapped_column(ForeignKey("matches.id", ondelete="CASCADE"), index=True)
    match: Mapped["Match"] = relationship("Match")

    requested_by: Mapped[str] = mapped_column(ForeignKey("users.id"))
    requester: Mapped["User"] = relationship("User", foreign_keys=[requested_by])
    status: Mapped[ApprovalStatus] = mapped_column(Enum(ApprovalStatus), default=ApprovalStatus.PENDING)
    approved_by: Mapped[Optional[str]] = mapped_column(ForeignKey("users.id"), nullable=True)
    requested_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    responded_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    def __repr__(self):
        return f"<MatchStartApproval {self.status.value} on {self.match_id}>"

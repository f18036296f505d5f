import enum
import uuid
from typing import Optional, List
from sqlalchemy import String, ForeignKey, Enum, DateTime, Integer, Float, Boolean, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship
from datetime import datetime
from scorebook.database import Base


class MatchStatus(enum.Enum):
    SCHEDULED = "SCHEDULED"
    SCORING_PENDING = "SCORING_PENDING"
    FIRST_INNINGS = "FIRST_INNINGS"
    SECOND_INNINGS_PENDING = "SECOND_INNINGS_PENDING"
    SECOND_INNINGS = "SECOND_INNINGS"
    FINAL_PENDING = "FINAL_PENDING"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    LIVE = "LIVE"  # Legacy single-step start approval


TERMINAL_STATUSES = {MatchStatus.COMPLETED, MatchStatus.CANCELLED}

# Status in which deliveries may be recorded, and for which innings
SCORING_STATUS_INNINGS = {
    MatchStatus.FIRST_INNINGS: 1,
    MatchStatus.SECOND_INNINGS: 2,
}


class Match(Base):
    __tablename__ = "matches"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))

    # Teams - team A bats first, team B bats second
    team_a_id: Mapped[str] = mapped_column(ForeignKey("teams.id"))
    team_b_id: Mapped[str] = mapped_column(ForeignKey("teams.id"))
    team_a: Mapped["Team"] = relationship("Team", foreign_keys=[team_a_id])
    team_b: Mapped["Team"] = relationship("Team", foreign_keys=[team_b_id])

    # Match info
    venue: Mapped[str] = mapped_column(String(200), default="")
    match_date: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    status: Mapped[MatchStatus] = mapped_column(Enum(MatchStatus), default=MatchStatus.SCHEDULED)

    # Score snapshot, recomputed from the ball ledger after every change
    team_a_score: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    team_a_wickets: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    team_a_overs: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    team_b_score: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    team_b_wickets: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    team_b_overs: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    # Approval bookkeeping
    scoring_start_approved_by: Mapped[Optional[str]] = mapped_column(ForeignKey("users.id"), nullable=True)
    scoring_start_approved_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    second_innings_approved_by: Mapped[Optional[str]] = mapped_column(ForeignKey("users.id"), nullable=True)
    second_innings_approved_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    first_innings_complete: Mapped[bool] = mapped_column(Boolean, default=False)
    second_innings_complete: Mapped[bool] = mapped_column(Boolean, default=False)
    final_score_approved_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    # Result
    winner_team_id: Mapped[Optional[str]] = mapped_column(ForeignKey("teams.id"), nullable=True)

    final_score_approvals: Mapped[List["FinalScoreApproval"]] = relationship(
        "FinalScoreApproval", back_populates="match", cascade="all, delete-orphan"
    )

    @property
    def final_score_approver_ids(self) -> set[str]:
        return {a.approver_id for a in self.final_score_approvals}

    def batting_team_id(self, innings: int) -> str:
        return self.team_a_id if innings == 1 else self.team_b_id

    def bowling_team_id(self, innings: int) -> str:
        return self.team_b_id if innings == 1 else self.team_a_id

    def set_innings_score(self, innings: int, runs: int, wickets: int, overs: float):
        if innings == 1:
            self.team_a_score, self.team_a_wickets, self.team_a_overs = runs, wickets, overs
        else:
            self.team_b_score, self.team_b_wickets, self.team_b_overs = runs, wickets, overs

    def get_innings_score(self, innings: int) -> tuple:
        if innings == 1:
            return self.team_a_score, self.team_a_wickets, self.team_a_overs
        return self.team_b_score, self.team_b_wickets, self.team_b_overs

    def __repr__(self):
        return f"<Match {self.team_a_id} vs {self.team_b_id} ({self.status.value})>"


class FinalScoreApproval(Base):
    """One captain's signature on the final score of a match"""
    __tablename__ = "final_score_approvals"
    __table_args__ = (UniqueConstraint("match_id", "approver_id", name="uq_final_score_approver"),)

    id: Mapped[int] = mapped_column(primary_key=True)
    match_id: Mapped[str] = mapped_column(ForeignKey("matches.id", ondelete="CASCADE"))
    approver_id: Mapped[str] = mapped_column(ForeignKey("users.id"))
    approved_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    match: Mapped["Match"] = relationship("Match", back_populates="final_score_approvals")

    def __repr__(self):
        return f"<FinalScoreApproval {self.approver_id} on {self.match_id}>"

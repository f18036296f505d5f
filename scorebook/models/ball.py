import enum
import uuid
from typing import Optional
from sqlalchemy import String, Integer, ForeignKey, Enum, DateTime, Boolean, Index, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship
from datetime import datetime
from scorebook.database import Base


class WicketType(enum.Enum):
    BOWLED = "BOWLED"
    CAUGHT = "CAUGHT"
    LBW = "LBW"
    RUN_OUT = "RUN_OUT"
    STUMPED = "STUMPED"
    HIT_WICKET = "HIT_WICKET"


# Dismissals credited to a fielder
FIELDER_WICKETS = {WicketType.CAUGHT, WicketType.RUN_OUT, WicketType.STUMPED}


class Ball(Base):
    """
    One recorded delivery. The ledger of balls is the source of truth for the
    score; rows are only ever inserted or deleted (undo), never updated.
    """
    __tablename__ = "balls"
    __table_args__ = (
        UniqueConstraint("match_id", "entry_seq", name="uq_ball_entry_seq"),
        Index("ix_balls_match_innings_over", "match_id", "innings", "over_number"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    match_id: Mapped[str] = mapped_column(ForeignKey("matches.id", ondelete="CASCADE"))

    innings: Mapped[int] = mapped_column(Integer)  # 1 or 2
    over_number: Mapped[int] = mapped_column(Integer)
    ball_number: Mapped[int] = mapped_column(Integer)  # 1-6, up to 10 with extras

    # Players involved
    batsman_on_strike: Mapped[str] = mapped_column(ForeignKey("users.id"))
    batsman_non_strike: Mapped[str] = mapped_column(ForeignKey("users.id"))
    bowler: Mapped[str] = mapped_column(ForeignKey("users.id"))
    striker: Mapped["User"] = relationship("User", foreign_keys=[batsman_on_strike])
    non_striker: Mapped["User"] = relationship("User", foreign_keys=[batsman_non_strike])
    bowler_user: Mapped["User"] = relationship("User", foreign_keys=[bowler])

    # Outcome - runs is the total credited for the delivery, extras included
    runs: Mapped[int] = mapped_column(Integer, default=0)

    # Wicket
    is_wicket: Mapped[bool] = mapped_column(Boolean, default=False)
    wicket_type: Mapped[Optional[WicketType]] = mapped_column(Enum(WicketType), nullable=True)
    dismissed_player: Mapped[Optional[str]] = mapped_column(ForeignKey("users.id"), nullable=True)
    fielder: Mapped[Optional[str]] = mapped_column(ForeignKey("users.id"), nullable=True)

    # Extras
    is_wide: Mapped[bool] = mapped_column(Boolean, default=False)
    is_no_ball: Mapped[bool] = mapped_column(Boolean, default=False)
    is_bye: Mapped[bool] = mapped_column(Boolean, default=False)
    is_leg_bye: Mapped[bool] = mapped_column(Boolean, default=False)

    # Entry bookkeeping; entry_seq orders balls within a match for undo
    timestamp: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    entry_seq: Mapped[int] = mapped_column(Integer)
    entered_by: Mapped[str] = mapped_column(ForeignKey("users.id"))

    @property
    def is_legal(self) -> bool:
        return not (self.is_wide or self.is_no_ball)

    def __repr__(self):
        return f"<Ball {self.innings}:{self.over_number}.{self.ball_number}: {self.runs} runs>"

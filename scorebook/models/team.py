import enum
import uuid
from typing import Optional, List
from sqlalchemy import String, ForeignKey, Enum, DateTime, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship
from datetime import datetime
from scorebook.database import Base


class MemberStatus(enum.Enum):
    PENDING = "PENDING"
    ACTIVE = "ACTIVE"
    LEFT = "LEFT"
    REMOVED = "REMOVED"


class Team(Base):
    __tablename__ = "teams"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    team_name: Mapped[str] = mapped_column(String(100))
    captain_id: Mapped[Optional[str]] = mapped_column(ForeignKey("users.id"), nullable=True)
    captain: Mapped[Optional["User"]] = relationship("User", foreign_keys=[captain_id])

    members: Mapped[List["TeamMember"]] = relationship("TeamMember", back_populates="team")

    def __repr__(self):
        return f"<Team {self.team_name}>"


class TeamMember(Base):
    __tablename__ = "team_members"
    __table_args__ = (UniqueConstraint("team_id", "player_id", name="uq_team_member"),)

    id: Mapped[int] = mapped_column(primary_key=True)
    team_id: Mapped[str] = mapped_column(ForeignKey("teams.id", ondelete="CASCADE"))
    player_id: Mapped[str] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"))
    status: Mapped[MemberStatus] = mapped_column(Enum(MemberStatus), default=MemberStatus.ACTIVE)
    joined_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    team: Mapped["Team"] = relationship("Team", back_populates="members")
    player: Mapped["User"] = relationship("User")

    def __repr__(self):
        return f"<TeamMember {self.player_id} in {self.team_id} ({self.status.value})>"

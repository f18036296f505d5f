from scorebook.models.user import User, UserRole, CaptainSettings
from scorebook.models.team import Team, TeamMember, MemberStatus
from scorebook.models.match import Match, MatchStatus, FinalScoreApproval
from scorebook.models.approval import ApprovalRequest, ApprovalType, ApprovalStatus, MatchStartApproval
from scorebook.models.ball import Ball, WicketType
from scorebook.models.audit import AuditLog, AuditAction
from scorebook.models.stats import PlayerStat

__all__ = [
    "User",
    "UserRole",
    "CaptainSettings",
    "Team",
    "TeamMember",
    "MemberStatus",
    "Match",
    "MatchStatus",
    "FinalScoreApproval",
    "ApprovalRequest",
    "ApprovalType",
    "ApprovalStatus",
    "MatchStartApproval",
    "Ball",
    "WicketType",
    "AuditLog",
    "AuditAction",
    "PlayerStat",
]

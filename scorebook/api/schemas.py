"""
Pydantic schemas for API request/response models
"""
from pydantic import BaseModel, StrictBool
from typing import Optional
from datetime import datetime

from scorebook.models.approval import ApprovalType, ApprovalStatus
from scorebook.models.ball import WicketType


class MessageResponse(BaseModel):
    message: str


# Approval Schemas
class ApprovalRequestCreate(BaseModel):
    type: ApprovalType


class ApprovalRespondRequest(BaseModel):
    approve: StrictBool


class ApprovalResponse(BaseModel):
    id: str
    match_id: str
    type: ApprovalType
    requested_by: str
    status: ApprovalStatus
    approved_by: Optional[str] = None
    requested_at: datetime
    approved_at: Optional[datetime] = None
    auto_approve_at: Optional[datetime] = None
    auto_approve_enabled: bool
    was_auto_approved: bool

    class Config:
        from_attributes = True


class ApprovalResultResponse(BaseModel):
    message: str
    approval: ApprovalResponse
    match_status: str


class MatchStartApprovalResponse(BaseModel):
    id: str
    match_id: str
    requested_by: str
    status: ApprovalStatus
    approved_by: Optional[str] = None
    requested_at: datetime
    responded_at: Optional[datetime] = None

    class Config:
        from_attributes = True


# Ball Schemas
class BallEntryRequest(BaseModel):
    """Everything is optional here so missing fields get a scoring-specific message"""
    innings: Optional[int] = None
    over_number: Optional[int] = None
    ball_number: Optional[int] = None
    batsman_on_strike: Optional[str] = None
    batsman_non_strike: Optional[str] = None
    bowler: Optional[str] = None
    runs: Optional[int] = None
    is_wicket: bool = False
    wicket_type: Optional[WicketType] = None
    dismissed_player: Optional[str] = None
    fielder: Optional[str] = None
    is_wide: bool = False
    is_no_ball: bool = False
    is_bye: bool = False
    is_leg_bye: bool = False


class BallResponse(BaseModel):
    id: str
    match_id: str
    innings: int
    over_number: int
    ball_number: int
    batsman_on_strike: str
    batsman_non_strike: str
    bowler: str
    runs: int
    is_wicket: bool
    wicket_type: Optional[WicketType] = None
    dismissed_player: Optional[str] = None
    fielder: Optional[str] = None
    is_wide: bool
    is_no_ball: bool
    is_bye: bool
    is_leg_bye: bool
    timestamp: datetime
    entered_by: str

    class Config:
        from_attributes = True


class OverSummaryResponse(BaseModel):
    innings: int
    over_number: int
    runs: int
    wickets: int
    legal_balls: int
    is_complete: bool
    balls: list[BallResponse]


# Scoring data
class TeamScore(BaseModel):
    runs: int
    wickets: int
    overs: float


class TeamHeader(BaseModel):
    id: str
    name: str
    captain_id: Optional[str] = None
    captain_name: Optional[str] = None
    score: TeamScore


class TeamRef(BaseModel):
    id: str
    name: str


class MatchHeader(BaseModel):
    id: str
    team_a: TeamHeader
    team_b: TeamHeader
    venue: str
    match_date: datetime
    status: str
    current_innings: int
    batting_team: TeamRef
    bowling_team: TeamRef


class PlayerBrief(BaseModel):
    id: str
    name: str
    role: str


class ScoringPlayers(BaseModel):
    batting: list[PlayerBrief]
    bowling: list[PlayerBrief]


class ScoringDataResponse(BaseModel):
    match: MatchHeader
    players: ScoringPlayers
    balls: list[BallResponse]
    current_over: list[BallResponse]
    current_over_number: int
    is_authorized: bool

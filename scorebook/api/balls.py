"""
Ball-by-ball scoring API endpoints
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from typing import List, Optional

from scorebook.database import get_db
from scorebook.models.user import User
from scorebook.auth.utils import get_current_user
from scorebook.engine.ball_engine import BallEntryEngine, DeliveryInput
from scorebook.services import AuditService
from scorebook.api.schemas import (
    BallEntryRequest, BallResponse, MessageResponse, OverSummaryResponse, ScoringDataResponse,
)

router = APIRouter(prefix="/balls", tags=["Ball by Ball"])


def get_ball_engine(db: Session = Depends(get_db)) -> BallEntryEngine:
    return BallEntryEngine(db, audit=AuditService(db))


@router.post("/{match_id}", response_model=BallResponse, status_code=201)
def enter_ball(
    match_id: str,
    body: BallEntryRequest,
    current_user: User = Depends(get_current_user),
    engine: BallEntryEngine = Depends(get_ball_engine),
):
    return engine.enter_ball(match_id, current_user, DeliveryInput(**body.model_dump()))


@router.delete("/{match_id}/last", response_model=MessageResponse)
def undo_last_ball(
    match_id: str,
    innings: Optional[int] = None,
    current_user: User = Depends(get_current_user),
    engine: BallEntryEngine = Depends(get_ball_engine),
):
    engine.undo_last_ball(match_id, current_user, innings)
    return MessageResponse(message="Last ball undone successfully")


@router.get("/{match_id}/data", response_model=ScoringDataResponse)
def get_scoring_data(
    match_id: str,
    current_user: User = Depends(get_current_user),
    engine: BallEntryEngine = Depends(get_ball_engine),
):
    return engine.get_scoring_data(match_id, current_user)


@router.get("/{match_id}", response_model=List[BallResponse])
def get_balls_by_match(
    match_id: str,
    innings: Optional[int] = None,
    over_number: Optional[int] = None,
    current_user: User = Depends(get_current_user),
    engine: BallEntryEngine = Depends(get_ball_engine),
):
    return engine.get_balls_by_match(match_id, innings, over_number)


@router.get("/{match_id}/over/{innings}/{over_number}", response_model=OverSummaryResponse)
def get_over_summary(
    match_id: str,
    innings: int,
    over_number: int,
    current_user: User = Depends(get_current_user),
    engine: BallEntryEngine = Depends(get_ball_engine),
):
    summary = engine.get_over_summary(match_id, innings, over_number)
    return {
        "innings": summary.innings,
        "over_number": summary.over_number,
        "runs": summary.runs,
        "wickets": summary.wickets,
        "legal_balls": summary.legal_balls,
        "is_complete": summary.is_complete,
        "balls": summary.balls,
    }

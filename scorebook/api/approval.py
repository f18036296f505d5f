"""
Approval API endpoints - captains request and answer match transitions
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from typing import List

from scorebook.database import get_db
from scorebook.models.user import User
from scorebook.auth.utils import get_current_user
from scorebook.engine.approval_engine import ApprovalEngine
from scorebook.services import AuditService, NotificationService, StatsService
from scorebook.api.schemas import (
    ApprovalRequestCreate, ApprovalRespondRequest, ApprovalResponse, ApprovalResultResponse,
    MatchStartApprovalResponse, MessageResponse,
)

router = APIRouter(prefix="/approval", tags=["Approvals"])


def get_approval_engine(db: Session = Depends(get_db)) -> ApprovalEngine:
    return ApprovalEngine(
        db,
        audit=AuditService(db),
        stats=StatsService(db),
        notifier=NotificationService(),
    )


# Legacy match start flow

@router.post("/{match_id}/request", response_model=MatchStartApprovalResponse, status_code=201)
def request_match_start(
    match_id: str,
    current_user: User = Depends(get_current_user),
    engine: ApprovalEngine = Depends(get_approval_engine),
):
    """Ask the opponent captain to approve starting the match"""
    return engine.request_match_start(match_id, current_user)


@router.post("/{approval_id}/respond", response_model=MessageResponse)
def respond_to_match_start(
    approval_id: str,
    body: ApprovalRespondRequest,
    current_user: User = Depends(get_current_user),
    engine: ApprovalEngine = Depends(get_approval_engine),
):
    engine.respond_to_match_start(approval_id, current_user, body.approve)
    return MessageResponse(message="Match approved to start" if body.approve else "Match start rejected")


@router.get("/pending", response_model=List[MatchStartApprovalResponse])
def get_pending_match_starts(
    current_user: User = Depends(get_current_user),
    engine: ApprovalEngine = Depends(get_approval_engine),
):
    return engine.get_pending_match_starts(current_user.id)


# Typed approval flow

@router.post("/{match_id}/request-new", response_model=ApprovalResponse, status_code=201)
def request_approval(
    match_id: str,
    body: ApprovalRequestCreate,
    current_user: User = Depends(get_current_user),
    engine: ApprovalEngine = Depends(get_approval_engine),
):
    """
    Request START_SCORING, START_SECOND_INNINGS or FINAL_SCORE.
    The match moves to the matching *_PENDING status until the opponent answers.
    """
    return engine.request_approval(match_id, current_user, body.type)


@router.post("/{approval_id}/respond-new", response_model=ApprovalResultResponse)
def respond_to_approval(
    approval_id: str,
    body: ApprovalRespondRequest,
    current_user: User = Depends(get_current_user),
    engine: ApprovalEngine = Depends(get_approval_engine),
):
    approval = engine.respond_to_approval(approval_id, current_user, body.approve)
    return ApprovalResultResponse(
        message="Approval granted" if body.approve else "Approval rejected",
        approval=ApprovalResponse.model_validate(approval),
        match_status=approval.match.status.value,
    )


@router.get("/pending-new", response_model=List[ApprovalResponse])
def get_pending_approvals(
    current_user: User = Depends(get_current_user),
    engine: ApprovalEngine = Depends(get_approval_engine),
):
    """Requests awaiting the current user's answer, newest first"""
    return engine.get_pending_approvals_for_user(current_user.id)

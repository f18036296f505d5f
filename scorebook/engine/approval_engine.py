"""
Approval Workflow Engine - captains move a match through its lifecycle by
requesting a transition that the opposing captain must approve.

    SCHEDULED -> SCORING_PENDING -> FIRST_INNINGS
              -> SECOND_INNINGS_PENDING -> SECOND_INNINGS
              -> FINAL_PENDING -> COMPLETED

A rejection drops the match back to the status it had before the request.
The older single-step flow (SCHEDULED -> LIVE) is served by the
`*_match_start` methods.
"""
import logging
import time
from datetime import datetime, timedelta
from typing import Optional
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session

from scorebook.config import settings
from scorebook.database import transaction
from scorebook.errors import (
    ValidationError, NotFoundError, ForbiddenError, StateError, ConflictError, TransientStorageError,
)
from scorebook.models.user import User
from scorebook.models.match import Match, MatchStatus, FinalScoreApproval, TERMINAL_STATUSES
from scorebook.models.approval import ApprovalRequest, ApprovalType, ApprovalStatus, MatchStartApproval
from scorebook.models.audit import AuditAction
from scorebook.engine.retry import with_retry, is_transient_error
from scorebook.services.directory import DirectoryService
from scorebook.services.notification import NotificationService
from scorebook.services.settings import SettingsService
from scorebook.validators import validate_uuid

logger = logging.getLogger(__name__)

# Status a match must hold before each kind of request
REQUIRED_STATUS = {
    ApprovalType.START_SCORING: MatchStatus.SCHEDULED,
    ApprovalType.START_SECOND_INNINGS: MatchStatus.FIRST_INNINGS,
    ApprovalType.FINAL_SCORE: MatchStatus.SECOND_INNINGS,
}

# Status a match holds while a request is waiting for an answer
PENDING_STATUS = {
    ApprovalType.START_SCORING: MatchStatus.SCORING_PENDING,
    ApprovalType.START_SECOND_INNINGS: MatchStatus.SECOND_INNINGS_PENDING,
    ApprovalType.FINAL_SCORE: MatchStatus.FINAL_PENDING,
}

REQUIRED_FINAL_SIGNATURES = 2


class ApprovalEngine:
    """
    Opens and resolves approval requests. Each request or response is a single
    transaction over the approval rows and the match row; audit entries,
    notifications and stats run afterwards and never fail the call.
    """

    def __init__(
        self,
        session: Session,
        audit=None,
        stats=None,
        notifier=None,
        directory: DirectoryService = None,
        settings_service: SettingsService = None,
        config=settings,
        sleep=time.sleep,
    ):
        self.session = session
        self.audit = audit
        self.stats = stats
        self.notifier = notifier or NotificationService()
        self.directory = directory or DirectoryService(session)
        self.settings_service = settings_service or SettingsService(session)
        self.config = config
        self._sleep = sleep

    # ------------------------------------------------------------------
    # Typed approvals
    # ------------------------------------------------------------------

    def request_approval(self, match_id: str, requester: User, approval_type: ApprovalType) -> ApprovalRequest:
        """
        Open a request for the next stage of the match.

        Any PENDING request of the same type is cancelled first, and the match
        moves to the matching *_PENDING status in the same transaction.
        """
        validate_uuid(match_id, "match")
        if not isinstance(approval_type, ApprovalType):
            raise ValidationError(f"Invalid approval type: {approval_type}")

        approval, cancelled_ids, previous_status = self._run_unit(
            lambda: self._open_request(match_id, requester, approval_type)
        )

        for cancelled_id in cancelled_ids:
            self._audit(
                AuditAction.APPROVAL_CANCELLED, requester.id, match_id,
                approval_type=approval_type,
                previous_state={"approval_id": cancelled_id, "status": ApprovalStatus.PENDING.value},
                new_state={"approval_id": cancelled_id, "status": ApprovalStatus.CANCELLED.value},
            )
        self._audit(
            AuditAction.APPROVAL_REQUESTED, requester.id, match_id,
            approval_type=approval_type,
            previous_state={"match_status": previous_status.value},
            new_state={
                "approval_id": approval.id,
                "match_status": PENDING_STATUS[approval_type].value,
                "auto_approve_at": approval.auto_approve_at.isoformat() if approval.auto_approve_at else None,
            },
        )
        self._notify(
            self.directory.get_opponent_captain_id(approval.match, requester.id),
            "Approval Requested",
            f"Your approval is needed for {approval_type.value} on match {match_id}",
            match_id,
        )

        logger.info(f"{approval_type.value} approval requested for match {match_id} by {requester.id}")
        return approval

    def respond_to_approval(self, approval_id: str, responder: User, approve: bool) -> ApprovalRequest:
        validate_uuid(approval_id, "approval")
        if not isinstance(approve, bool):
            raise ValidationError("approve must be a boolean value")

        approval, previous_status, next_status = self._run_unit(
            lambda: self._resolve_request(approval_id, responder, approve)
        )

        self._audit(
            AuditAction.APPROVAL_GRANTED if approve else AuditAction.APPROVAL_REJECTED,
            responder.id, approval.match_id,
            approval_type=approval.type,
            was_auto_approved=False,
            previous_state={"status": ApprovalStatus.PENDING.value, "match_status": previous_status.value},
            new_state={"status": approval.status.value, "match_status": next_status.value},
        )
        self._notify(
            approval.requested_by,
            "Approval Granted" if approve else "Approval Rejected",
            f"Your {approval.type.value} request was {'approved' if approve else 'rejected'}",
            approval.match_id,
        )
        if next_status == MatchStatus.COMPLETED:
            self._recalculate_stats(approval.match_id)

        logger.info(
            f"{approval.type.value} {'approved' if approve else 'rejected'} for match "
            f"{approval.match_id} by {responder.id}: {previous_status.value} -> {next_status.value}"
        )
        return approval

    def auto_approve(self, approval_id: str, now: Optional[datetime] = None) -> ApprovalRequest:
        """
        System-initiated approval of a request whose deadline passed. Same
        transition as an approve response, attributed to the opponent captain
        and flagged `was_auto_approved`.
        """
        validate_uuid(approval_id, "approval")
        now = now or datetime.utcnow()

        def attempt():
            with transaction(self.session, self.config.APPROVAL_TRANSACTION_TIMEOUT_SECONDS):
                return self._auto_resolve(approval_id, now)

        approval, opponent_id, next_status = with_retry(
            attempt,
            max_retries=self.config.DB_MAX_RETRIES,
            initial_delay=self.config.DB_RETRY_INITIAL_DELAY,
            max_delay=self.config.DB_RETRY_MAX_DELAY,
            sleep=self._sleep,
        )

        self._audit(
            AuditAction.APPROVAL_AUTO_APPROVED, opponent_id, approval.match_id,
            approval_type=approval.type,
            was_auto_approved=True,
            new_state={
                "status": ApprovalStatus.AUTO_APPROVED.value,
                "next_status": next_status.value,
                "auto_approved_at": now.isoformat(),
            },
        )
        self._notify(
            approval.requested_by,
            "Approval Auto-Approved",
            f"Your {approval.type.value} request was auto-approved after timeout",
            approval.match_id,
        )
        try:
            if self.settings_service.notify_on_auto_approve(opponent_id):
                self._notify(
                    opponent_id,
                    "Approval Auto-Approved",
                    f"A {approval.type.value} request awaiting your response was auto-approved",
                    approval.match_id,
                )
        except Exception as e:
            logger.warning(f"Failed to notify opponent of auto-approval {approval.id}: {e}")
        if next_status == MatchStatus.COMPLETED:
            self._recalculate_stats(approval.match_id)

        logger.info(f"Auto-approved {approval.type.value} for match {approval.match_id}")
        return approval

    def process_auto_approvals(self, now: Optional[datetime] = None) -> dict:
        """
        Sweep PENDING requests whose auto-approve deadline has passed.

        Requests whose match has moved on are marked EXPIRED instead, and ones
        answered since the listing are skipped. One bad request never stops the
        sweep.
        """
        now = now or datetime.utcnow()
        due_ids = [
            row[0]
            for row in self.session.query(ApprovalRequest.id)
            .filter(
                ApprovalRequest.status == ApprovalStatus.PENDING,
                ApprovalRequest.auto_approve_enabled.is_(True),
                ApprovalRequest.auto_approve_at <= now,
            )
            .order_by(ApprovalRequest.auto_approve_at)
            .all()
        ]
        self.session.commit()

        result = {"auto_approved": 0, "expired": 0, "skipped": 0, "failed": 0}
        if not due_ids:
            return result

        logger.info(f"Processing {len(due_ids)} auto-approvals")
        for approval_id in due_ids:
            try:
                outcome = self._triage_due_request(approval_id, now)
                if outcome == "due":
                    self.auto_approve(approval_id, now)
                    result["auto_approved"] += 1
                else:
                    result[outcome] += 1
            except Exception as e:
                result["failed"] += 1
                logger.error(f"Failed to auto-approve {approval_id}: {e}")
        return result

    def get_pending_approvals_for_user(self, user_id: str) -> list[ApprovalRequest]:
        """PENDING requests on the user's matches that someone else raised"""
        validate_uuid(user_id, "user")
        team_ids = self.directory.get_team_ids_captained_by(user_id)
        if not team_ids:
            return []
        return (
            self.session.query(ApprovalRequest)
            .join(Match, Match.id == ApprovalRequest.match_id)
            .filter(
                ApprovalRequest.status == ApprovalStatus.PENDING,
                or_(Match.team_a_id.in_(team_ids), Match.team_b_id.in_(team_ids)),
                ApprovalRequest.requested_by != user_id,
            )
            .order_by(ApprovalRequest.requested_at.desc())
            .all()
        )

    def _open_request(self, match_id: str, requester: User, approval_type: ApprovalType):
        match = self._lock_match(match_id)
        if not self.directory.is_match_captain(match, requester.id):
            raise ForbiddenError("Only team captains can request approval")

        # Re-requesting from the pending status supersedes the outstanding request
        required = REQUIRED_STATUS[approval_type]
        if match.status not in (required, PENDING_STATUS[approval_type]):
            raise StateError(
                f"Cannot request {approval_type.value} approval: match status must be "
                f"{required.value}, current: {match.status.value}"
            )

        captain_settings = self.settings_service.get_settings(requester.id)
        now = datetime.utcnow()

        superseded = (
            self.session.query(ApprovalRequest)
            .filter_by(match_id=match_id, type=approval_type, status=ApprovalStatus.PENDING)
            .all()
        )
        for old in superseded:
            old.status = ApprovalStatus.CANCELLED
            old.approved_at = now
        self.session.flush()

        approval = ApprovalRequest(
            match_id=match_id,
            type=approval_type,
            requested_by=requester.id,
            status=ApprovalStatus.PENDING,
            requested_at=now,
            auto_approve_at=now + timedelta(minutes=captain_settings.timeout_minutes),
            auto_approve_enabled=captain_settings.auto_approve_enabled,
        )
        self.session.add(approval)

        previous_status = match.status
        match.status = PENDING_STATUS[approval_type]
        self.session.flush()
        return approval, [old.id for old in superseded], previous_status

    def _resolve_request(self, approval_id: str, responder: User, approve: bool):
        approval = self._lock_approval(approval_id)
        match = self._lock_match(approval.match_id)

        if not self._may_respond(match, approval, responder):
            raise ForbiddenError("Only the opponent captain can respond to this approval")
        self._check_resolvable(match, approval)

        now = datetime.utcnow()
        previous_status = match.status
        if approve:
            next_status = self._apply_approval(match, approval, responder.id, now)
            approval.status = ApprovalStatus.APPROVED
        else:
            next_status = self._apply_rejection(match, approval)
            approval.status = ApprovalStatus.REJECTED
        approval.approved_by = responder.id
        approval.approved_at = now
        self.session.flush()
        return approval, previous_status, next_status

    def _auto_resolve(self, approval_id: str, now: datetime):
        approval = self._lock_approval(approval_id)
        match = self._lock_match(approval.match_id)
        self._check_resolvable(match, approval)

        opponent_id = self.directory.get_opponent_captain_id(match, approval.requested_by)
        next_status = self._apply_approval(match, approval, opponent_id, now)
        approval.status = ApprovalStatus.AUTO_APPROVED
        approval.approved_by = opponent_id
        approval.approved_at = now
        approval.was_auto_approved = True
        self.session.flush()
        return approval, opponent_id, next_status

    def _triage_due_request(self, approval_id: str, now: datetime) -> str:
        """'skipped' if already answered, 'expired' if the match moved on, else 'due'"""
        with transaction(self.session, self.config.APPROVAL_TRANSACTION_TIMEOUT_SECONDS):
            approval = self._lock_approval(approval_id)
            if approval.status != ApprovalStatus.PENDING:
                logger.info(f"Skipping {approval_id}: already {approval.status.value}")
                return "skipped"
            match = self._lock_match(approval.match_id)
            if match.status == PENDING_STATUS[approval.type]:
                return "due"
            approval.status = ApprovalStatus.EXPIRED
            approval.approved_at = now
        logger.info(f"Expired {approval.type.value} request {approval_id}: match is {match.status.value}")
        return "expired"

    def _may_respond(self, match: Match, approval: ApprovalRequest, responder: User) -> bool:
        if approval.type == ApprovalType.FINAL_SCORE and not self.config.FINAL_SCORE_COUNTS_REQUESTER:
            # Each captain signs the final score explicitly
            return self.directory.is_match_captain(match, responder.id)
        return responder.id == self.directory.get_opponent_captain_id(match, approval.requested_by)

    def _check_resolvable(self, match: Match, approval: ApprovalRequest):
        if approval.status != ApprovalStatus.PENDING:
            raise StateError(f"This approval request has already been processed (status: {approval.status.value})")
        if match.status in TERMINAL_STATUSES:
            raise StateError(f"Cannot respond to approval for match with status: {match.status.value}")
        expected = PENDING_STATUS[approval.type]
        if match.status != expected:
            raise StateError(
                f"Cannot resolve {approval.type.value} approval: match status must be "
                f"{expected.value}, current: {match.status.value}"
            )

    def _apply_approval(self, match: Match, approval: ApprovalRequest, approver_id: str, now: datetime) -> MatchStatus:
        """Advance the match for an approved request and stamp who approved it"""
        if approval.type == ApprovalType.START_SCORING:
            match.status = MatchStatus.FIRST_INNINGS
            match.scoring_start_approved_by = approver_id
            match.scoring_start_approved_at = now

        elif approval.type == ApprovalType.START_SECOND_INNINGS:
            match.status = MatchStatus.SECOND_INNINGS
            match.second_innings_approved_by = approver_id
            match.second_innings_approved_at = now
            match.first_innings_complete = True

        elif approval.type == ApprovalType.FINAL_SCORE:
            signers = {approver_id}
            if self.config.FINAL_SCORE_COUNTS_REQUESTER:
                # Raising the final score counts as the requester's signature
                signers.add(approval.requested_by)
            existing = match.final_score_approver_ids
            for signer in sorted(signers - existing):
                match.final_score_approvals.append(FinalScoreApproval(approver_id=signer, approved_at=now))

            match.second_innings_complete = True
            if len(existing | signers) >= REQUIRED_FINAL_SIGNATURES:
                match.status = MatchStatus.COMPLETED
                match.final_score_approved_at = now
                match.winner_team_id = self._winner_team_id(match)
            else:
                match.status = MatchStatus.FINAL_PENDING

        return match.status

    def _apply_rejection(self, match: Match, approval: ApprovalRequest) -> MatchStatus:
        match.status = REQUIRED_STATUS[approval.type]
        if approval.type == ApprovalType.FINAL_SCORE:
            # A rejected final score voids signatures collected so far
            match.final_score_approvals.clear()
            match.second_innings_complete = False
        return match.status

    @staticmethod
    def _winner_team_id(match: Match) -> Optional[str]:
        team_a_runs = match.team_a_score or 0
        team_b_runs = match.team_b_score or 0
        if team_a_runs > team_b_runs:
            return match.team_a_id
        if team_b_runs > team_a_runs:
            return match.team_b_id
        return None

    # ------------------------------------------------------------------
    # Legacy match-start approvals (SCHEDULED -> LIVE)
    # ------------------------------------------------------------------

    def request_match_start(self, match_id: str, requester: User) -> MatchStartApproval:
        validate_uuid(match_id, "match")
        approval = self._run_unit(lambda: self._open_match_start(match_id, requester))

        self._audit(
            AuditAction.APPROVAL_REQUESTED, requester.id, match_id,
            new_state={"approval_id": approval.id, "flow": "match_start"},
        )
        self._notify(
            self.directory.get_opponent_captain_id(approval.match, requester.id),
            "Match Start Requested",
            f"Your approval is needed to start match {match_id}",
            match_id,
        )
        logger.info(f"Match start approval requested for match {match_id} by {requester.id}")
        return approval

    def respond_to_match_start(self, approval_id: str, responder: User, approve: bool) -> MatchStartApproval:
        validate_uuid(approval_id, "approval")
        if not isinstance(approve, bool):
            raise ValidationError("approve must be a boolean value")

        approval = self._run_unit(lambda: self._resolve_match_start(approval_id, responder, approve))

        self._audit(
            AuditAction.APPROVAL_GRANTED if approve else AuditAction.APPROVAL_REJECTED,
            responder.id, approval.match_id,
            new_state={"approval_id": approval.id, "flow": "match_start", "status": approval.status.value},
        )
        logger.info(
            f"Match start {'approved' if approve else 'rejected'} for match {approval.match_id} by {responder.id}"
        )
        return approval

    def get_pending_match_starts(self, user_id: str) -> list[MatchStartApproval]:
        validate_uuid(user_id, "user")
        team_ids = self.directory.get_team_ids_captained_by(user_id)
        if not team_ids:
            return []
        return (
            self.session.query(MatchStartApproval)
            .join(Match, Match.id == MatchStartApproval.match_id)
            .filter(
                MatchStartApproval.status == ApprovalStatus.PENDING,
                or_(Match.team_a_id.in_(team_ids), Match.team_b_id.in_(team_ids)),
                MatchStartApproval.requested_by != user_id,
            )
            .order_by(MatchStartApproval.requested_at.desc())
            .all()
        )

    def _open_match_start(self, match_id: str, requester: User) -> MatchStartApproval:
        match = self._lock_match(match_id)
        if not self.directory.is_match_captain(match, requester.id):
            raise ForbiddenError("Only team captains can request match start approval")
        if match.status != MatchStatus.SCHEDULED:
            raise StateError(
                f"Cannot request approval for match with status: {match.status.value}. Match must be SCHEDULED."
            )

        already_approved = (
            self.session.query(MatchStartApproval)
            .filter_by(match_id=match_id, status=ApprovalStatus.APPROVED)
            .first()
        )
        if already_approved:
            raise StateError("Match already approved to start")

        now = datetime.utcnow()
        for old in self.session.query(MatchStartApproval).filter_by(match_id=match_id, status=ApprovalStatus.PENDING):
            old.status = ApprovalStatus.CANCELLED
            old.responded_at = now
        self.session.flush()

        approval = MatchStartApproval(
            match_id=match_id,
            requested_by=requester.id,
            status=ApprovalStatus.PENDING,
            requested_at=now,
        )
        self.session.add(approval)
        self.session.flush()
        return approval

    def _resolve_match_start(self, approval_id: str, responder: User, approve: bool) -> MatchStartApproval:
        approval = (
            self.session.query(MatchStartApproval)
            .filter(MatchStartApproval.id == approval_id)
            .with_for_update()
            .populate_existing()
            .first()
        )
        if approval is None:
            raise NotFoundError("Approval request not found")
        match = self._lock_match(approval.match_id)

        if responder.id != self.directory.get_opponent_captain_id(match, approval.requested_by):
            raise ForbiddenError("Only the opponent captain can respond to this approval")
        if approval.status != ApprovalStatus.PENDING:
            raise StateError("This approval request has already been processed")
        if match.status in TERMINAL_STATUSES:
            raise StateError(f"Cannot respond to approval for match with status: {match.status.value}")

        if approve:
            if match.status != MatchStatus.SCHEDULED:
                raise StateError(f"Cannot start match: match status must be SCHEDULED, current: {match.status.value}")
            match.status = MatchStatus.LIVE

        approval.status = ApprovalStatus.APPROVED if approve else ApprovalStatus.REJECTED
        approval.approved_by = responder.id
        approval.responded_at = datetime.utcnow()
        self.session.flush()
        return approval

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _run_unit(self, unit):
        """Run `unit` as one transaction, translating storage failures"""
        try:
            with transaction(self.session, self.config.APPROVAL_TRANSACTION_TIMEOUT_SECONDS):
                return unit()
        except IntegrityError as e:
            raise ConflictError("Another approval request for this match was created at the same time") from e
        except OperationalError as e:
            if is_transient_error(e):
                raise TransientStorageError("The database is busy, please try again") from e
            raise

    def _lock_match(self, match_id: str) -> Match:
        match = (
            self.session.query(Match)
            .filter(Match.id == match_id)
            .with_for_update()
            .populate_existing()
            .first()
        )
        if match is None:
            raise NotFoundError("Match not found")
        return match

    def _lock_approval(self, approval_id: str) -> ApprovalRequest:
        approval = (
            self.session.query(ApprovalRequest)
            .filter(ApprovalRequest.id == approval_id)
            .with_for_update()
            .populate_existing()
            .first()
        )
        if approval is None:
            raise NotFoundError("Approval request not found")
        return approval

    def _audit(self, action: AuditAction, performed_by: str, match_id: str, **details):
        if self.audit is None:
            return
        try:
            self.audit.log_action(action, performed_by, match_id=match_id, **details)
        except Exception as e:
            logger.warning(f"Failed to create audit log (non-critical): {e}")

    def _notify(self, user_id: Optional[str], title: str, message: str, match_id: str):
        if not user_id:
            return
        try:
            self.notifier.notify(user_id, title, message, link=f"/matches/{match_id}")
        except Exception as e:
            logger.warning(f"Failed to send notification to {user_id}: {e}")

    def _recalculate_stats(self, match_id: str):
        if self.stats is None:
            return
        try:
            self.stats.calculate_stats_from_balls(match_id)
        except Exception as e:
            self.session.rollback()
            logger.error(f"Failed to calculate stats for match {match_id}: {e}", exc_info=True)

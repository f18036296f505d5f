"""
Tests for the dual-captain approval workflow.
"""
import uuid
from datetime import datetime, timedelta
from unittest.mock import MagicMock

import pytest
from sqlalchemy.exc import IntegrityError

from scorebook.config import Settings
from scorebook.errors import ValidationError, NotFoundError, ForbiddenError, StateError, ConflictError
from scorebook.models import (
    ApprovalRequest, ApprovalStatus, ApprovalType, AuditAction, AuditLog, MatchStatus, MatchStartApproval,
)
from scorebook.engine.approval_engine import ApprovalEngine
from scorebook.services import AuditService, SettingsService, StatsService


def later(minutes: int) -> datetime:
    return datetime.utcnow() + timedelta(minutes=minutes)


@pytest.fixture
def explicit_engine(test_db):
    """Engine where each captain signs the final score themselves"""
    config = Settings()
    config.FINAL_SCORE_COUNTS_REQUESTER = False
    return ApprovalEngine(test_db, audit=AuditService(test_db), config=config, sleep=lambda s: None)


class TestFullLifecycle:
    def test_scheduled_to_completed(self, test_db, league, make_match, make_delivery, approval_engine, ball_engine):
        match = make_match()

        request = approval_engine.request_approval(match.id, league.captain_a, ApprovalType.START_SCORING)
        assert request.status == ApprovalStatus.PENDING
        assert match.status == MatchStatus.SCORING_PENDING

        approval_engine.respond_to_approval(request.id, league.captain_b, True)
        test_db.refresh(match)
        assert match.status == MatchStatus.FIRST_INNINGS
        assert match.scoring_start_approved_by == league.captain_b.id
        assert match.scoring_start_approved_at is not None

        ball_engine.enter_ball(match.id, league.captain_a, make_delivery(runs=4))

        request = approval_engine.request_approval(match.id, league.captain_b, ApprovalType.START_SECOND_INNINGS)
        approval_engine.respond_to_approval(request.id, league.captain_a, True)
        test_db.refresh(match)
        assert match.status == MatchStatus.SECOND_INNINGS
        assert match.first_innings_complete is True
        assert match.second_innings_approved_by == league.captain_a.id

        ball_engine.enter_ball(match.id, league.captain_b, make_delivery(2, runs=1))

        request = approval_engine.request_approval(match.id, league.captain_a, ApprovalType.FINAL_SCORE)
        assert match.status == MatchStatus.FINAL_PENDING
        approval_engine.respond_to_approval(request.id, league.captain_b, True)

        test_db.refresh(match)
        assert match.status == MatchStatus.COMPLETED
        assert match.final_score_approver_ids == {league.captain_a.id, league.captain_b.id}
        assert match.second_innings_complete is True
        assert match.final_score_approved_at is not None
        assert match.winner_team_id == league.team_a.id

    def test_tie_has_no_winner(self, test_db, league, make_match, approval_engine):
        match = make_match(MatchStatus.SECOND_INNINGS)
        match.team_a_score = 50
        match.team_b_score = 50
        test_db.commit()

        request = approval_engine.request_approval(match.id, league.captain_b, ApprovalType.FINAL_SCORE)
        approval_engine.respond_to_approval(request.id, league.captain_a, True)

        test_db.refresh(match)
        assert match.status == MatchStatus.COMPLETED
        assert match.winner_team_id is None

    def test_stats_rebuilt_on_completion(self, test_db, league, make_match):
        match = make_match(MatchStatus.SECOND_INNINGS)
        stats = MagicMock()
        engine = ApprovalEngine(test_db, stats=stats, sleep=lambda s: None)

        request = engine.request_approval(match.id, league.captain_a, ApprovalType.FINAL_SCORE)
        engine.respond_to_approval(request.id, league.captain_b, True)

        stats.calculate_stats_from_balls.assert_called_once_with(match.id)


class TestRequestApproval:
    def test_outsider_cannot_request(self, league, make_match, approval_engine):
        match = make_match()
        with pytest.raises(ForbiddenError):
            approval_engine.request_approval(match.id, league.outsider, ApprovalType.START_SCORING)

    def test_wrong_status(self, league, make_match, approval_engine):
        match = make_match()
        with pytest.raises(StateError):
            approval_engine.request_approval(match.id, league.captain_a, ApprovalType.FINAL_SCORE)

    def test_malformed_match_id(self, league, approval_engine):
        with pytest.raises(ValidationError):
            approval_engine.request_approval("123", league.captain_a, ApprovalType.START_SCORING)

    def test_unknown_match(self, league, approval_engine):
        with pytest.raises(NotFoundError):
            approval_engine.request_approval(str(uuid.uuid4()), league.captain_a, ApprovalType.START_SCORING)

    def test_unknown_type(self, league, make_match, approval_engine):
        match = make_match()
        with pytest.raises(ValidationError):
            approval_engine.request_approval(match.id, league.captain_a, "START_PARTY")

    def test_new_request_cancels_outstanding_one(self, test_db, league, make_match, approval_engine):
        match = make_match()

        first = approval_engine.request_approval(match.id, league.captain_a, ApprovalType.START_SCORING)
        second = approval_engine.request_approval(match.id, league.captain_b, ApprovalType.START_SCORING)

        test_db.refresh(first)
        assert first.status == ApprovalStatus.CANCELLED
        assert second.status == ApprovalStatus.PENDING
        pending = test_db.query(ApprovalRequest).filter_by(
            match_id=match.id, type=ApprovalType.START_SCORING, status=ApprovalStatus.PENDING
        ).count()
        assert pending == 1

        with pytest.raises(StateError):
            approval_engine.respond_to_approval(first.id, league.captain_b, True)

    def test_deadline_from_captain_settings(self, test_db, league, make_match, approval_engine):
        SettingsService(test_db).update_settings(league.captain_a.id, timeout_minutes=15)
        match = make_match()

        request = approval_engine.request_approval(match.id, league.captain_a, ApprovalType.START_SCORING)

        assert request.auto_approve_enabled is True
        assert request.auto_approve_at - request.requested_at == timedelta(minutes=15)

    def test_audit_and_notification(self, test_db, league, make_match):
        match = make_match()
        notifier = MagicMock()
        engine = ApprovalEngine(test_db, audit=AuditService(test_db), notifier=notifier, sleep=lambda s: None)

        engine.request_approval(match.id, league.captain_a, ApprovalType.START_SCORING)

        entry = test_db.query(AuditLog).filter_by(match_id=match.id).one()
        assert entry.action == AuditAction.APPROVAL_REQUESTED
        assert entry.approval_type == ApprovalType.START_SCORING
        assert notifier.notify.call_args.args[0] == league.captain_b.id

    def test_audit_failure_is_swallowed(self, test_db, league, make_match):
        match = make_match()
        audit = MagicMock()
        audit.log_action.side_effect = RuntimeError("audit store down")
        engine = ApprovalEngine(test_db, audit=audit, sleep=lambda s: None)

        request = engine.request_approval(match.id, league.captain_a, ApprovalType.START_SCORING)

        assert request.status == ApprovalStatus.PENDING
        test_db.refresh(match)
        assert match.status == MatchStatus.SCORING_PENDING


class TestRespondToApproval:
    def test_requester_cannot_answer_own_request(self, league, make_match, approval_engine):
        match = make_match()
        request = approval_engine.request_approval(match.id, league.captain_a, ApprovalType.START_SCORING)

        with pytest.raises(ForbiddenError):
            approval_engine.respond_to_approval(request.id, league.captain_a, True)

    def test_outsider_cannot_answer(self, league, make_match, approval_engine):
        match = make_match()
        request = approval_engine.request_approval(match.id, league.captain_a, ApprovalType.START_SCORING)

        with pytest.raises(ForbiddenError):
            approval_engine.respond_to_approval(request.id, league.outsider, True)

    def test_rejection_restores_previous_status(self, test_db, league, make_match, approval_engine):
        match = make_match(MatchStatus.FIRST_INNINGS)
        request = approval_engine.request_approval(match.id, league.captain_a, ApprovalType.START_SECOND_INNINGS)

        result = approval_engine.respond_to_approval(request.id, league.captain_b, False)

        test_db.refresh(match)
        assert match.status == MatchStatus.FIRST_INNINGS
        assert result.status == ApprovalStatus.REJECTED
        assert result.approved_by == league.captain_b.id
        assert result.approved_at is not None

    def test_already_processed(self, league, make_match, approval_engine):
        match = make_match()
        request = approval_engine.request_approval(match.id, league.captain_a, ApprovalType.START_SCORING)
        approval_engine.respond_to_approval(request.id, league.captain_b, True)

        with pytest.raises(StateError, match="already been processed"):
            approval_engine.respond_to_approval(request.id, league.captain_b, False)

    def test_terminal_match(self, test_db, league, make_match, approval_engine):
        match = make_match()
        request = approval_engine.request_approval(match.id, league.captain_a, ApprovalType.START_SCORING)
        match.status = MatchStatus.CANCELLED
        test_db.commit()

        with pytest.raises(StateError):
            approval_engine.respond_to_approval(request.id, league.captain_b, True)

    def test_approve_must_be_bool(self, league, make_match, approval_engine):
        match = make_match()
        request = approval_engine.request_approval(match.id, league.captain_a, ApprovalType.START_SCORING)

        with pytest.raises(ValidationError):
            approval_engine.respond_to_approval(request.id, league.captain_b, "yes")

    def test_unknown_approval(self, league, approval_engine):
        with pytest.raises(NotFoundError):
            approval_engine.respond_to_approval(str(uuid.uuid4()), league.captain_b, True)

    def test_stats_failure_does_not_undo_completion(self, test_db, league, make_match):
        match = make_match(MatchStatus.SECOND_INNINGS)
        stats = MagicMock()
        stats.calculate_stats_from_balls.side_effect = RuntimeError("stats exploded")
        engine = ApprovalEngine(test_db, stats=stats, sleep=lambda s: None)

        request = engine.request_approval(match.id, league.captain_a, ApprovalType.FINAL_SCORE)
        result = engine.respond_to_approval(request.id, league.captain_b, True)

        assert result.status == ApprovalStatus.APPROVED
        test_db.refresh(match)
        assert match.status == MatchStatus.COMPLETED

    def test_integrity_error_becomes_conflict(self, approval_engine):
        def racing_insert():
            raise IntegrityError("INSERT INTO approval_requests", {}, Exception("UNIQUE constraint failed"))

        with pytest.raises(ConflictError):
            approval_engine._run_unit(racing_insert)


class TestFinalScoreSignatures:
    def test_explicit_mode_needs_both_captains(self, test_db, league, make_match, explicit_engine):
        match = make_match(MatchStatus.SECOND_INNINGS)

        request = explicit_engine.request_approval(match.id, league.captain_a, ApprovalType.FINAL_SCORE)
        explicit_engine.respond_to_approval(request.id, league.captain_a, True)

        test_db.refresh(match)
        assert match.status == MatchStatus.FINAL_PENDING
        assert match.final_score_approver_ids == {league.captain_a.id}

        request = explicit_engine.request_approval(match.id, league.captain_a, ApprovalType.FINAL_SCORE)
        explicit_engine.respond_to_approval(request.id, league.captain_b, True)

        test_db.refresh(match)
        assert match.status == MatchStatus.COMPLETED
        assert match.final_score_approver_ids == {league.captain_a.id, league.captain_b.id}

    def test_explicit_mode_same_captain_twice(self, test_db, league, make_match, explicit_engine):
        match = make_match(MatchStatus.SECOND_INNINGS)

        for _ in range(2):
            request = explicit_engine.request_approval(match.id, league.captain_b, ApprovalType.FINAL_SCORE)
            explicit_engine.respond_to_approval(request.id, league.captain_b, True)

        test_db.refresh(match)
        assert match.status == MatchStatus.FINAL_PENDING
        assert len(match.final_score_approvals) == 1

    def test_explicit_mode_outsider_cannot_sign(self, league, make_match, explicit_engine):
        match = make_match(MatchStatus.SECOND_INNINGS)
        request = explicit_engine.request_approval(match.id, league.captain_a, ApprovalType.FINAL_SCORE)

        with pytest.raises(ForbiddenError):
            explicit_engine.respond_to_approval(request.id, league.outsider, True)

    def test_rejection_clears_signatures(self, test_db, league, make_match, explicit_engine):
        match = make_match(MatchStatus.SECOND_INNINGS)
        request = explicit_engine.request_approval(match.id, league.captain_a, ApprovalType.FINAL_SCORE)
        explicit_engine.respond_to_approval(request.id, league.captain_a, True)

        request = explicit_engine.request_approval(match.id, league.captain_a, ApprovalType.FINAL_SCORE)
        explicit_engine.respond_to_approval(request.id, league.captain_b, False)

        test_db.refresh(match)
        assert match.status == MatchStatus.SECOND_INNINGS
        assert match.final_score_approvals == []
        assert match.second_innings_complete is False


class TestAutoApproval:
    def test_sweep_approves_overdue_request(self, test_db, league, make_match):
        match = make_match()
        notifier = MagicMock()
        engine = ApprovalEngine(test_db, audit=AuditService(test_db), notifier=notifier, sleep=lambda s: None)
        request = engine.request_approval(match.id, league.captain_a, ApprovalType.START_SCORING)
        notifier.reset_mock()

        result = engine.process_auto_approvals(now=later(10))

        assert result == {"auto_approved": 1, "expired": 0, "skipped": 0, "failed": 0}
        test_db.refresh(request)
        test_db.refresh(match)
        assert request.status == ApprovalStatus.AUTO_APPROVED
        assert request.was_auto_approved is True
        assert request.approved_by == league.captain_b.id
        assert match.status == MatchStatus.FIRST_INNINGS
        assert match.scoring_start_approved_by == league.captain_b.id

        notified = {c.args[0] for c in notifier.notify.call_args_list}
        assert notified == {league.captain_a.id, league.captain_b.id}
        actions = [e.action for e in test_db.query(AuditLog).filter_by(match_id=match.id).all()]
        assert AuditAction.APPROVAL_AUTO_APPROVED in actions

    def test_opponent_can_opt_out_of_notice(self, test_db, league, make_match):
        SettingsService(test_db).update_settings(league.captain_b.id, notify_on_auto_approve=False)
        match = make_match()
        notifier = MagicMock()
        engine = ApprovalEngine(test_db, notifier=notifier, sleep=lambda s: None)
        engine.request_approval(match.id, league.captain_a, ApprovalType.START_SCORING)
        notifier.reset_mock()

        engine.process_auto_approvals(now=later(10))

        assert {c.args[0] for c in notifier.notify.call_args_list} == {league.captain_a.id}

    def test_not_yet_due(self, test_db, league, make_match, approval_engine):
        match = make_match()
        request = approval_engine.request_approval(match.id, league.captain_a, ApprovalType.START_SCORING)

        result = approval_engine.process_auto_approvals(now=later(1))

        assert result == {"auto_approved": 0, "expired": 0, "skipped": 0, "failed": 0}
        test_db.refresh(request)
        assert request.status == ApprovalStatus.PENDING

    def test_disabled_auto_approve_is_skipped(self, test_db, league, make_match, approval_engine):
        SettingsService(test_db).update_settings(league.captain_a.id, auto_approve_enabled=False)
        match = make_match()
        approval_engine.request_approval(match.id, league.captain_a, ApprovalType.START_SCORING)

        result = approval_engine.process_auto_approvals(now=later(120))

        assert result["auto_approved"] == 0

    def test_stale_request_expires(self, test_db, league, make_match, approval_engine):
        match = make_match()
        request = approval_engine.request_approval(match.id, league.captain_a, ApprovalType.START_SCORING)
        match.status = MatchStatus.CANCELLED
        test_db.commit()

        result = approval_engine.process_auto_approvals(now=later(10))

        assert result == {"auto_approved": 0, "expired": 1, "skipped": 0, "failed": 0}
        test_db.refresh(request)
        assert request.status == ApprovalStatus.EXPIRED

    def test_request_answered_after_listing_is_skipped(self, test_db, league, make_match, approval_engine):
        match = make_match()
        request = approval_engine.request_approval(match.id, league.captain_a, ApprovalType.START_SCORING)

        real_triage = approval_engine._triage_due_request

        def answered_first(approval_id, now):
            approval_engine.respond_to_approval(approval_id, league.captain_b, True)
            return real_triage(approval_id, now)

        approval_engine._triage_due_request = answered_first
        result = approval_engine.process_auto_approvals(now=later(10))

        assert result == {"auto_approved": 0, "expired": 0, "skipped": 1, "failed": 0}
        test_db.refresh(request)
        test_db.refresh(match)
        assert request.status == ApprovalStatus.APPROVED
        assert request.was_auto_approved is False
        assert match.status == MatchStatus.FIRST_INNINGS

    def test_one_failure_does_not_stop_sweep(self, test_db, league, make_match, approval_engine):
        first = make_match()
        second = make_match()
        approval_engine.request_approval(first.id, league.captain_a, ApprovalType.START_SCORING)
        approval_engine.request_approval(second.id, league.captain_a, ApprovalType.START_SCORING)

        real_auto_approve = approval_engine.auto_approve
        calls = []

        def flaky(approval_id, now=None):
            calls.append(approval_id)
            if len(calls) == 1:
                raise RuntimeError("boom")
            return real_auto_approve(approval_id, now)

        approval_engine.auto_approve = flaky
        result = approval_engine.process_auto_approvals(now=later(10))

        assert result == {"auto_approved": 1, "expired": 0, "skipped": 0, "failed": 1}

    def test_auto_approve_final_score_completes(self, test_db, league, make_match, approval_engine):
        match = make_match(MatchStatus.SECOND_INNINGS)
        request = approval_engine.request_approval(match.id, league.captain_b, ApprovalType.FINAL_SCORE)

        approval_engine.auto_approve(request.id, now=later(10))

        test_db.refresh(match)
        assert match.status == MatchStatus.COMPLETED
        assert match.final_score_approver_ids == {league.captain_a.id, league.captain_b.id}


class TestPendingApprovals:
    def test_only_requests_awaiting_the_user(self, league, make_match, approval_engine):
        match = make_match()
        request = approval_engine.request_approval(match.id, league.captain_a, ApprovalType.START_SCORING)

        assert [r.id for r in approval_engine.get_pending_approvals_for_user(league.captain_b.id)] == [request.id]
        assert approval_engine.get_pending_approvals_for_user(league.captain_a.id) == []
        assert approval_engine.get_pending_approvals_for_user(league.outsider.id) == []


class TestLegacyMatchStart:
    def test_approve_moves_match_live(self, test_db, league, make_match, approval_engine):
        match = make_match()

        request = approval_engine.request_match_start(match.id, league.captain_a)
        assert [r.id for r in approval_engine.get_pending_match_starts(league.captain_b.id)] == [request.id]

        result = approval_engine.respond_to_match_start(request.id, league.captain_b, True)

        test_db.refresh(match)
        assert result.status == ApprovalStatus.APPROVED
        assert result.responded_at is not None
        assert match.status == MatchStatus.LIVE

        with pytest.raises(StateError):
            approval_engine.request_match_start(match.id, league.captain_a)

    def test_reject_keeps_schedule(self, test_db, league, make_match, approval_engine):
        match = make_match()
        request = approval_engine.request_match_start(match.id, league.captain_a)

        approval_engine.respond_to_match_start(request.id, league.captain_b, False)

        test_db.refresh(match)
        assert match.status == MatchStatus.SCHEDULED

    def test_rerequest_cancels_older(self, test_db, league, make_match, approval_engine):
        match = make_match()
        first = approval_engine.request_match_start(match.id, league.captain_a)
        approval_engine.request_match_start(match.id, league.captain_b)

        test_db.refresh(first)
        assert first.status == ApprovalStatus.CANCELLED
        assert test_db.query(MatchStartApproval).filter_by(
            match_id=match.id, status=ApprovalStatus.PENDING
        ).count() == 1

    def test_only_opponent_responds(self, league, make_match, approval_engine):
        match = make_match()
        request = approval_engine.request_match_start(match.id, league.captain_a)

        with pytest.raises(ForbiddenError):
            approval_engine.respond_to_match_start(request.id, league.captain_a, True)

    def test_non_captain_cannot_request(self, league, make_match, approval_engine):
        match = make_match()
        with pytest.raises(ForbiddenError):
            approval_engine.request_match_start(match.id, league.outsider)

"""
Concurrent captains and scorers on a file-backed database, one session per
thread. The first worker is held inside its transaction while the second one
starts, so the second must wait for the first to commit.
"""
import threading
import time
from datetime import datetime

from sqlalchemy.orm import Session

from scorebook.errors import ConflictError, StateError
from scorebook.models import ApprovalRequest, ApprovalStatus, ApprovalType, Ball, Match, MatchStatus, User
from scorebook.engine.approval_engine import ApprovalEngine
from scorebook.engine.ball_engine import BallEntryEngine, DeliveryInput
from scorebook.engine.scoring import compute_innings_score


def no_sleep(seconds):
    pass


class Worker(threading.Thread):
    """Runs `action(session, user)` in its own session and keeps the outcome"""

    def __init__(self, engine, user_id, action):
        super().__init__(daemon=True)
        self.engine = engine
        self.user_id = user_id
        self.action = action
        self.result = None
        self.error = None

    def run(self):
        with Session(self.engine) as session:
            try:
                user = session.get(User, self.user_id)
                self.result = self.action(session, user)
            except Exception as e:
                self.error = e


def hold_after(target, method_name: str, entered: threading.Event, seconds: float = 0.3):
    """Signal `entered` once `method_name` returns, then stall inside the transaction"""
    original = getattr(target, method_name)

    def held(*args, **kwargs):
        result = original(*args, **kwargs)
        entered.set()
        time.sleep(seconds)
        return result

    setattr(target, method_name, held)


def race(first: Worker, second: Worker, entered: threading.Event):
    first.start()
    assert entered.wait(5), "first worker never reached its hold point"
    second.start()
    first.join(20)
    second.join(20)
    assert not first.is_alive() and not second.is_alive()


def create_match(file_engine, file_league, status: MatchStatus) -> str:
    with Session(file_engine) as session:
        match = Match(
            team_a_id=file_league.team_a,
            team_b_id=file_league.team_b,
            venue="Riverside Oval",
            match_date=datetime(2026, 5, 1, 10, 0),
            status=status,
        )
        session.add(match)
        session.commit()
        return match.id


def delivery(file_league, ball_number: int, runs: int = 0) -> DeliveryInput:
    return DeliveryInput(
        innings=1,
        over_number=1,
        ball_number=ball_number,
        batsman_on_strike=file_league.team_a_players[0],
        batsman_non_strike=file_league.team_a_players[1],
        bowler=file_league.team_b_players[0],
        runs=runs,
    )


def enter_ball_action(match_id: str, entry: DeliveryInput, entered: threading.Event = None, hold: str = None):
    def action(session, user):
        engine = BallEntryEngine(session, sleep=no_sleep)
        if entered is not None:
            hold_after(engine, hold, entered)
        return engine.enter_ball(match_id, user, entry).entry_seq
    return action


class TestConcurrentResponses:
    def test_second_response_sees_the_first(self, file_engine, file_league):
        match_id = create_match(file_engine, file_league, MatchStatus.SCHEDULED)
        with Session(file_engine) as session:
            captain_a = session.get(User, file_league.captain_a)
            approval_id = ApprovalEngine(session, sleep=no_sleep).request_approval(
                match_id, captain_a, ApprovalType.START_SCORING
            ).id

        def respond(approve, entered=None):
            def action(session, user):
                engine = ApprovalEngine(session, sleep=no_sleep)
                if entered is not None:
                    hold_after(engine, "_check_resolvable", entered)
                return engine.respond_to_approval(approval_id, user, approve).status
            return action

        entered = threading.Event()
        approver = Worker(file_engine, file_league.captain_b, respond(True, entered))
        rejecter = Worker(file_engine, file_league.captain_b, respond(False))
        race(approver, rejecter, entered)

        assert approver.error is None
        assert approver.result == ApprovalStatus.APPROVED
        assert isinstance(rejecter.error, StateError)

        with Session(file_engine) as session:
            assert session.get(ApprovalRequest, approval_id).status == ApprovalStatus.APPROVED
            assert session.get(Match, match_id).status == MatchStatus.FIRST_INNINGS


class TestConcurrentRequests:
    def test_only_one_request_stays_pending(self, file_engine, file_league):
        match_id = create_match(file_engine, file_league, MatchStatus.SCHEDULED)

        def request(entered=None):
            def action(session, user):
                engine = ApprovalEngine(session, sleep=no_sleep)
                if entered is not None:
                    hold_after(engine, "_lock_match", entered)
                return engine.request_approval(match_id, user, ApprovalType.START_SCORING).id
            return action

        entered = threading.Event()
        first = Worker(file_engine, file_league.captain_a, request(entered))
        second = Worker(file_engine, file_league.captain_b, request())
        race(first, second, entered)

        assert first.error is None and second.error is None

        with Session(file_engine) as session:
            statuses = {
                r.id: r.status
                for r in session.query(ApprovalRequest).filter_by(match_id=match_id).all()
            }
            assert statuses == {first.result: ApprovalStatus.CANCELLED, second.result: ApprovalStatus.PENDING}
            assert session.get(Match, match_id).status == MatchStatus.SCORING_PENDING


class TestConcurrentScoring:
    def test_entries_get_distinct_sequence_numbers(self, file_engine, file_league):
        match_id = create_match(file_engine, file_league, MatchStatus.FIRST_INNINGS)

        entered = threading.Event()
        first = Worker(
            file_engine, file_league.captain_a,
            enter_ball_action(match_id, delivery(file_league, 1, runs=4), entered, "_count_legal_balls"),
        )
        second = Worker(file_engine, file_league.captain_b, enter_ball_action(match_id, delivery(file_league, 2, runs=1)))
        race(first, second, entered)

        assert first.error is None and second.error is None
        assert (first.result, second.result) == (1, 2)

        with Session(file_engine) as session:
            match = session.get(Match, match_id)
            assert session.query(Ball).filter_by(match_id=match_id).count() == 2
            assert match.team_a_score == 5
            assert match.team_a_overs == 0.2

    def test_seventh_legal_ball_loses_the_race(self, file_engine, file_league):
        match_id = create_match(file_engine, file_league, MatchStatus.FIRST_INNINGS)
        with Session(file_engine) as session:
            engine = BallEntryEngine(session, sleep=no_sleep)
            captain_a = session.get(User, file_league.captain_a)
            for ball_number in range(1, 6):
                engine.enter_ball(match_id, captain_a, delivery(file_league, ball_number))

        entered = threading.Event()
        first = Worker(
            file_engine, file_league.captain_a,
            enter_ball_action(match_id, delivery(file_league, 6, runs=1), entered, "_count_legal_balls"),
        )
        second = Worker(file_engine, file_league.captain_b, enter_ball_action(match_id, delivery(file_league, 7, runs=1)))
        race(first, second, entered)

        assert first.error is None
        assert isinstance(second.error, ConflictError)
        with Session(file_engine) as session:
            assert session.query(Ball).filter_by(match_id=match_id, is_wide=False, is_no_ball=False).count() == 6

    def test_undo_and_entry_leave_score_matching_ledger(self, file_engine, file_league):
        match_id = create_match(file_engine, file_league, MatchStatus.FIRST_INNINGS)
        with Session(file_engine) as session:
            captain_a = session.get(User, file_league.captain_a)
            BallEntryEngine(session, sleep=no_sleep).enter_ball(match_id, captain_a, delivery(file_league, 1, runs=4))

        def undo(entered):
            def action(session, user):
                engine = BallEntryEngine(session, sleep=no_sleep)
                hold_after(engine, "_lock_match", entered)
                engine.undo_last_ball(match_id, user)
            return action

        entered = threading.Event()
        undoer = Worker(file_engine, file_league.captain_a, undo(entered))
        scorer = Worker(file_engine, file_league.captain_b, enter_ball_action(match_id, delivery(file_league, 2, runs=1)))
        race(undoer, scorer, entered)

        assert undoer.error is None and scorer.error is None

        with Session(file_engine) as session:
            balls = session.query(Ball).filter_by(match_id=match_id).all()
            match = session.get(Match, match_id)
            assert [(b.runs, b.entry_seq) for b in balls] == [(1, 1)]
            score = compute_innings_score(balls)
            assert (match.team_a_score, match.team_a_wickets, match.team_a_overs) == (
                score.runs, score.wickets, score.overs,
            )
            assert match.team_a_score == 1

"""
Ball Entry Engine - records deliveries, keeps the match score in step with the
ball ledger and peels deliveries back off on undo.
"""
import logging
import time
from dataclasses import dataclass
from typing import Optional
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, OperationalError, ProgrammingError
from sqlalchemy.orm import Session

from scorebook.config import settings
from scorebook.database import transaction
from scorebook.errors import (
    ValidationError, NotFoundError, ForbiddenError, StateError, ConflictError, TransientStorageError,
)
from scorebook.models.user import User
from scorebook.models.match import Match, MatchStatus, SCORING_STATUS_INNINGS, TERMINAL_STATUSES
from scorebook.models.ball import Ball, WicketType, FIELDER_WICKETS
from scorebook.models.audit import AuditAction
from scorebook.engine.scoring import (
    BALLS_PER_OVER, InningsScore, OverSummary,
    compute_innings_score, summarize_over, current_over_number,
)
from scorebook.engine.retry import with_retry
from scorebook.services.directory import DirectoryService
from scorebook.validators import validate_uuid, DeliveryValidator

logger = logging.getLogger(__name__)

# Statuses after which the second innings is the one on show
SECOND_INNINGS_ONWARDS = {MatchStatus.SECOND_INNINGS, MatchStatus.FINAL_PENDING, MatchStatus.COMPLETED}


@dataclass
class DeliveryInput:
    """One delivery as entered by the scorer"""
    innings: int
    over_number: int
    ball_number: int
    batsman_on_strike: str
    batsman_non_strike: str
    bowler: str
    runs: int = 0
    is_wicket: bool = False
    wicket_type: Optional[WicketType] = None
    dismissed_player: Optional[str] = None
    fielder: Optional[str] = None
    is_wide: bool = False
    is_no_ball: bool = False
    is_bye: bool = False
    is_leg_bye: bool = False

    @property
    def is_legal(self) -> bool:
        return not (self.is_wide or self.is_no_ball)


def _is_missing_table(error: Exception) -> bool:
    message = str(error).lower()
    return "no such table" in message or "does not exist" in message or "unknown column" in message


def _is_entry_seq_collision(error: IntegrityError) -> bool:
    message = str(error).lower()
    return "uq_ball_entry_seq" in message or "balls.entry_seq" in message


class BallEntryEngine:
    """
    Ball-by-ball scoring for a match.

    Every insert or delete runs in one transaction together with a full
    recomputation of the innings score, retried on lock contention.
    """

    def __init__(
        self,
        session: Session,
        audit=None,
        directory: DirectoryService = None,
        config=settings,
        sleep=time.sleep,
    ):
        self.session = session
        self.audit = audit
        self.directory = directory or DirectoryService(session)
        self.config = config
        self._sleep = sleep

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def enter_ball(self, match_id: str, caller: User, delivery: DeliveryInput) -> Ball:
        validate_uuid(match_id, "match")
        result = DeliveryValidator.validate(delivery)
        if not result["valid"]:
            raise ValidationError("; ".join(result["errors"]))

        ball = self._run_in_transaction(lambda: self._record_ball(match_id, caller, delivery))

        self._audit(
            AuditAction.BALL_ENTERED,
            caller.id,
            match_id,
            ball_number=delivery.ball_number,
            over_number=delivery.over_number,
            new_state={
                "innings": delivery.innings,
                "over_number": delivery.over_number,
                "ball_number": delivery.ball_number,
                "runs": delivery.runs,
                "is_wicket": delivery.is_wicket,
                "wicket_type": delivery.wicket_type.value if delivery.wicket_type else None,
            },
        )
        logger.info(
            f"Ball entered for match {match_id} by {caller.id}: "
            f"Over {delivery.over_number}.{delivery.ball_number}, {delivery.runs} runs"
        )
        return ball

    def undo_last_ball(self, match_id: str, caller: User, innings: Optional[int] = None) -> None:
        validate_uuid(match_id, "match")
        if innings is not None and innings not in (1, 2):
            raise ValidationError("Innings must be 1 or 2")

        removed = self._run_in_transaction(lambda: self._remove_last_ball(match_id, caller, innings))

        self._audit(
            AuditAction.BALL_DELETED,
            caller.id,
            match_id,
            ball_number=removed["ball_number"],
            over_number=removed["over_number"],
            previous_state=removed,
        )
        logger.info(
            f"Last ball undone for match {match_id} by {caller.id}: "
            f"innings {removed['innings']}, over {removed['over_number']}.{removed['ball_number']}"
        )

    def _record_ball(self, match_id: str, caller: User, delivery: DeliveryInput) -> Ball:
        match = self._lock_match(match_id)
        self._authorize(match, caller, "enter balls")

        expected_innings = SCORING_STATUS_INNINGS.get(match.status)
        if expected_innings is None:
            raise StateError(
                f"Cannot enter ball. Match status must be FIRST_INNINGS or SECOND_INNINGS, "
                f"current: {match.status.value}"
            )
        if delivery.innings != expected_innings:
            raise StateError(
                f"Cannot enter ball for innings {delivery.innings}: match is in {match.status.value}, "
                f"which takes innings {expected_innings}"
            )

        player_ids = {delivery.batsman_on_strike, delivery.batsman_non_strike, delivery.bowler}
        if delivery.is_wicket:
            player_ids.update(p for p in (delivery.dismissed_player, delivery.fielder) if p)
        if not self.directory.users_exist(player_ids):
            raise ValidationError("Invalid player IDs")

        bowling_team_id = match.bowling_team_id(delivery.innings)
        if not self.directory.is_active_member(bowling_team_id, delivery.bowler):
            raise ValidationError("Bowler must be from the bowling team")

        legal_balls = self._count_legal_balls(match_id, delivery.innings, delivery.over_number)
        if legal_balls >= BALLS_PER_OVER and delivery.is_legal:
            raise ConflictError(
                f"Cannot add more than {BALLS_PER_OVER} legal balls per over "
                f"(over {delivery.over_number} already has {legal_balls})"
            )

        last_seq = self.session.query(func.max(Ball.entry_seq)).filter(Ball.match_id == match_id).scalar()

        is_wicket = bool(delivery.is_wicket)
        ball = Ball(
            match_id=match_id,
            innings=delivery.innings,
            over_number=delivery.over_number,
            ball_number=delivery.ball_number,
            batsman_on_strike=delivery.batsman_on_strike,
            batsman_non_strike=delivery.batsman_non_strike,
            bowler=delivery.bowler,
            runs=delivery.runs,
            is_wicket=is_wicket,
            wicket_type=delivery.wicket_type if is_wicket else None,
            dismissed_player=delivery.dismissed_player if is_wicket else None,
            fielder=delivery.fielder if is_wicket and delivery.wicket_type in FIELDER_WICKETS else None,
            is_wide=bool(delivery.is_wide),
            is_no_ball=bool(delivery.is_no_ball),
            is_bye=bool(delivery.is_bye),
            is_leg_bye=bool(delivery.is_leg_bye),
            entry_seq=(last_seq or 0) + 1,
            entered_by=caller.id,
        )
        self.session.add(ball)
        self.session.flush()

        self._update_match_scores_from_balls(match, delivery.innings)
        return ball

    def _remove_last_ball(self, match_id: str, caller: User, innings: Optional[int]) -> dict:
        match = self._lock_match(match_id)
        self._authorize(match, caller, "undo balls")

        if match.status in TERMINAL_STATUSES:
            raise StateError(f"Cannot undo balls for match with status: {match.status.value}")

        query = self.session.query(Ball).filter(Ball.match_id == match_id)
        if innings is not None:
            query = query.filter(Ball.innings == innings)
        last_ball = query.order_by(Ball.entry_seq.desc(), Ball.timestamp.desc()).first()

        if last_ball is None:
            raise NotFoundError("No ball found to undo")

        removed = {
            "id": last_ball.id,
            "innings": last_ball.innings,
            "over_number": last_ball.over_number,
            "ball_number": last_ball.ball_number,
            "runs": last_ball.runs,
            "is_wicket": last_ball.is_wicket,
        }

        self.session.delete(last_ball)
        self.session.flush()

        self._update_match_scores_from_balls(match, removed["innings"])
        return removed

    def _update_match_scores_from_balls(self, match: Match, innings: int) -> InningsScore:
        """Recompute the innings snapshot on the match from scratch"""
        balls = self.session.query(Ball).filter_by(match_id=match.id, innings=innings).all()
        score = compute_innings_score(balls)
        match.set_innings_score(innings, score.runs, score.wickets, score.overs)
        return score

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_balls_by_match(
        self, match_id: str, innings: Optional[int] = None, over_number: Optional[int] = None
    ) -> list[Ball]:
        validate_uuid(match_id, "match")
        if self.session.get(Match, match_id) is None:
            raise NotFoundError("Match not found")

        query = self.session.query(Ball).filter(Ball.match_id == match_id)
        if innings is not None:
            query = query.filter(Ball.innings == innings)
        if over_number is not None:
            query = query.filter(Ball.over_number == over_number)

        try:
            return query.order_by(
                Ball.innings, Ball.over_number, Ball.ball_number, Ball.timestamp
            ).all()
        except (OperationalError, ProgrammingError) as e:
            if not _is_missing_table(e):
                raise
            self.session.rollback()
            logger.warning(f"Ball table not available, returning no balls for match {match_id}")
            return []

    def get_over_summary(self, match_id: str, innings: int, over_number: int) -> OverSummary:
        validate_uuid(match_id, "match")
        if innings not in (1, 2):
            raise ValidationError("Innings must be 1 or 2")
        if over_number < 1:
            raise ValidationError("Over number must be a positive integer")
        if self.session.get(Match, match_id) is None:
            raise NotFoundError("Match not found")

        balls = (
            self.session.query(Ball)
            .filter_by(match_id=match_id, innings=innings, over_number=over_number)
            .order_by(Ball.ball_number, Ball.entry_seq)
            .all()
        )
        return summarize_over(balls, innings, over_number)

    def get_scoring_data(self, match_id: str, caller: User) -> dict:
        """Everything a scorer's screen needs, read in one go"""
        validate_uuid(match_id, "match")
        match = self.session.get(Match, match_id)
        if match is None:
            raise NotFoundError("Match not found")

        team_a_players = self.directory.get_active_roster(match.team_a_id)
        team_b_players = self.directory.get_active_roster(match.team_b_id)

        try:
            balls = (
                self.session.query(Ball)
                .filter(Ball.match_id == match_id)
                .order_by(Ball.innings, Ball.over_number, Ball.ball_number, Ball.timestamp)
                .all()
            )
        except (OperationalError, ProgrammingError) as e:
            if not _is_missing_table(e):
                raise
            self.session.rollback()
            logger.warning(f"Ball table not available for match {match_id}, using empty ledger")
            balls = []

        innings_balls = {
            1: [b for b in balls if b.innings == 1],
            2: [b for b in balls if b.innings == 2],
        }
        scores = {}
        for innings, ledger in innings_balls.items():
            computed = compute_innings_score(ledger)
            runs, wickets, overs = match.get_innings_score(innings)
            scores[innings] = {
                "runs": runs if runs is not None else computed.runs,
                "wickets": wickets if wickets is not None else computed.wickets,
                "overs": overs if overs is not None else computed.overs,
            }

        current_innings = 2 if match.status in SECOND_INNINGS_ONWARDS else 1
        batting_team = match.team_a if current_innings == 1 else match.team_b
        bowling_team = match.team_b if current_innings == 1 else match.team_a
        batting_players = team_a_players if current_innings == 1 else team_b_players
        bowling_players = team_b_players if current_innings == 1 else team_a_players

        current_innings_balls = innings_balls[current_innings]
        over_number = current_over_number(current_innings_balls)
        current_over = [b for b in current_innings_balls if b.over_number == over_number]

        is_authorized = caller is not None and (
            caller.is_admin or self.directory.is_match_captain(match, caller.id)
        )

        return {
            "match": {
                "id": match.id,
                "team_a": self._team_header(match.team_a, scores[1]),
                "team_b": self._team_header(match.team_b, scores[2]),
                "venue": match.venue,
                "match_date": match.match_date,
                "status": match.status.value,
                "current_innings": current_innings,
                "batting_team": {"id": batting_team.id, "name": batting_team.team_name},
                "bowling_team": {"id": bowling_team.id, "name": bowling_team.team_name},
            },
            "players": {
                "batting": [self._player_brief(p) for p in batting_players],
                "bowling": [self._player_brief(p) for p in bowling_players],
            },
            "balls": balls,
            "current_over": current_over,
            "current_over_number": over_number,
            "is_authorized": is_authorized,
        }

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _run_in_transaction(self, unit):
        def attempt():
            try:
                with transaction(self.session, self.config.BALL_TRANSACTION_TIMEOUT_SECONDS):
                    return unit()
            except IntegrityError as e:
                if not _is_entry_seq_collision(e):
                    raise
                # Another scorer took the same entry_seq; the next attempt reads the new max
                raise TransientStorageError("Another ball was entered at the same time") from e

        return with_retry(
            attempt,
            max_retries=self.config.DB_MAX_RETRIES,
            initial_delay=self.config.DB_RETRY_INITIAL_DELAY,
            max_delay=self.config.DB_RETRY_MAX_DELAY,
            sleep=self._sleep,
        )

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

    def _authorize(self, match: Match, caller: User, action: str):
        if caller.is_admin or self.directory.is_match_captain(match, caller.id):
            return
        raise ForbiddenError(f"Only team captains can {action}")

    def _count_legal_balls(self, match_id: str, innings: int, over_number: int) -> int:
        return (
            self.session.query(Ball)
            .filter_by(match_id=match_id, innings=innings, over_number=over_number,
                       is_wide=False, is_no_ball=False)
            .count()
        )

    def _audit(self, action: AuditAction, performed_by: str, match_id: str, **details):
        if self.audit is None:
            return
        try:
            self.audit.log_action(action, performed_by, match_id=match_id, **details)
        except Exception as e:
            logger.warning(f"Failed to create audit log (non-critical): {e}")

    @staticmethod
    def _team_header(team, score: dict) -> dict:
        return {
            "id": team.id,
            "name": team.team_name,
            "captain_id": team.captain_id,
            "captain_name": team.captain.full_name if team.captain else None,
            "score": score,
        }

    @staticmethod
    def _player_brief(player: User) -> dict:
        return {"id": player.id, "name": player.full_name, "role": player.role.value}

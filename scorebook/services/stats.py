"""
Player statistics derived from the ball ledger of completed matches
"""
import logging
from collections import defaultdict
from dataclasses import dataclass
from sqlalchemy.orm import Session

from scorebook.errors import NotFoundError
from scorebook.models.ball import Ball, WicketType
from scorebook.models.match import Match
from scorebook.models.stats import PlayerStat
from scorebook.engine.scoring import BALLS_PER_OVER, overs_from_legal_balls

logger = logging.getLogger(__name__)


@dataclass
class PlayerStatsSummary:
    total_matches: int
    total_runs: int
    total_wickets: int
    total_catches: int
    total_stumpings: int
    batting_average: float
    highest_score: int
    best_bowling: str  # "wickets/runs"
    strike_rate: float
    economy_rate: float
    fifties: int
    hundreds: int
    three_plus_wickets: int


def _balls_from_overs(overs: float) -> int:
    completed = int(overs)
    return completed * BALLS_PER_OVER + round((overs - completed) * 10)


class StatsService:
    def __init__(self, session: Session):
        self.session = session

    def calculate_stats_from_balls(self, match_id: str) -> list[PlayerStat]:
        """Rebuild every PlayerStat row of a match from its deliveries"""
        match = self.session.get(Match, match_id)
        if match is None:
            raise NotFoundError("Match not found")

        balls = (
            self.session.query(Ball)
            .filter_by(match_id=match_id)
            .order_by(Ball.innings, Ball.entry_seq)
            .all()
        )

        figures = defaultdict(lambda: defaultdict(int))
        player_team = {}

        for ball in balls:
            batting_team_id = match.batting_team_id(ball.innings)
            bowling_team_id = match.bowling_team_id(ball.innings)

            batter = figures[ball.batsman_on_strike]
            player_team.setdefault(ball.batsman_on_strike, batting_team_id)
            player_team.setdefault(ball.batsman_non_strike, batting_team_id)
            figures[ball.batsman_non_strike]  # appears in the scorecard even without facing

            if not ball.is_wide:
                batter["balls_faced"] += 1
            if not (ball.is_wide or ball.is_bye or ball.is_leg_bye):
                batter["runs_scored"] += ball.runs
                if ball.runs == 4:
                    batter["fours"] += 1
                elif ball.runs == 6:
                    batter["sixes"] += 1

            bowler = figures[ball.bowler]
            player_team.setdefault(ball.bowler, bowling_team_id)
            if not (ball.is_bye or ball.is_leg_bye):
                bowler["runs_conceded"] += ball.runs
            if not (ball.is_wide or ball.is_no_ball):
                bowler["legal_balls"] += 1

            if ball.is_wicket:
                dismissed = ball.dismissed_player or ball.batsman_on_strike
                figures[dismissed]["is_out"] = 1
                player_team.setdefault(dismissed, batting_team_id)
                if ball.wicket_type != WicketType.RUN_OUT:
                    bowler["wickets_taken"] += 1
                if ball.fielder:
                    fielder = figures[ball.fielder]
                    player_team.setdefault(ball.fielder, bowling_team_id)
                    if ball.wicket_type == WicketType.CAUGHT:
                        fielder["catches"] += 1
                    elif ball.wicket_type == WicketType.STUMPED:
                        fielder["stumpings"] += 1
                    elif ball.wicket_type == WicketType.RUN_OUT:
                        fielder["run_outs"] += 1

        self.session.query(PlayerStat).filter_by(match_id=match_id).delete(synchronize_session=False)

        stats = []
        for player_id, f in figures.items():
            stat = PlayerStat(
                match_id=match_id,
                player_id=player_id,
                team_id=player_team[player_id],
                runs_scored=f["runs_scored"],
                balls_faced=f["balls_faced"],
                fours=f["fours"],
                sixes=f["sixes"],
                is_out=bool(f["is_out"]),
                wickets_taken=f["wickets_taken"],
                runs_conceded=f["runs_conceded"],
                overs_bowled=overs_from_legal_balls(f["legal_balls"]),
                catches=f["catches"],
                stumpings=f["stumpings"],
                run_outs=f["run_outs"],
            )
            self.session.add(stat)
            stats.append(stat)

        self.session.commit()
        logger.info(f"Stats calculated for match {match_id}: {len(stats)} players")
        return stats

    def get_player_stats_summary(self, player_id: str) -> PlayerStatsSummary:
        stats = self.session.query(PlayerStat).filter_by(player_id=player_id).all()
        if not stats:
            return PlayerStatsSummary(
                total_matches=0, total_runs=0, total_wickets=0, total_catches=0,
                total_stumpings=0, batting_average=0.0, highest_score=0, best_bowling="0/0",
                strike_rate=0.0, economy_rate=0.0, fifties=0, hundreds=0, three_plus_wickets=0,
            )

        total_runs = sum(s.runs_scored for s in stats)
        total_balls_faced = sum(s.balls_faced for s in stats)
        dismissals = sum(1 for s in stats if s.is_out)
        balls_bowled = sum(_balls_from_overs(s.overs_bowled) for s in stats)
        runs_conceded = sum(s.runs_conceded for s in stats)

        best = max(stats, key=lambda s: (s.wickets_taken, -s.runs_conceded))

        return PlayerStatsSummary(
            total_matches=len(stats),
            total_runs=total_runs,
            total_wickets=sum(s.wickets_taken for s in stats),
            total_catches=sum(s.catches for s in stats),
            total_stumpings=sum(s.stumpings for s in stats),
            # Not-out innings still count when nobody has dismissed the player yet
            batting_average=round(total_runs / (dismissals or len(stats)), 2),
            highest_score=max(s.runs_scored for s in stats),
            best_bowling=f"{best.wickets_taken}/{best.runs_conceded}",
            strike_rate=round(total_runs / total_balls_faced * 100, 2) if total_balls_faced else 0.0,
            economy_rate=round(runs_conceded / balls_bowled * BALLS_PER_OVER, 2) if balls_bowled else 0.0,
            fifties=sum(1 for s in stats if 50 <= s.runs_scored < 100),
            hundreds=sum(1 for s in stats if s.runs_scored >= 100),
            three_plus_wickets=sum(1 for s in stats if s.wickets_taken >= 3),
        )

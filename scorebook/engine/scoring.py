"""
Score aggregation - derives innings and over figures from recorded deliveries.

Everything here is a pure function over a list of ball-like objects (anything
with `runs`, `is_wicket`, `is_wide` and `is_no_ball`), so the cached score on a
match can always be rebuilt from the ledger.
"""
from dataclasses import dataclass, field

BALLS_PER_OVER = 6


@dataclass(frozen=True)
class InningsScore:
    """Runs / wickets / overs for one innings"""
    runs: int
    wickets: int
    overs: float
    legal_balls: int

    @property
    def overs_display(self) -> str:
        return f"{self.legal_balls // BALLS_PER_OVER}.{self.legal_balls % BALLS_PER_OVER}"

    @property
    def run_rate(self) -> float:
        if self.legal_balls == 0:
            return 0.0
        return (self.runs / self.legal_balls) * BALLS_PER_OVER

    def to_dict(self) -> dict:
        return {"runs": self.runs, "wickets": self.wickets, "overs": self.overs}


@dataclass
class OverSummary:
    """Figures for a single over"""
    innings: int
    over_number: int
    runs: int
    wickets: int
    legal_balls: int
    balls: list = field(default_factory=list)

    @property
    def is_complete(self) -> bool:
        return self.legal_balls >= BALLS_PER_OVER


def is_legal_delivery(ball) -> bool:
    return not ball.is_wide and not ball.is_no_ball


def overs_from_legal_balls(legal_balls: int) -> float:
    """
    Cricket "X.Y" notation as a number: 9 legal balls -> 1.3.
    The fractional digit is the ball within the over, never 0.6.
    """
    completed, in_over = divmod(legal_balls, BALLS_PER_OVER)
    return round(completed + in_over / 10, 1)


def compute_innings_score(deliveries) -> InningsScore:
    """Aggregate the deliveries of exactly one (match, innings)"""
    runs = 0
    wickets = 0
    legal_balls = 0
    for ball in deliveries:
        runs += ball.runs or 0
        if ball.is_wicket:
            wickets += 1
        if is_legal_delivery(ball):
            legal_balls += 1

    return InningsScore(
        runs=runs,
        wickets=wickets,
        overs=overs_from_legal_balls(legal_balls),
        legal_balls=legal_balls,
    )


def summarize_over(deliveries, innings: int, over_number: int) -> OverSummary:
    """Summarise the deliveries of one over (already filtered to that over)"""
    balls = list(deliveries)
    score = compute_innings_score(balls)
    return OverSummary(
        innings=innings,
        over_number=over_number,
        runs=score.runs,
        wickets=score.wickets,
        legal_balls=score.legal_balls,
        balls=balls,
    )


def current_over_number(deliveries) -> int:
    """Over being bowled next, from the legal balls recorded so far (1-based)"""
    legal_balls = sum(1 for ball in deliveries if is_legal_delivery(ball))
    return legal_balls // BALLS_PER_OVER + 1

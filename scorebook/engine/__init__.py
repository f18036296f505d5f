from scorebook.engine.scoring import compute_innings_score, summarize_over, InningsScore, OverSummary
from scorebook.engine.retry import with_retry

__all__ = ["compute_innings_score", "summarize_over", "InningsScore", "OverSummary", "with_retry"]

from src.engine.alerts import is_cooldown_active, pct_change, should_trigger
from src.engine.recommendation import (
    Recommendation,
    confidence_for_score,
    offer_pct_for_score,
    recommend,
)

__all__ = [
    "Recommendation",
    "confidence_for_score",
    "is_cooldown_active",
    "offer_pct_for_score",
    "pct_change",
    "recommend",
    "should_trigger",
]

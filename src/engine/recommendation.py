"""
HoloSwap Pricing — Buy Recommendation Engine

Scores a PricingSnapshot to suggest what share of market price a vendor
should offer. Additive integer score from three signals:

    Last sale recency:  <3d +20 | <7d +15 | <14d +10 | >30d -10 | no data -5
    7-day trend:        >15% +25 | >5% +15 | >0% +5 | <-15% -20 | <-5% -10
    30-day trend:       >20% +15 | <-20% -15

Tiers:
    hot buy     score >= 30
    confidence  high >= 40 | medium >= 20 | low
    offer %     >=40: 75 | >=25: 70 | >=15: 65 | >=5: 60 | >=-5: 55 | >=-15: 50 | else 45

Pure and deterministic given `now`.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

import structlog
from pydantic import BaseModel

from src.config import Confidence
from src.pipeline.market_data import PricingSnapshot
from src.utils.clock import utc_now

logger = structlog.get_logger(__name__)

HOT_BUY_SCORE: int = 30
HIGH_CONFIDENCE_SCORE: int = 40
MEDIUM_CONFIDENCE_SCORE: int = 20
NO_DATA_PCT: int = 50

# (minimum score, offer %) checked top-down
_OFFER_STEPS: tuple[tuple[int, int], ...] = (
    (40, 75),
    (25, 70),
    (15, 65),
    (5, 60),
    (-5, 55),
    (-15, 50),
)
_FLOOR_PCT: int = 45


class Recommendation(BaseModel):
    """Outcome of recommend()."""
    is_hot_buy: bool
    confidence: Confidence
    recommended_pct: int
    reasoning: str
    score: int | None = None


def _recency_points(snapshot: PricingSnapshot, now: datetime) -> tuple[int, str]:
    sold_at = snapshot.last_sold_at()
    if sold_at is None:
        return -5, "No recent sale data"

    days = (now - sold_at).total_seconds() / 86400
    if days < 3:
        return 20, "Sold within last 3 days (high demand)"
    if days < 7:
        return 15, "Sold within last week"
    if days < 14:
        return 10, "Recent market activity"
    if days > 30:
        return -10, "No recent sales (30+ days)"
    return 0, ""


def _trend_7d_points(pct: Decimal) -> tuple[int, str]:
    if pct > 15:
        return 25, f"Strong 7d uptrend (+{pct:.1f}%)"
    if pct > 5:
        return 15, f"Moderate 7d uptrend (+{pct:.1f}%)"
    if pct > 0:
        return 5, f"Slight 7d uptrend (+{pct:.1f}%)"
    if pct < -15:
        return -20, f"Strong 7d downtrend ({pct:.1f}%)"
    if pct < -5:
        return -10, f"Moderate 7d downtrend ({pct:.1f}%)"
    return 0, ""


def _trend_30d_points(pct: Decimal) -> tuple[int, str]:
    if pct > 20:
        return 15, f"Strong 30d uptrend (+{pct:.1f}%)"
    if pct < -20:
        return -15, f"Strong 30d downtrend ({pct:.1f}%)"
    return 0, ""


def offer_pct_for_score(score: int) -> int:
    """Monotonic step function from score to suggested offer percentage."""
    for minimum, pct in _OFFER_STEPS:
        if score >= minimum:
            return pct
    return _FLOOR_PCT


def confidence_for_score(score: int) -> Confidence:
    if score >= HIGH_CONFIDENCE_SCORE:
        return Confidence.HIGH
    if score >= MEDIUM_CONFIDENCE_SCORE:
        return Confidence.MEDIUM
    return Confidence.LOW


def recommend(snapshot: PricingSnapshot | None, now: datetime | None = None) -> Recommendation:
    """
    Suggest a buy offer for a card.

    Args:
        snapshot: Headline pricing, or None when no market data was found.
        now: Reference time for last-sale recency (default: current UTC).

    Returns:
        Recommendation. Missing pricing gives low confidence at 50%.
    """
    if snapshot is None:
        return Recommendation(
            is_hot_buy=False,
            confidence=Confidence.LOW,
            recommended_pct=NO_DATA_PCT,
            reasoning="No market data available",
        )

    now = now or utc_now()
    score = 0
    reasons: list[str] = []

    signals = [_recency_points(snapshot, now)]
    if snapshot.trend_7d_pct is not None:
        signals.append(_trend_7d_points(snapshot.trend_7d_pct))
    if snapshot.trend_30d_pct is not None:
        signals.append(_trend_30d_points(snapshot.trend_30d_pct))

    for points, reason in signals:
        score += points
        if reason:
            reasons.append(reason)

    recommendation = Recommendation(
        is_hot_buy=score >= HOT_BUY_SCORE,
        confidence=confidence_for_score(score),
        recommended_pct=offer_pct_for_score(score),
        reasoning=". ".join(reasons),
        score=score,
    )

    logger.debug(
        "buy_recommendation",
        product_id=snapshot.product_id,
        score=score,
        confidence=recommendation.confidence.value,
        recommended_pct=recommendation.recommended_pct,
    )
    return recommendation

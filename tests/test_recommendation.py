"""
Tests for the buy recommendation engine (src/engine/recommendation.py).

Signal points, tier boundaries and monotonicity of the offer percentage.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from src.config import Confidence
from src.engine.recommendation import (
    confidence_for_score,
    offer_pct_for_score,
    recommend,
)
from src.pipeline.market_data import PricingSnapshot, TrendPoint

NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


def _snapshot(
    sold_days_ago: float | None = None,
    trend_7d: str | None = None,
    trend_30d: str | None = None,
    last_sold_date: str | None = None,
) -> PricingSnapshot:
    trends = None
    if trend_7d is not None or trend_30d is not None:
        trends = {
            "7d": TrendPoint(percentage=Decimal(trend_7d or "0")),
            "30d": TrendPoint(percentage=Decimal(trend_30d or "0")),
        }
    if sold_days_ago is not None:
        last_sold_date = (NOW - timedelta(days=sold_days_ago)).isoformat()
    return PricingSnapshot(
        product_id="card:sv1|1||||",
        market_price=Decimal("10.00"),
        last_sold_date=last_sold_date,
        trends=trends,
        fetched_at=NOW,
    )


# ---------------------------------------------------------------------------
# No data
# ---------------------------------------------------------------------------


def test_no_snapshot() -> None:
    rec = recommend(None, now=NOW)
    assert rec.is_hot_buy is False
    assert rec.confidence is Confidence.LOW
    assert rec.recommended_pct == 50
    assert rec.reasoning == "No market data available"
    assert rec.score is None


def test_no_sale_no_trends() -> None:
    rec = recommend(_snapshot(), now=NOW)
    assert rec.score == -5
    assert rec.recommended_pct == 55
    assert rec.reasoning == "No recent sale data"


def test_unparseable_sale_date_counts_as_no_data() -> None:
    rec = recommend(_snapshot(last_sold_date="yesterday-ish"), now=NOW)
    assert rec.score == -5


# ---------------------------------------------------------------------------
# Recency
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "days,points",
    [(1, 20), (2.99, 20), (3, 15), (6.5, 15), (7, 10), (13, 10), (14, 0), (30, 0), (31, -10)],
)
def test_recency_points(days: float, points: int) -> None:
    assert recommend(_snapshot(sold_days_ago=days), now=NOW).score == points


# ---------------------------------------------------------------------------
# Trends
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "pct,points",
    [("20", 25), ("15.01", 25), ("15", 15), ("6", 15), ("5", 5), ("0.1", 5), ("0", 0),
     ("-5", 0), ("-6", -10), ("-15", -10), ("-16", -20)],
)
def test_trend_7d_points(pct: str, points: int) -> None:
    # Sold 20 days ago: recency contributes 0
    assert recommend(_snapshot(sold_days_ago=20, trend_7d=pct), now=NOW).score == points


@pytest.mark.parametrize("pct,points", [("25", 15), ("20", 0), ("-20", 0), ("-21", -15)])
def test_trend_30d_points(pct: str, points: int) -> None:
    assert recommend(_snapshot(sold_days_ago=20, trend_30d=pct), now=NOW).score == points


# ---------------------------------------------------------------------------
# Combined
# ---------------------------------------------------------------------------


def test_hot_buy_example() -> None:
    """Sold 10 days ago, +20% over 7 days: 10 + 25 = 35."""
    rec = recommend(_snapshot(sold_days_ago=10, trend_7d="20"), now=NOW)
    assert rec.score == 35
    assert rec.is_hot_buy
    assert rec.confidence is Confidence.MEDIUM
    assert rec.recommended_pct == 70
    assert "Recent market activity" in rec.reasoning
    assert "Strong 7d uptrend (+20.0%)" in rec.reasoning


def test_best_case() -> None:
    rec = recommend(_snapshot(sold_days_ago=1, trend_7d="30", trend_30d="40"), now=NOW)
    assert rec.score == 60
    assert rec.confidence is Confidence.HIGH
    assert rec.recommended_pct == 75


def test_worst_case() -> None:
    rec = recommend(_snapshot(sold_days_ago=60, trend_7d="-30", trend_30d="-40"), now=NOW)
    assert rec.score == -45
    assert not rec.is_hot_buy
    assert rec.confidence is Confidence.LOW
    assert rec.recommended_pct == 45


# ---------------------------------------------------------------------------
# Tiers
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "score,pct",
    [(40, 75), (39, 70), (25, 70), (24, 65), (15, 65), (14, 60), (5, 60), (4, 55),
     (-5, 55), (-6, 50), (-15, 50), (-16, 45)],
)
def test_offer_steps(score: int, pct: int) -> None:
    assert offer_pct_for_score(score) == pct


def test_offer_pct_is_monotonic() -> None:
    pcts = [offer_pct_for_score(s) for s in range(-60, 80)]
    assert pcts == sorted(pcts)


@pytest.mark.parametrize(
    "score,confidence",
    [(40, Confidence.HIGH), (39, Confidence.MEDIUM), (20, Confidence.MEDIUM), (19, Confidence.LOW)],
)
def test_confidence_tiers(score: int, confidence: Confidence) -> None:
    assert confidence_for_score(score) is confidence


def test_recommend_is_deterministic() -> None:
    snapshot = _snapshot(sold_days_ago=4, trend_7d="8")
    assert recommend(snapshot, now=NOW) == recommend(snapshot, now=NOW)

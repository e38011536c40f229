"""
HoloSwap Pricing — Price Alert Evaluation

Pure rules the price monitor applies when a watched card's price moves.

    pct_up    change from old price >= +threshold %
    pct_down  change from old price <= -threshold %
    above     new price >= threshold
    below     new price <= threshold

Nothing triggers without both an old and a new non-zero price.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from decimal import Decimal

from src.config import AlertType, settings


def pct_change(old_price: Decimal, new_price: Decimal) -> Decimal:
    return (new_price - old_price) / old_price * 100


def should_trigger(
    alert_type: str,
    threshold: Decimal,
    old_price: Decimal | None,
    new_price: Decimal | None,
) -> bool:
    """True when the move from old_price to new_price crosses the alert."""
    if not old_price or not new_price:
        return False

    try:
        kind = AlertType(alert_type)
    except ValueError:
        return False

    if kind is AlertType.PCT_UP:
        return pct_change(old_price, new_price) >= threshold
    if kind is AlertType.PCT_DOWN:
        return pct_change(old_price, new_price) <= -threshold
    if kind is AlertType.ABOVE:
        return new_price >= threshold
    return new_price <= threshold


def is_cooldown_active(
    last_triggered: datetime | None,
    cooldown_hours: int | None,
    now: datetime,
) -> bool:
    """An alert stays quiet for cooldown_hours (default 24) after it fires."""
    if last_triggered is None:
        return False
    if last_triggered.tzinfo is None and now.tzinfo is not None:
        # SQLite hands back naive timestamps; they are stored in UTC.
        last_triggered = last_triggered.replace(tzinfo=now.tzinfo)
    hours = cooldown_hours or settings.ALERT_DEFAULT_COOLDOWN_HOURS
    return now - last_triggered < timedelta(hours=hours)

"""Injectable UTC clock shared by the caches, the rate limiter and the recorder."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Callable

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def next_utc_midnight(now: datetime) -> datetime:
    """Start of the UTC calendar day after `now`."""
    now_utc = now.astimezone(timezone.utc)
    tomorrow = now_utc.date() + timedelta(days=1)
    return datetime(tomorrow.year, tomorrow.month, tomorrow.day, tzinfo=timezone.utc)

"""
HoloSwap Pricing — Daily PokePulse Call Budget

One counter shared by every pricing path (interactive lookups and the
background price monitor). Each outbound catalogue search or market-data
call must acquire() immediately before the request goes out; once the
daily ceiling is reached acquire() raises before any network I/O.

The reset is lazy: the first acquire() on a new UTC calendar day zeroes the
counter. There is no await between the check and the increment, so under
asyncio no two requests can interleave inside acquire().
"""

from __future__ import annotations

from datetime import date, datetime

import structlog

from src.config import settings
from src.utils.clock import Clock, next_utc_midnight, utc_now

logger = structlog.get_logger(__name__)


class QuotaExceededError(Exception):
    """
    Daily PokePulse budget exhausted.

    Retryable: callers should surface it as HTTP 429 with a Retry-After of
    `retry_after` (the next UTC midnight).
    """

    status_code = 429

    def __init__(self, limit: int, retry_after: datetime) -> None:
        self.limit = limit
        self.retry_after = retry_after
        super().__init__(
            f"Daily API limit of {limit} calls reached. "
            f"Retry after {retry_after.isoformat()}."
        )


class DailyRateLimiter:
    """
    Check-and-increment call counter that resets at UTC midnight.

    Usage:
        limiter = DailyRateLimiter()
        limiter.acquire()          # raises QuotaExceededError when spent
        await client.post(...)
    """

    def __init__(self, daily_limit: int | None = None, clock: Clock = utc_now) -> None:
        self.daily_limit = daily_limit if daily_limit is not None else settings.PRICING_DAILY_CALL_LIMIT
        if self.daily_limit < 0:
            raise ValueError(f"daily_limit must be non-negative, got {self.daily_limit}")
        self._clock = clock
        self._calls_today = 0
        self._reset_day: date = self._today()

    def _today(self) -> date:
        return self._clock().date()

    def _roll_over(self) -> None:
        today = self._today()
        if today != self._reset_day:
            logger.info(
                "rate_limit_daily_reset",
                previous_day=self._reset_day.isoformat(),
                calls_made=self._calls_today,
            )
            self._calls_today = 0
            self._reset_day = today

    @property
    def calls_today(self) -> int:
        self._roll_over()
        return self._calls_today

    @property
    def remaining(self) -> int:
        return max(self.daily_limit - self.calls_today, 0)

    def is_exhausted(self) -> bool:
        return self.remaining == 0

    def acquire(self, purpose: str = "pokepulse") -> None:
        """
        Reserve one external call for today.

        Raises:
            QuotaExceededError: if today's budget is already spent. Nothing
                is counted in that case.
        """
        self._roll_over()

        if self._calls_today >= self.daily_limit:
            retry_after = next_utc_midnight(self._clock())
            logger.warning(
                "rate_limit_exceeded",
                purpose=purpose,
                limit=self.daily_limit,
                retry_after=retry_after.isoformat(),
            )
            raise QuotaExceededError(self.daily_limit, retry_after)

        self._calls_today += 1
        logger.debug(
            "rate_limit_call_counted",
            purpose=purpose,
            calls_today=self._calls_today,
            limit=self.daily_limit,
        )

"""
HoloSwap Pricing — In-Memory TTL Cache

key -> (payload, stored_at). Two independent instances back the pricing
pipeline: catalogue-search results (6h) and market-data results (15m).
Eviction is lazy: an entry older than its TTL is deleted on the read that
finds it, and that read reports a miss.

Entries are process-local and not persisted across restarts.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any

import structlog

from src.utils.clock import Clock, utc_now

logger = structlog.get_logger(__name__)


# Default for get() when a cached None must not read as a miss
MISSING: Any = object()


class TTLCache:
    """
    Time-to-live cache with an injectable clock.

    An entry stored at T is served up to and including T + ttl and is
    absent from then on.

    Any payload can be cached, None included. Callers that need to tell a
    cached None from a miss pass MISSING as the default.
    """

    def __init__(self, name: str, ttl: timedelta, clock: Clock = utc_now) -> None:
        if ttl <= timedelta(0):
            raise ValueError(f"ttl must be positive, got {ttl}")
        self.name = name
        self.ttl = ttl
        self._clock = clock
        self._entries: dict[str, tuple[Any, datetime]] = {}

    def get(self, key: str, default: Any = None) -> Any:
        entry = self._entries.get(key)
        if entry is None:
            return default

        payload, stored_at = entry
        age = self._clock() - stored_at
        if age > self.ttl:
            del self._entries[key]
            logger.debug(
                "ttl_cache_expired",
                cache=self.name,
                key=key,
                age_seconds=int(age.total_seconds()),
            )
            return default

        return payload

    def set(self, key: str, payload: Any) -> None:
        self._entries[key] = (payload, self._clock())

    def clear(self) -> None:
        self._entries.clear()

    def __contains__(self, key: str) -> bool:
        return self.get(key, MISSING) is not MISSING

    def __len__(self) -> int:
        return len(self._entries)

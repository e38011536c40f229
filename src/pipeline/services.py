"""
HoloSwap Pricing — Pricing Services Container

The process-wide mutable state of the pricing pipeline, built once at
start-up and handed to every consumer (interactive lookups and the price
monitor) so they share one quota and one pair of caches.

Usage:
    services = PricingServices.create()
    async with services.open_clients() as (catalogue, market):
        pipeline = PricingPipeline(services, catalogue, market)
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import timedelta
from typing import AsyncIterator

from src.config import settings
from src.pipeline.catalogue import CatalogueClient
from src.pipeline.market_data import MarketDataClient
from src.utils.clock import Clock, utc_now
from src.utils.rate_limit import DailyRateLimiter
from src.utils.ttl_cache import TTLCache


class PricingServices:
    """Catalogue cache, market-data cache, daily rate limiter and clock."""

    def __init__(
        self,
        catalogue_cache: TTLCache,
        market_cache: TTLCache,
        rate_limiter: DailyRateLimiter,
        clock: Clock = utc_now,
    ):
        self.catalogue_cache = catalogue_cache
        self.market_cache = market_cache
        self.rate_limiter = rate_limiter
        self.clock = clock

    @classmethod
    def create(cls, clock: Clock = utc_now, daily_limit: int | None = None) -> PricingServices:
        """Build with TTLs and quota from settings."""
        return cls(
            catalogue_cache=TTLCache(
                "catalogue",
                timedelta(seconds=settings.CATALOGUE_CACHE_TTL_SECONDS),
                clock=clock,
            ),
            market_cache=TTLCache(
                "market_data",
                timedelta(seconds=settings.MARKET_DATA_CACHE_TTL_SECONDS),
                clock=clock,
            ),
            rate_limiter=DailyRateLimiter(daily_limit=daily_limit, clock=clock),
            clock=clock,
        )

    @asynccontextmanager
    async def open_clients(self) -> AsyncIterator[tuple[CatalogueClient, MarketDataClient]]:
        """Catalogue and market-data clients bound to this container's limiter."""
        async with CatalogueClient(self.rate_limiter) as catalogue:
            async with MarketDataClient(self.rate_limiter) as market:
                yield catalogue, market

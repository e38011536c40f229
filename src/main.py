"""
HoloSwap Pricing — Application Entrypoint

Background worker process: configures structlog, connects to Postgres,
reports the state of the local card index and product-identity cache, then
runs the price monitor until SIGTERM/SIGINT.

Interactive lookups are served by the web tier, which builds its own
PricingServices and PricingPipeline on top of this package.

Run via:
    python -m src.main
"""

from __future__ import annotations

import asyncio
import logging
import sys

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from src.config import settings
from src.models.card_index import CardIndex
from src.notifications.telegram import TelegramNotifier
from src.pipeline.catalogue import get_catalogue_stats
from src.pipeline.price_monitor import run_price_monitor
from src.pipeline.services import PricingServices

__version__ = "0.1.0"


# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------


def configure_logging(log_level: str | None = None, json_logs: bool | None = None) -> None:
    """
    Route stdlib and structlog output to stdout.

    JSON lines in production; a coloured console renderer when LOG_JSON is off.
    """
    level = getattr(logging, (log_level or settings.LOG_LEVEL).upper())
    use_json = settings.LOG_JSON if json_logs is None else json_logs

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(max(level, logging.WARNING))

    renderer = (
        structlog.processors.JSONRenderer()
        if use_json
        else structlog.dev.ConsoleRenderer()
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------


def create_db_engine() -> tuple[AsyncEngine, async_sessionmaker[AsyncSession]]:
    """Async engine (asyncpg) and session factory from DATABASE_URL."""
    engine = create_async_engine(
        settings.DATABASE_URL,
        echo=False,
        pool_size=5,
        max_overflow=10,
        pool_pre_ping=True,
    )
    session_factory = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )
    return engine, session_factory


async def report_data_state(session_factory: async_sessionmaker[AsyncSession]) -> int:
    """
    Log card-index and catalogue-cache sizes. Doubles as the DB health check.

    Returns:
        Number of cards in card_index.
    """
    logger = structlog.get_logger(__name__)

    async with session_factory() as session:
        result = await session.execute(select(func.count()).select_from(CardIndex))
        card_count = result.scalar_one()
        stats = await get_catalogue_stats(session)

    if card_count == 0:
        logger.warning(
            "card_index_empty",
            hint="run scripts/import_cards.py before serving lookups",
        )
    else:
        logger.info("card_index_ready", cards=card_count)

    if stats is not None:
        logger.info(
            "catalogue_cache_state",
            products=stats.total_products,
            sets=stats.total_sets,
            raw_products=stats.raw_products,
            newest_entry=str(stats.newest_entry) if stats.newest_entry else None,
        )
    return card_count


# ---------------------------------------------------------------------------
# Worker
# ---------------------------------------------------------------------------


async def main() -> None:
    configure_logging()
    logger = structlog.get_logger(__name__)
    logger.info("holoswap_pricing_worker_starting", version=__version__)

    for name in ("POKEPULSE_CATALOGUE_KEY", "POKEPULSE_MARKET_KEY"):
        if not getattr(settings, name):
            logger.warning("config_api_key_missing", setting=name)

    engine, session_factory = create_db_engine()
    try:
        await report_data_state(session_factory)
    except Exception as e:
        logger.error("database_unreachable", error=str(e), error_type=type(e).__name__)
        await engine.dispose()
        raise

    services = PricingServices.create()
    logger.info(
        "holoswap_pricing_worker_ready",
        daily_call_limit=services.rate_limiter.daily_limit,
        monitor_interval_hours=settings.PRICE_MONITOR_INTERVAL_HOURS,
    )

    try:
        async with TelegramNotifier(session_factory) as notifier:
            await run_price_monitor(session_factory, services, notifier)
    finally:
        await engine.dispose()
        logger.info("holoswap_pricing_worker_stopped")


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass

"""
Tests for the background price monitor (src/pipeline/price_monitor.py).

Covers:
- Product id back-fill from the catalogue cache table
- Watchlist price updates and history snapshots
- Alert evaluation with cooldowns, and notifier dispatch
- Early stop when the shared daily quota is spent
"""

from __future__ import annotations

from datetime import timedelta
from decimal import Decimal
from typing import Any
from unittest.mock import AsyncMock

import httpx
import pytest
import respx
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.config import AlertType, settings
from src.models.card_index import CardIndex
from src.models.price_history import MarketPriceHistory
from src.models.watchlist import PriceAlert, WatchlistEntry
from src.pipeline.catalogue import ProductRef, cache_catalogue_results
from src.pipeline.market_data import MarketDataClient
from src.pipeline.price_monitor import MonitorRunStats, PriceMonitor
from src.pipeline.services import PricingServices
from tests.conftest import FakeClock

PRODUCT_ID = "card:sv1|001/198||||"
BATCH_URL = "/market-data/batch"


def _market_payload(value: float) -> dict[str, Any]:
    return {"data": {PRODUCT_ID: [{"condition": "NM", "value": value, "currency": "£"}]}}


@pytest.fixture
async def watched(
    session_factory: async_sessionmaker[AsyncSession],
    clock: FakeClock,
) -> dict[str, int]:
    """
    Two users watching sv01 #001 at £10.00.

    User 1: pct_up 20% alert, never triggered.
    User 2: above £11 alert, triggered an hour ago (in cooldown).
    """
    async with session_factory() as session:
        first = WatchlistEntry(
            user_id=1, set_id="sv01", card_number="001", card_name="Pikachu",
            last_price=Decimal("10.00"),
        )
        second = WatchlistEntry(
            user_id=2, set_id="sv01", card_number="001", card_name="Pikachu",
            last_price=Decimal("10.00"),
        )
        session.add_all([first, second])
        await session.flush()

        pct_alert = PriceAlert(
            user_id=1, watchlist_id=first.id, alert_type=AlertType.PCT_UP.value,
            threshold=Decimal("20"), is_active=True,
        )
        cooling_alert = PriceAlert(
            user_id=2, watchlist_id=second.id, alert_type=AlertType.ABOVE.value,
            threshold=Decimal("11"), is_active=True,
            last_triggered=clock() - timedelta(hours=1),
        )
        session.add_all([pct_alert, cooling_alert])
        await session.commit()

        await cache_catalogue_results(
            session, "sv1",
            [ProductRef(product_id=PRODUCT_ID, card_number="001/198", card_name="Pikachu")],
            now=clock(),
        )
        return {"pct_alert": pct_alert.id, "cooling_alert": cooling_alert.id}


async def _run(
    session_factory: async_sessionmaker[AsyncSession],
    services: PricingServices,
    notifier: Any,
    payload: dict[str, Any],
) -> MonitorRunStats:
    with respx.mock(base_url=settings.POKEPULSE_MARKET_URL) as mock:
        mock.post(BATCH_URL).mock(return_value=httpx.Response(200, json=payload))
        async with MarketDataClient(services.rate_limiter, base_backoff=0) as client:
            monitor = PriceMonitor(session_factory, services, notifier, market_client=client)
            return await monitor.run_once()


# ---------------------------------------------------------------------------
# Test 1: Price rise updates the watchlist and fires one alert
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_price_rise_triggers_alert(
    session_factory: async_sessionmaker[AsyncSession],
    services: PricingServices,
    watched: dict[str, int],
    clock: FakeClock,
) -> None:
    notifier = AsyncMock()

    stats = await _run(session_factory, services, notifier, _market_payload(12.0))

    assert stats == MonitorRunStats(cards=1, priced=1, alerts_triggered=1, stopped_on_quota=False)
    notifier.send_to_user.assert_awaited_once_with(
        1,
        "📈 Pikachu price up",
        "Pikachu (sv01 #001) is now £12.00 (+20.0% from £10.00)",
    )

    async with session_factory() as session:
        entries = (await session.execute(select(WatchlistEntry))).scalars().all()
        assert {Decimal(e.last_price) for e in entries} == {Decimal("12.00")}
        assert {e.product_id for e in entries} == {PRODUCT_ID}

        pct_alert = await session.get(PriceAlert, watched["pct_alert"])
        assert pct_alert is not None and pct_alert.last_triggered is not None

        history = (await session.execute(select(MarketPriceHistory))).scalars().all()
        assert len(history) == 1
        assert history[0].snapshot_date == clock().date()


# ---------------------------------------------------------------------------
# Test 2: Cooldown suppresses a repeat
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_second_run_respects_cooldown(
    session_factory: async_sessionmaker[AsyncSession],
    services: PricingServices,
    watched: dict[str, int],
    clock: FakeClock,
) -> None:
    notifier = AsyncMock()
    await _run(session_factory, services, notifier, _market_payload(12.0))

    clock.advance(hours=4)
    stats = await _run(session_factory, services, notifier, _market_payload(15.0))

    # pct_alert fired 4h ago; cooling_alert 5h ago. Both inside 24h.
    assert stats.alerts_triggered == 0
    assert notifier.send_to_user.await_count == 1


# ---------------------------------------------------------------------------
# Test 3: Notifier failure does not stop the run
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_notifier_failure_is_logged(
    session_factory: async_sessionmaker[AsyncSession],
    services: PricingServices,
    watched: dict[str, int],
) -> None:
    notifier = AsyncMock()
    notifier.send_to_user.side_effect = RuntimeError("telegram down")

    stats = await _run(session_factory, services, notifier, _market_payload(12.0))

    assert stats.alerts_triggered == 1
    assert stats.priced == 1


# ---------------------------------------------------------------------------
# Test 4: Zero price leaves the watchlist untouched
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_zero_price_skipped(
    session_factory: async_sessionmaker[AsyncSession],
    services: PricingServices,
    watched: dict[str, int],
) -> None:
    stats = await _run(session_factory, services, None, _market_payload(0.0))

    assert stats.priced == 0
    async with session_factory() as session:
        entries = (await session.execute(select(WatchlistEntry))).scalars().all()
        assert {Decimal(e.last_price) for e in entries} == {Decimal("10.00")}


# ---------------------------------------------------------------------------
# Test 5: Spent quota stops the run before any call
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_quota_exhausted_stops_early(
    session_factory: async_sessionmaker[AsyncSession],
    watched: dict[str, int],
    clock: FakeClock,
) -> None:
    services = PricingServices.create(clock=clock, daily_limit=0)

    with respx.mock(base_url=settings.POKEPULSE_MARKET_URL, assert_all_called=False) as mock:
        route = mock.post(BATCH_URL).mock(return_value=httpx.Response(200, json=_market_payload(12.0)))
        async with MarketDataClient(services.rate_limiter) as client:
            monitor = PriceMonitor(session_factory, services, None, market_client=client)
            stats = await monitor.run_once()

    assert stats.stopped_on_quota
    assert stats.priced == 0
    assert route.call_count == 0


# ---------------------------------------------------------------------------
# Test 6: Unresolvable cards and empty watchlists
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_card_without_product_skipped(
    session_factory: async_sessionmaker[AsyncSession],
    services: PricingServices,
) -> None:
    async with session_factory() as session:
        session.add(WatchlistEntry(user_id=1, set_id="sv03", card_number="125"))
        await session.commit()

    async with MarketDataClient(services.rate_limiter) as client:
        monitor = PriceMonitor(session_factory, services, None, market_client=client)
        stats = await monitor.run_once()

    assert stats == MonitorRunStats(cards=1, priced=0, alerts_triggered=0, stopped_on_quota=False)
    assert services.rate_limiter.calls_today == 0


@pytest.mark.asyncio
async def test_empty_watchlist(
    session_factory: async_sessionmaker[AsyncSession],
    services: PricingServices,
) -> None:
    async with MarketDataClient(services.rate_limiter) as client:
        monitor = PriceMonitor(session_factory, services, None, market_client=client)
        assert await monitor.run_once() == MonitorRunStats(0, 0, 0, False)


# ---------------------------------------------------------------------------
# Test 7: Loop exits on shutdown during the start-up delay
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_shutdown_before_first_run(
    session_factory: async_sessionmaker[AsyncSession],
    services: PricingServices,
) -> None:
    monitor = PriceMonitor(session_factory, services)
    monitor.run_once = AsyncMock()  # type: ignore[method-assign]

    await monitor.shutdown()
    await monitor.run()

    monitor.run_once.assert_not_awaited()


# ---------------------------------------------------------------------------
# Test 8: Stored set-id override is used to find the product
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_product_found_under_stored_set_override(
    session_factory: async_sessionmaker[AsyncSession],
    services: PricingServices,
    clock: FakeClock,
) -> None:
    override_product = "card:svx|001/198||||"
    async with session_factory() as session:
        session.add(
            CardIndex(
                id="sv01-001", name="Pikachu", local_id="001", set_id="sv01",
                set_name="Scarlet & Violet", external_set_id="svx",
            )
        )
        session.add(WatchlistEntry(user_id=1, set_id="sv01", card_number="001", card_name="Pikachu"))
        await session.commit()
        await cache_catalogue_results(
            session, "svx",
            [ProductRef(product_id=override_product, card_number="001/198", card_name="Pikachu")],
            now=clock(),
        )

    payload = {"data": {override_product: [{"condition": "NM", "value": 12.0, "currency": "£"}]}}
    with respx.mock(base_url=settings.POKEPULSE_MARKET_URL) as mock:
        route = mock.post(BATCH_URL).mock(return_value=httpx.Response(200, json=payload))
        async with MarketDataClient(services.rate_limiter, base_backoff=0) as client:
            monitor = PriceMonitor(session_factory, services, None, market_client=client)
            stats = await monitor.run_once()

    assert route.call_count == 1
    assert stats.priced == 1
    async with session_factory() as session:
        entry = (await session.execute(select(WatchlistEntry))).scalar_one()
        assert entry.product_id == override_product
        assert Decimal(entry.last_price) == Decimal("12.00")

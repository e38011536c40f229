"""
HoloSwap Pricing — Background Price Monitor

Re-prices every watched card on a fixed cadence (default every 4 hours,
plus one run shortly after start-up) and fires price alerts.

Each run:
    1. Distinct (set_id, card_number) across all users' watchlists.
    2. Missing product ids filled from the catalogue cache table (first raw
       variant). Cards still without one are skipped this run.
    3. Market data in batches of PRICE_MONITOR_BATCH_SIZE. The monitor shares
       the interactive quota; when it is spent the run stops early so the
       remaining budget is left for customers.
    4. Per priced card: update last_price on every watchlist row, record the
       daily history snapshot, evaluate active alerts against the previous
       price, and notify.
"""

from __future__ import annotations

import asyncio
import signal
from datetime import datetime
from decimal import Decimal
from typing import Any, NamedTuple

import httpx
import structlog
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.config import settings
from src.engine.alerts import is_cooldown_active, pct_change, should_trigger
from src.models.watchlist import PriceAlert, WatchlistEntry
from src.notifications.telegram import Notifier, format_price_alert
from src.pipeline.catalogue import ProductRef, find_cached_products
from src.pipeline.history import record_snapshot
from src.pipeline.market_data import MarketDataClient, MarketDataFetcher, PricingSnapshot
from src.pipeline.pokepulse import PokePulseUnavailableError
from src.pipeline.pricing import get_external_set_id
from src.pipeline.services import PricingServices
from src.utils.rate_limit import QuotaExceededError

logger = structlog.get_logger(__name__)


class WatchedCard(NamedTuple):
    set_id: str
    card_number: str
    card_name: str | None
    product_id: str | None


class MonitorRunStats(NamedTuple):
    cards: int
    priced: int
    alerts_triggered: int
    stopped_on_quota: bool


class PriceMonitor:
    """
    Periodic re-pricing of watchlist cards.

    Usage:
        monitor = PriceMonitor(session_factory, services, notifier)
        await monitor.run()          # until shutdown()
        await monitor.run_once()     # single pass, e.g. from tests
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        services: PricingServices,
        notifier: Notifier | None = None,
        market_client: MarketDataClient | None = None,
    ):
        self.session_factory = session_factory
        self.services = services
        self.notifier = notifier
        self._market_client = market_client
        self._shutdown_event = asyncio.Event()
        self._interval_seconds = settings.PRICE_MONITOR_INTERVAL_HOURS * 3600
        self._startup_delay_seconds = settings.PRICE_MONITOR_STARTUP_DELAY_SECONDS

    async def shutdown(self) -> None:
        """Signal graceful shutdown to the monitor loop."""
        logger.info("price_monitor_shutdown_requested")
        self._shutdown_event.set()

    # -----------------------------------------------------------------------
    # Steps
    # -----------------------------------------------------------------------

    async def _watched_cards(self, session: AsyncSession) -> list[WatchedCard]:
        result = await session.execute(
            select(
                WatchlistEntry.set_id,
                WatchlistEntry.card_number,
                WatchlistEntry.card_name,
                WatchlistEntry.product_id,
            ).order_by(WatchlistEntry.set_id, WatchlistEntry.card_number, WatchlistEntry.id)
        )
        cards: dict[tuple[str, str], WatchedCard] = {}
        for set_id, number, name, product_id in result.all():
            key = (set_id, number)
            existing = cards.get(key)
            if existing is None:
                cards[key] = WatchedCard(set_id, number, name, product_id)
            elif existing.product_id is None and product_id:
                cards[key] = existing._replace(product_id=product_id)
        return list(cards.values())

    async def _resolve_product_ids(
        self,
        session: AsyncSession,
        cards: list[WatchedCard],
    ) -> list[WatchedCard]:
        resolved: list[WatchedCard] = []
        for card in cards:
            if card.product_id:
                resolved.append(card)
                continue

            external_set_id = await get_external_set_id(session, card.set_id)
            cached = await find_cached_products(session, external_set_id, card.card_number)
            if not cached:
                logger.debug(
                    "price_monitor_product_unresolved",
                    set_id=card.set_id,
                    card_number=card.card_number,
                )
                continue

            product_id = cached[0].product_id
            await session.execute(
                update(WatchlistEntry)
                .where(
                    WatchlistEntry.set_id == card.set_id,
                    WatchlistEntry.card_number == card.card_number,
                    WatchlistEntry.product_id.is_(None),
                )
                .values(product_id=product_id)
            )
            await session.commit()
            resolved.append(card._replace(product_id=product_id))
        return resolved

    async def _previous_price(self, session: AsyncSession, card: WatchedCard) -> Decimal | None:
        result = await session.execute(
            select(WatchlistEntry.last_price)
            .where(
                WatchlistEntry.set_id == card.set_id,
                WatchlistEntry.card_number == card.card_number,
                WatchlistEntry.last_price.is_not(None),
            )
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def _evaluate_alerts(
        self,
        session: AsyncSession,
        card: WatchedCard,
        old_price: Decimal,
        new_price: Decimal,
        now: datetime,
    ) -> int:
        result = await session.execute(
            select(PriceAlert)
            .join(WatchlistEntry, WatchlistEntry.id == PriceAlert.watchlist_id)
            .where(
                WatchlistEntry.set_id == card.set_id,
                WatchlistEntry.card_number == card.card_number,
                PriceAlert.is_active.is_(True),
            )
            .order_by(PriceAlert.id)
        )

        due: list[tuple[int, int, str]] = []
        for alert in result.scalars().all():
            if is_cooldown_active(alert.last_triggered, alert.cooldown_hours, now):
                continue
            if not should_trigger(alert.alert_type, Decimal(alert.threshold), old_price, new_price):
                continue
            due.append((alert.id, alert.user_id, alert.alert_type))

        if not due:
            return 0

        await session.execute(
            update(PriceAlert)
            .where(PriceAlert.id.in_([alert_id for alert_id, _, _ in due]))
            .values(last_triggered=now)
        )
        await session.commit()

        title, body = format_price_alert(
            card.card_name or card.card_number,
            card.set_id,
            card.card_number,
            old_price,
            new_price,
        )
        for alert_id, user_id, alert_type in due:
            logger.info(
                "price_alert_triggered",
                alert_id=alert_id,
                user_id=user_id,
                alert_type=alert_type,
                set_id=card.set_id,
                card_number=card.card_number,
                old_price=str(old_price),
                new_price=str(new_price),
                pct_change=f"{pct_change(old_price, new_price):.1f}",
            )

            if self.notifier is None:
                continue
            try:
                await self.notifier.send_to_user(user_id, title, body)
            except Exception as e:
                logger.error(
                    "price_alert_dispatch_failed",
                    alert_id=alert_id,
                    user_id=user_id,
                    error=str(e),
                    error_type=type(e).__name__,
                )
        return len(due)

    async def _apply_price(
        self,
        session: AsyncSession,
        card: WatchedCard,
        snapshot: PricingSnapshot,
        now: datetime,
    ) -> int:
        new_price = snapshot.market_price
        old_price = await self._previous_price(session, card)

        await session.execute(
            update(WatchlistEntry)
            .where(
                WatchlistEntry.set_id == card.set_id,
                WatchlistEntry.card_number == card.card_number,
            )
            .values(last_price=new_price, last_checked=now)
        )
        await session.commit()

        await record_snapshot(
            session, card.set_id, card.card_number, card.card_name, snapshot,
            snapshot_date=now.date(),
        )

        if not old_price:
            return 0
        return await self._evaluate_alerts(session, card, Decimal(old_price), new_price, now)

    # -----------------------------------------------------------------------
    # Run
    # -----------------------------------------------------------------------

    async def _run_with_fetcher(self, fetcher: MarketDataFetcher) -> MonitorRunStats:
        limiter = self.services.rate_limiter
        priced = 0
        alerts_triggered = 0
        stopped_on_quota = False

        async with self.session_factory() as session:
            cards = await self._watched_cards(session)
            if not cards:
                logger.info("price_monitor_no_cards")
                return MonitorRunStats(0, 0, 0, False)

            with_products = await self._resolve_product_ids(session, cards)
            logger.info(
                "price_monitor_cards",
                cards=len(cards),
                with_product_id=len(with_products),
            )

            batch_size = settings.PRICE_MONITOR_BATCH_SIZE
            for start in range(0, len(with_products), batch_size):
                if limiter.is_exhausted():
                    stopped_on_quota = True
                    logger.warning("price_monitor_quota_exhausted", remaining_cards=len(with_products) - start)
                    break

                batch = with_products[start:start + batch_size]
                refs = [ProductRef(product_id=c.product_id) for c in batch]
                try:
                    snapshots = await fetcher.fetch_snapshots(refs)
                except QuotaExceededError:
                    stopped_on_quota = True
                    logger.warning("price_monitor_quota_exhausted", remaining_cards=len(with_products) - start)
                    break
                except (httpx.HTTPError, PokePulseUnavailableError) as e:
                    logger.error("price_monitor_batch_failed", batch_start=start, error=str(e))
                    continue

                by_product = {s.product_id: s for s in snapshots}
                now = self.services.clock()
                for card in batch:
                    snapshot = by_product.get(card.product_id)
                    if snapshot is None or not snapshot.has_price:
                        continue
                    alerts_triggered += await self._apply_price(session, card, snapshot, now)
                    priced += 1

        return MonitorRunStats(len(cards), priced, alerts_triggered, stopped_on_quota)

    async def run_once(self) -> MonitorRunStats:
        """One full pass over the watchlist."""
        started = self.services.clock()
        logger.info("price_monitor_run_start")

        if self._market_client is not None:
            fetcher = MarketDataFetcher(
                self._market_client, self.services.market_cache, clock=self.services.clock
            )
            stats = await self._run_with_fetcher(fetcher)
        else:
            async with MarketDataClient(self.services.rate_limiter) as client:
                fetcher = MarketDataFetcher(client, self.services.market_cache, clock=self.services.clock)
                stats = await self._run_with_fetcher(fetcher)

        logger.info(
            "price_monitor_run_complete",
            cards=stats.cards,
            prices_updated=stats.priced,
            alerts_triggered=stats.alerts_triggered,
            stopped_on_quota=stats.stopped_on_quota,
            duration_seconds=round((self.services.clock() - started).total_seconds(), 1),
        )
        return stats

    async def _wait(self, seconds: float) -> bool:
        """Sleep unless shutdown is signalled first. True means shut down."""
        try:
            await asyncio.wait_for(self._shutdown_event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            return False
        return True

    async def run(self) -> None:
        """
        Monitor loop: one run after the start-up delay, then every interval.

        A failed run is logged and the loop carries on.
        """
        logger.info(
            "price_monitor_started",
            interval_hours=settings.PRICE_MONITOR_INTERVAL_HOURS,
            startup_delay_seconds=self._startup_delay_seconds,
        )

        try:
            if await self._wait(self._startup_delay_seconds):
                return
            while not self._shutdown_event.is_set():
                try:
                    await self.run_once()
                except Exception as e:
                    logger.error(
                        "price_monitor_run_failed",
                        error=str(e),
                        error_type=type(e).__name__,
                    )
                if await self._wait(self._interval_seconds):
                    return
        except asyncio.CancelledError:
            logger.info("price_monitor_cancelled")
            raise
        finally:
            logger.info("price_monitor_stopped")


async def run_price_monitor(
    session_factory: async_sessionmaker[AsyncSession],
    services: PricingServices,
    notifier: Notifier | None = None,
) -> None:
    """
    Run the monitor until SIGTERM/SIGINT.

    Args:
        session_factory: SQLAlchemy async session factory.
        services: Shared caches and rate limiter.
        notifier: Alert delivery; None logs alerts without sending.
    """
    monitor = PriceMonitor(session_factory, services, notifier)

    def handle_signal(_signum: int, _frame: Any) -> None:
        """Called by SIGTERM/SIGINT."""
        logger.info("price_monitor_signal_received")
        asyncio.create_task(monitor.shutdown())

    loop = asyncio.get_running_loop()

    try:
        loop.add_signal_handler(signal.SIGTERM, handle_signal, signal.SIGTERM, None)
        loop.add_signal_handler(signal.SIGINT, handle_signal, signal.SIGINT, None)
    except NotImplementedError:
        # Windows doesn't support add_signal_handler for all signals
        logger.warning("signal_handlers_not_supported_on_platform")

    try:
        await monitor.run()
    except Exception as e:
        logger.error("price_monitor_fatal_error", error=str(e), error_type=type(e).__name__)
        raise

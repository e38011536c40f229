"""
HoloSwap Pricing — Price History Recorder

One market_price_history row per (set_id, card_number, snapshot_date).
A second snapshot on the same day overwrites market price, last sale and
trends. Rows feed the watchlist history charts, best-movers analytics and
the price monitor's alert comparisons.
"""

from __future__ import annotations

from datetime import date, timedelta
from decimal import Decimal
from typing import NamedTuple, Sequence

import structlog
from sqlalchemy import Date, Numeric, bindparam, select, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from src.models.price_history import MarketPriceHistory
from src.pipeline.market_data import PricingSnapshot
from src.utils.clock import utc_now

logger = structlog.get_logger(__name__)

_UPSERT = text("""
    INSERT INTO market_price_history (
        set_id, card_number, card_name, market_price, last_sold_price,
        last_sold_date, trend_7d_pct, trend_30d_pct, snapshot_date
    ) VALUES (
        :set_id, :card_number, :card_name, :market_price, :last_sold_price,
        :last_sold_date, :trend_7d_pct, :trend_30d_pct, :snapshot_date
    )
    ON CONFLICT (set_id, card_number, snapshot_date) DO UPDATE SET
        card_name = EXCLUDED.card_name,
        market_price = EXCLUDED.market_price,
        last_sold_price = EXCLUDED.last_sold_price,
        last_sold_date = EXCLUDED.last_sold_date,
        trend_7d_pct = EXCLUDED.trend_7d_pct,
        trend_30d_pct = EXCLUDED.trend_30d_pct
""").bindparams(
    bindparam("market_price", type_=Numeric(10, 2)),
    bindparam("last_sold_price", type_=Numeric(10, 2)),
    bindparam("trend_7d_pct", type_=Numeric(8, 2)),
    bindparam("trend_30d_pct", type_=Numeric(8, 2)),
    bindparam("snapshot_date", type_=Date()),
)


def _nullable(value: Decimal | None) -> Decimal | None:
    # Zero means "not reported" in the market feed.
    if not value:
        return None
    return value


async def record_snapshot(
    session: AsyncSession,
    set_id: str,
    card_number: str,
    card_name: str | None,
    snapshot: PricingSnapshot | None,
    snapshot_date: date | None = None,
) -> bool:
    """
    Upsert today's history row for a card.

    Args:
        session: Async database session.
        set_id: TCGdex set id.
        card_number: In-set number as stored on the card index.
        card_name: Display name.
        snapshot: Headline pricing; None is a no-op.
        snapshot_date: Day to record against (default: today, UTC).

    Returns:
        True if the row was written. Database errors are logged, rolled back
        and reported as False.
    """
    if snapshot is None or not set_id or not card_number:
        return False

    day = snapshot_date or utc_now().date()
    try:
        await session.execute(
            _UPSERT,
            {
                "set_id": set_id,
                "card_number": card_number,
                "card_name": card_name,
                "market_price": _nullable(snapshot.market_price),
                "last_sold_price": _nullable(snapshot.last_sold_price),
                "last_sold_date": snapshot.last_sold_date,
                "trend_7d_pct": _nullable(snapshot.trend_7d_pct),
                "trend_30d_pct": _nullable(snapshot.trend_30d_pct),
                "snapshot_date": day,
            },
        )
        await session.commit()
    except SQLAlchemyError as e:
        await session.rollback()
        logger.error(
            "price_history_write_failed",
            set_id=set_id,
            card_number=card_number,
            error=str(e),
        )
        return False

    logger.debug(
        "price_history_recorded",
        set_id=set_id,
        card_number=card_number,
        snapshot_date=day.isoformat(),
        market_price=str(snapshot.market_price),
    )
    return True


async def get_price_series(
    session: AsyncSession,
    set_id: str,
    card_number: str,
    days: int = 30,
    today: date | None = None,
) -> Sequence[MarketPriceHistory]:
    """History rows for one card over the last `days` days, oldest first."""
    cutoff = (today or utc_now().date()) - timedelta(days=days)
    result = await session.execute(
        select(MarketPriceHistory)
        .where(
            MarketPriceHistory.set_id == set_id,
            MarketPriceHistory.card_number == card_number,
            MarketPriceHistory.snapshot_date >= cutoff,
        )
        .order_by(MarketPriceHistory.snapshot_date.asc())
    )
    return result.scalars().all()


class PriceMove(NamedTuple):
    set_id: str
    card_number: str
    card_name: str | None
    start_price: Decimal
    end_price: Decimal
    pct_change: Decimal


async def get_best_movers(
    session: AsyncSession,
    days: int = 7,
    limit: int = 10,
    today: date | None = None,
) -> list[PriceMove]:
    """
    Cards with the largest percentage change between their first and last
    priced snapshot in the window, biggest gain first.

    Cards with a single priced snapshot in the window are skipped.
    """
    cutoff = (today or utc_now().date()) - timedelta(days=days)
    result = await session.execute(
        select(MarketPriceHistory)
        .where(
            MarketPriceHistory.snapshot_date >= cutoff,
            MarketPriceHistory.market_price.is_not(None),
        )
        .order_by(
            MarketPriceHistory.set_id,
            MarketPriceHistory.card_number,
            MarketPriceHistory.snapshot_date,
        )
    )

    series: dict[tuple[str, str], list[MarketPriceHistory]] = {}
    for row in result.scalars().all():
        series.setdefault((row.set_id, row.card_number), []).append(row)

    moves: list[PriceMove] = []
    for (set_id, card_number), rows in series.items():
        if len(rows) < 2:
            continue
        start, end = Decimal(rows[0].market_price), Decimal(rows[-1].market_price)
        if start == 0:
            continue
        moves.append(
            PriceMove(
                set_id=set_id,
                card_number=card_number,
                card_name=rows[-1].card_name,
                start_price=start,
                end_price=end,
                pct_change=((end - start) / start * 100).quantize(Decimal("0.01")),
            )
        )

    moves.sort(key=lambda m: m.pct_change, reverse=True)
    return moves[:limit]

"""
HoloSwap Pricing — Daily Price History Model

One snapshot per card per calendar day. Later snapshots on the same day
overwrite the row (see pipeline/history.py). Read by analytics and by the
price monitor when comparing successive prices.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal

from sqlalchemy import DATE, DECIMAL, INTEGER, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from src.models.base import Base


class MarketPriceHistory(Base):
    """
    Daily market snapshot keyed by (set_id, card_number, snapshot_date).

    set_id is the internal (TCGdex) set id, not the PokePulse one.
    """

    __tablename__ = "market_price_history"

    id: Mapped[int] = mapped_column(INTEGER, primary_key=True, autoincrement=True)
    set_id: Mapped[str] = mapped_column(String(50), nullable=False)
    card_number: Mapped[str] = mapped_column(String(50), nullable=False)
    card_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    market_price: Mapped[Decimal | None] = mapped_column(DECIMAL(10, 2), nullable=True)
    last_sold_price: Mapped[Decimal | None] = mapped_column(DECIMAL(10, 2), nullable=True)
    last_sold_date: Mapped[str | None] = mapped_column(
        String(40), nullable=True, comment="As reported by the market data API"
    )
    trend_7d_pct: Mapped[Decimal | None] = mapped_column(DECIMAL(8, 2), nullable=True)
    trend_30d_pct: Mapped[Decimal | None] = mapped_column(DECIMAL(8, 2), nullable=True)
    snapshot_date: Mapped[date] = mapped_column(DATE, nullable=False)

    __table_args__ = (
        UniqueConstraint(
            "set_id", "card_number", "snapshot_date",
            name="uq_market_price_history_card_day",
        ),
        Index("ix_market_price_history_date", "snapshot_date"),
    )

    def __repr__(self) -> str:
        return (
            f"<MarketPriceHistory set={self.set_id!r} number={self.card_number!r} "
            f"day={self.snapshot_date} price={self.market_price}>"
        )

"""
HoloSwap Pricing — Watchlist & Price Alert Models

Only the columns the price monitor and alert delivery read and write. The
CRUD surface for these tables belongs to the watchlist routes, outside this
package.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    BOOLEAN,
    DECIMAL,
    INTEGER,
    TIMESTAMP,
    ForeignKey,
    Index,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from src.models.base import Base, JSONType


class WatchlistEntry(Base):
    """A user watching one card. Many users may watch the same (set, number)."""

    __tablename__ = "price_watchlist"

    id: Mapped[int] = mapped_column(INTEGER, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(INTEGER, nullable=False)
    set_id: Mapped[str] = mapped_column(String(50), nullable=False)
    card_number: Mapped[str] = mapped_column(String(50), nullable=False)
    card_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    set_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    image_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    product_id: Mapped[str | None] = mapped_column(
        String(255), nullable=True, comment="Resolved PokePulse raw product id"
    )
    last_price: Mapped[Decimal | None] = mapped_column(DECIMAL(10, 2), nullable=True)
    last_checked: Mapped[datetime | None] = mapped_column(
        TIMESTAMP(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        UniqueConstraint("user_id", "set_id", "card_number", name="uq_price_watchlist_user_card"),
        Index("ix_price_watchlist_card", "set_id", "card_number"),
    )


class PriceAlert(Base):
    """Threshold or percentage alert attached to a watchlist entry."""

    __tablename__ = "price_alerts"

    id: Mapped[int] = mapped_column(INTEGER, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(INTEGER, nullable=False)
    watchlist_id: Mapped[int] = mapped_column(
        INTEGER, ForeignKey("price_watchlist.id", ondelete="CASCADE"), nullable=False
    )
    alert_type: Mapped[str] = mapped_column(
        String(20), nullable=False, comment="pct_up | pct_down | above | below"
    )
    threshold: Mapped[Decimal] = mapped_column(DECIMAL(10, 2), nullable=False)
    cooldown_hours: Mapped[int | None] = mapped_column(INTEGER, nullable=True)
    is_active: Mapped[bool] = mapped_column(BOOLEAN, default=True)
    last_triggered: Mapped[datetime | None] = mapped_column(
        TIMESTAMP(timezone=True), nullable=True
    )

    def __repr__(self) -> str:
        return (
            f"<PriceAlert id={self.id} type={self.alert_type!r} "
            f"threshold={self.threshold} active={self.is_active}>"
        )


class NotificationSettings(Base):
    """Per-user delivery preferences. Only the Telegram channel is read here."""

    __tablename__ = "notification_settings"

    user_id: Mapped[int] = mapped_column(INTEGER, primary_key=True)
    channels_enabled: Mapped[list[str] | None] = mapped_column(
        JSONType, nullable=True, comment='e.g. ["telegram"]'
    )
    telegram_chat_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

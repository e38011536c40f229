"""
HoloSwap Pricing — PokePulse Catalogue Cache Model

Durable product-identity cache. Every row returned by a catalogue search is
upserted here so later lookups for the same set skip the catalogue API.
Rows are never deleted; last_fetched is informational only.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import TIMESTAMP, Index, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from src.models.base import Base


class CatalogueProduct(Base):
    """
    One PokePulse product.

    product_id format: card:<set>|<number>|<material>|<promo>|<gradingCo>|<grade>.
    Raw (ungraded) products end with "||".
    """

    __tablename__ = "pokepulse_catalogue"

    product_id: Mapped[str] = mapped_column(String(255), primary_key=True)
    set_id: Mapped[str | None] = mapped_column(
        String(50), nullable=True, comment="Set id the search was made with"
    )
    card_number: Mapped[str | None] = mapped_column(
        String(50), nullable=True, comment="Catalogue card number, may carry /total"
    )
    card_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    material: Mapped[str | None] = mapped_column(String(100), nullable=True)
    image_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    last_fetched: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        Index("ix_pokepulse_catalogue_set_number", "set_id", "card_number"),
    )

    def __repr__(self) -> str:
        return (
            f"<CatalogueProduct product_id={self.product_id!r} "
            f"set={self.set_id!r} number={self.card_number!r}>"
        )

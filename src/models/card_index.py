"""
HoloSwap Pricing — Card Index Model

Local, read-mostly copy of every known card, bulk-loaded from TCGdex by
pipeline/tcgdex.py. Request traffic never writes to this table; a
re-import replaces rows wholesale.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import BOOLEAN, INTEGER, TIMESTAMP, Index, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from src.models.base import Base, JSONType


class CardIndex(Base):
    """
    One row per card, keyed by the TCGdex card id (e.g. "sv01-001").

    local_id is the in-set number exactly as TCGdex prints it. Padding is
    inconsistent across sets ("1" vs "001"), and some sets use letter
    prefixes ("SV107", "TG05").
    """

    __tablename__ = "card_index"

    id: Mapped[str] = mapped_column(String(50), primary_key=True, comment="TCGdex card id")
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    local_id: Mapped[str | None] = mapped_column(
        String(50), nullable=True, comment="In-set card number as printed"
    )
    category: Mapped[str | None] = mapped_column(String(50), nullable=True)
    rarity: Mapped[str | None] = mapped_column(String(100), nullable=True)
    hp: Mapped[int | None] = mapped_column(INTEGER, nullable=True)
    card_type: Mapped[str | None] = mapped_column(
        String(100), nullable=True, comment="Comma-joined energy types"
    )
    stage: Mapped[str | None] = mapped_column(String(50), nullable=True)
    evolve_from: Mapped[str | None] = mapped_column(String(255), nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    illustrator: Mapped[str | None] = mapped_column(String(255), nullable=True)
    image_url: Mapped[str | None] = mapped_column(Text, nullable=True)

    set_id: Mapped[str | None] = mapped_column(String(50), nullable=True)
    set_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    set_logo: Mapped[str | None] = mapped_column(Text, nullable=True)
    set_symbol: Mapped[str | None] = mapped_column(Text, nullable=True)
    set_total: Mapped[int | None] = mapped_column(INTEGER, nullable=True)
    external_set_id: Mapped[str | None] = mapped_column(
        String(50),
        nullable=True,
        comment="PokePulse set id override; wins over the computed mapping",
    )

    variants_normal: Mapped[bool] = mapped_column(BOOLEAN, default=False)
    variants_reverse: Mapped[bool] = mapped_column(BOOLEAN, default=False)
    variants_holo: Mapped[bool] = mapped_column(BOOLEAN, default=False)
    variants_first_ed: Mapped[bool] = mapped_column(BOOLEAN, default=False)

    attacks: Mapped[list[dict[str, Any]] | None] = mapped_column(JSONType, nullable=True)
    weaknesses: Mapped[list[dict[str, Any]] | None] = mapped_column(JSONType, nullable=True)
    resistances: Mapped[list[dict[str, Any]] | None] = mapped_column(JSONType, nullable=True)
    retreat_cost: Mapped[int | None] = mapped_column(INTEGER, nullable=True)

    legal_standard: Mapped[bool] = mapped_column(BOOLEAN, default=False)
    legal_expanded: Mapped[bool] = mapped_column(BOOLEAN, default=False)

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        Index("ix_card_index_name", "name"),
        Index("ix_card_index_local_id", "local_id"),
        Index("ix_card_index_set_id", "set_id"),
        Index("ix_card_index_set_name", "set_name"),
    )

    def to_summary(self) -> dict[str, Any]:
        """Compact dict used for disambiguation lists."""
        return {
            "name": self.name,
            "set_id": self.set_id,
            "set_name": self.set_name,
            "local_id": self.local_id,
            "image_url": self.image_url,
            "rarity": self.rarity,
        }

    def __repr__(self) -> str:
        return (
            f"<CardIndex id={self.id!r} name={self.name!r} "
            f"set={self.set_id!r} local_id={self.local_id!r}>"
        )

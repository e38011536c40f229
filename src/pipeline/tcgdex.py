"""
HoloSwap Pricing — TCGdex API Client (Card Index Loader)

Builds the local card_index table from TCGdex, the upstream card reference.
Request traffic never calls TCGdex; this runs from scripts/import_cards.py.

Base URL: https://api.tcgdex.net/v2/en
    GET /sets            -> brief list of every set
    GET /sets/{id}       -> set detail with a brief list of its cards
    GET /cards/{id}      -> full card
"""

from __future__ import annotations

import asyncio
from typing import Any

import httpx
import structlog
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy import bindparam, text
from sqlalchemy.ext.asyncio import AsyncSession

from src.config import settings
from src.models.base import JSONType

logger = structlog.get_logger(__name__)

# ---------------------------------------------------------------------------
# Pydantic Response Models
# ---------------------------------------------------------------------------


class CardCount(BaseModel):
    total: int | None = None
    official: int | None = None


class SetBrief(BaseModel):
    """Entry of GET /sets."""
    model_config = ConfigDict(extra="ignore")

    id: str
    name: str
    logo: str | None = None
    symbol: str | None = None
    cardCount: CardCount | None = None


class CardBrief(BaseModel):
    """Card entry inside a set detail."""
    model_config = ConfigDict(extra="ignore")

    id: str
    localId: str | None = None
    name: str
    image: str | None = None


class SetDetail(SetBrief):
    """GET /sets/{id}."""
    cards: list[CardBrief] = Field(default_factory=list)

    @property
    def logo_url(self) -> str | None:
        return f"{self.logo}.webp" if self.logo else None

    @property
    def symbol_url(self) -> str | None:
        return f"{self.symbol}.webp" if self.symbol else None

    @property
    def total(self) -> int | None:
        return self.cardCount.total if self.cardCount else None


class Variants(BaseModel):
    normal: bool = False
    reverse: bool = False
    holo: bool = False
    firstEdition: bool = False


class Legality(BaseModel):
    standard: bool = False
    expanded: bool = False


class CardDetail(BaseModel):
    """GET /cards/{id}. Only the fields stored on card_index."""
    model_config = ConfigDict(extra="ignore")

    id: str
    localId: str | None = None
    name: str
    category: str | None = None
    rarity: str | None = None
    hp: int | None = None
    types: list[str] | None = None
    stage: str | None = None
    evolveFrom: str | None = None
    description: str | None = None
    illustrator: str | None = None
    image: str | None = None
    variants: Variants | None = None
    attacks: list[dict[str, Any]] | None = None
    weaknesses: list[dict[str, Any]] | None = None
    resistances: list[dict[str, Any]] | None = None
    retreat: int | list[Any] | None = None
    legal: Legality | None = None

    @property
    def image_url(self) -> str | None:
        return f"{self.image}/low.webp" if self.image else None

    @property
    def card_type(self) -> str | None:
        return ", ".join(self.types) if self.types else None

    @property
    def retreat_cost(self) -> int | None:
        if isinstance(self.retreat, list):
            return len(self.retreat)
        return self.retreat


# ---------------------------------------------------------------------------
# API Client
# ---------------------------------------------------------------------------


class TCGdexClient:
    """
    Async client for the TCGdex v2 API.

    Usage:
        async with TCGdexClient() as client:
            sets = await client.fetch_sets()
            detail = await client.fetch_set("sv01")
    """

    def __init__(
        self,
        base_url: str | None = None,
        max_retries: int = 3,
        base_backoff: float = 1.0,
    ):
        self._base_url = base_url or settings.TCGDEX_BASE_URL
        self._max_retries = max_retries
        self._base_backoff = base_backoff
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> TCGdexClient:
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            timeout=settings.TCGDEX_HTTP_TIMEOUT_SECONDS,
        )
        return self

    async def __aexit__(self, *args: Any) -> None:
        if self._client:
            await self._client.aclose()

    async def _request(self, path: str) -> Any:
        """GET with retry on 429/5xx/transport errors and exponential backoff."""
        assert self._client is not None, "Client not initialized. Use 'async with'."

        last_error: Exception | None = None

        for attempt in range(self._max_retries + 1):
            try:
                response = await self._client.get(path)

                if response.status_code == 429:
                    wait_time = self._base_backoff * (2 ** attempt)
                    logger.warning(
                        "tcgdex_rate_limited",
                        attempt=attempt + 1,
                        wait_seconds=wait_time,
                    )
                    await asyncio.sleep(wait_time)
                    continue

                response.raise_for_status()
                return response.json()

            except httpx.HTTPStatusError as e:
                last_error = e
                logger.error(
                    "tcgdex_http_error",
                    status_code=e.response.status_code,
                    attempt=attempt + 1,
                    path=path,
                )
                if e.response.status_code >= 500:
                    await asyncio.sleep(self._base_backoff * (2 ** attempt))
                    continue
                raise

            except httpx.RequestError as e:
                last_error = e
                logger.error(
                    "tcgdex_request_error",
                    error=str(e),
                    attempt=attempt + 1,
                    path=path,
                )
                await asyncio.sleep(self._base_backoff * (2 ** attempt))
                continue

        raise RuntimeError(
            f"TCGdex request failed after {self._max_retries + 1} attempts"
        ) from last_error

    # -----------------------------------------------------------------------
    # Public API
    # -----------------------------------------------------------------------

    async def fetch_sets(self) -> list[SetBrief]:
        data = await self._request("/sets")
        sets = [SetBrief.model_validate(s) for s in data]
        logger.info("tcgdex_fetch_sets_complete", count=len(sets))
        return sets

    async def fetch_set(self, set_id: str) -> SetDetail:
        data = await self._request(f"/sets/{set_id}")
        detail = SetDetail.model_validate(data)
        logger.info("tcgdex_fetch_set_complete", set_id=set_id, cards=len(detail.cards))
        return detail

    async def fetch_card(self, card_id: str) -> CardDetail:
        data = await self._request(f"/cards/{card_id}")
        return CardDetail.model_validate(data)

    async def fetch_set_cards(self, set_id: str) -> tuple[SetDetail, list[CardDetail]]:
        """
        A set and the full detail of each of its cards.

        Cards that fail to load are logged and left out.
        """
        detail = await self.fetch_set(set_id)
        cards: list[CardDetail] = []
        for brief in detail.cards:
            try:
                cards.append(await self.fetch_card(brief.id))
            except (httpx.HTTPError, RuntimeError) as e:
                logger.warning("tcgdex_card_fetch_failed", card_id=brief.id, error=str(e))
        return detail, cards


# ---------------------------------------------------------------------------
# Storage
# ---------------------------------------------------------------------------

_UPSERT_CARD = text("""
    INSERT INTO card_index (
        id, name, local_id, category, rarity, hp, card_type, stage,
        evolve_from, description, illustrator, image_url,
        set_id, set_name, set_logo, set_symbol, set_total,
        variants_normal, variants_reverse, variants_holo, variants_first_ed,
        attacks, weaknesses, resistances, retreat_cost,
        legal_standard, legal_expanded
    ) VALUES (
        :id, :name, :local_id, :category, :rarity, :hp, :card_type, :stage,
        :evolve_from, :description, :illustrator, :image_url,
        :set_id, :set_name, :set_logo, :set_symbol, :set_total,
        :variants_normal, :variants_reverse, :variants_holo, :variants_first_ed,
        :attacks, :weaknesses, :resistances, :retreat_cost,
        :legal_standard, :legal_expanded
    )
    ON CONFLICT (id) DO UPDATE SET
        name = EXCLUDED.name,
        local_id = EXCLUDED.local_id,
        category = EXCLUDED.category,
        rarity = EXCLUDED.rarity,
        hp = EXCLUDED.hp,
        card_type = EXCLUDED.card_type,
        stage = EXCLUDED.stage,
        evolve_from = EXCLUDED.evolve_from,
        description = EXCLUDED.description,
        illustrator = EXCLUDED.illustrator,
        image_url = EXCLUDED.image_url,
        set_id = EXCLUDED.set_id,
        set_name = EXCLUDED.set_name,
        set_logo = EXCLUDED.set_logo,
        set_symbol = EXCLUDED.set_symbol,
        set_total = EXCLUDED.set_total,
        variants_normal = EXCLUDED.variants_normal,
        variants_reverse = EXCLUDED.variants_reverse,
        variants_holo = EXCLUDED.variants_holo,
        variants_first_ed = EXCLUDED.variants_first_ed,
        attacks = EXCLUDED.attacks,
        weaknesses = EXCLUDED.weaknesses,
        resistances = EXCLUDED.resistances,
        retreat_cost = EXCLUDED.retreat_cost,
        legal_standard = EXCLUDED.legal_standard,
        legal_expanded = EXCLUDED.legal_expanded
""").bindparams(
    bindparam("attacks", type_=JSONType),
    bindparam("weaknesses", type_=JSONType),
    bindparam("resistances", type_=JSONType),
)


async def store_cards(
    set_detail: SetDetail,
    cards: list[CardDetail],
    session: AsyncSession,
) -> int:
    """
    Upsert one set's cards into card_index, keyed by TCGdex card id.

    external_set_id is left untouched so manual overrides survive re-imports.

    Returns:
        Number of rows upserted.
    """
    if not cards:
        return 0

    for card in cards:
        variants = card.variants or Variants()
        legal = card.legal or Legality()
        await session.execute(
            _UPSERT_CARD,
            {
                "id": card.id,
                "name": card.name,
                "local_id": card.localId,
                "category": card.category,
                "rarity": card.rarity,
                "hp": card.hp,
                "card_type": card.card_type,
                "stage": card.stage,
                "evolve_from": card.evolveFrom,
                "description": card.description,
                "illustrator": card.illustrator,
                "image_url": card.image_url,
                "set_id": set_detail.id,
                "set_name": set_detail.name,
                "set_logo": set_detail.logo_url,
                "set_symbol": set_detail.symbol_url,
                "set_total": set_detail.total,
                "variants_normal": variants.normal,
                "variants_reverse": variants.reverse,
                "variants_holo": variants.holo,
                "variants_first_ed": variants.firstEdition,
                "attacks": card.attacks,
                "weaknesses": card.weaknesses,
                "resistances": card.resistances,
                "retreat_cost": card.retreat_cost,
                "legal_standard": legal.standard,
                "legal_expanded": legal.expanded,
            },
        )

    await session.commit()

    logger.info("tcgdex_cards_stored", set_id=set_detail.id, count=len(cards))
    return len(cards)

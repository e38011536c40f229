"""
HoloSwap Pricing — PokePulse Catalogue Resolver

Resolves (PokePulse set id, card number) to the PokePulse product ids for
that card, one per material ("Holo", "Reverse Holo", plain).

Order of work:
    1. pokepulse_catalogue table (durable product-identity cache). Any raw
       rows for the card end the lookup with no API call.
    2. Catalogue search API, tried with progressively looser set ids:
       PokePulse id, then TCGdex id, then no set at all. The first tier
       returning rows wins. Every returned row is upserted into the table,
       matching or not, so the next lookup for the set is a cache hit.
    3. Number matching within the returned rows.

Product id format:
    card:<set>|<number>|<material>|<promo>|<gradingCo>|<grade>
Raw products end with "||"; graded ones carry e.g. "|PSA|10".

The search response comes back in one of four shapes (bare list, or a list
under "cards", "data" or "results"); extract_catalogue_rows() is the only
place that knows about them.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, NamedTuple, Sequence

import httpx
import structlog
from pydantic import BaseModel, ConfigDict, ValidationError, model_validator
from sqlalchemy import DateTime, bindparam, func, select, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from src.config import settings
from src.models.catalogue_product import CatalogueProduct
from src.pipeline.pokepulse import PokePulseClient, PokePulseUnavailableError
from src.utils.clock import Clock, utc_now
from src.utils.rate_limit import DailyRateLimiter
from src.utils.ttl_cache import MISSING, TTLCache

logger = structlog.get_logger(__name__)

RAW_SUFFIX = "||"

_STR_FIELDS = ("product_id", "set_id", "card_number", "card_name", "material", "image_url")

# ---------------------------------------------------------------------------
# Product identity
# ---------------------------------------------------------------------------


class ProductRef(BaseModel):
    """One PokePulse catalogue product, from the API or the cache table."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    product_id: str
    set_id: str | None = None
    card_number: str | None = None
    card_name: str | None = None
    material: str | None = None
    image_url: str | None = None

    @model_validator(mode="before")
    @classmethod
    def _fill_aliases(cls, data: Any) -> Any:
        """
        The API sometimes sends `name`/`image` instead of `card_name`/`image_url`,
        and bare numbers where strings are expected (`"card_number": 1`).
        """
        if isinstance(data, dict):
            data = dict(data)
            if not data.get("card_name") and data.get("name"):
                data["card_name"] = data["name"]
            if not data.get("image_url") and data.get("image"):
                data["image_url"] = data["image"]
            for field in _STR_FIELDS:
                value = data.get(field)
                if isinstance(value, (int, float)) and not isinstance(value, bool):
                    data[field] = str(value)
        return data

    def _grading_fields(self) -> tuple[str, str]:
        parts = self.product_id.split("|")
        if len(parts) < 6:
            return "", ""
        return parts[4].strip(), parts[5].strip()

    @property
    def grading_company(self) -> str | None:
        return self._grading_fields()[0] or None

    @property
    def grade(self) -> str | None:
        return self._grading_fields()[1] or None

    @property
    def is_graded(self) -> bool:
        company, grade = self._grading_fields()
        return bool(company or grade)


class CatalogueResponseShape(str, Enum):
    """Known envelopes of the catalogue search response."""
    BARE_LIST = "list"
    CARDS = "cards"
    DATA = "data"
    RESULTS = "results"
    UNKNOWN = "unknown"


def detect_response_shape(payload: Any) -> CatalogueResponseShape:
    if isinstance(payload, list):
        return CatalogueResponseShape.BARE_LIST
    if isinstance(payload, dict):
        for shape in (
            CatalogueResponseShape.CARDS,
            CatalogueResponseShape.DATA,
            CatalogueResponseShape.RESULTS,
        ):
            if isinstance(payload.get(shape.value), list):
                return shape
    return CatalogueResponseShape.UNKNOWN


def extract_catalogue_rows(payload: Any) -> list[ProductRef]:
    """
    Unwrap a catalogue search response into product rows.

    Rows without a product_id, or that fail validation, are dropped. An
    unrecognised envelope yields an empty list.
    """
    shape = detect_response_shape(payload)
    if shape is CatalogueResponseShape.UNKNOWN:
        if payload:
            logger.warning("catalogue_unknown_response_shape", payload_type=type(payload).__name__)
        return []

    items = payload if shape is CatalogueResponseShape.BARE_LIST else payload[shape.value]
    rows: list[ProductRef] = []
    for item in items:
        if not (isinstance(item, dict) and item.get("product_id")):
            continue
        try:
            rows.append(ProductRef.model_validate(item))
        except ValidationError as e:
            logger.warning(
                "catalogue_row_invalid",
                product_id=str(item.get("product_id")),
                errors=e.error_count(),
            )
    return rows


# ---------------------------------------------------------------------------
# Number matching
# ---------------------------------------------------------------------------


def _number_base(value: str) -> str:
    return value.split("/")[0].strip().lstrip("0") or "0"


def match_card_number(catalogue_number: str, requested_number: str) -> bool:
    """
    Compare card numbers ignoring zero padding and any "/total" suffix.

    "79" matches "079/073", "079" and "79/073".
    """
    return _number_base(catalogue_number) == _number_base(requested_number)


def one_per_material(products: Sequence[ProductRef]) -> list[ProductRef]:
    """Keep the first product seen for each material (None counts as one material)."""
    seen: set[str] = set()
    kept: list[ProductRef] = []
    for product in products:
        key = product.material or ""
        if key in seen:
            continue
        seen.add(key)
        kept.append(product)
    return kept


def find_matching_products(candidates: Sequence[ProductRef], number: str) -> list[ProductRef]:
    """
    Pick the products for `number` out of a search result.

    Raw number matches are returned one per material. With no usable match,
    a lone candidate is accepted whatever its number; several unmatched
    candidates are ambiguous and give an empty list.
    """
    matches = [
        c for c in candidates
        if c.card_number and match_card_number(c.card_number, number)
    ]
    raw_matches = one_per_material([c for c in matches if not c.is_graded])
    if raw_matches:
        logger.debug(
            "catalogue_number_matched",
            number=number,
            variants=[c.material or "Standard" for c in raw_matches],
        )
        return raw_matches

    if len(candidates) == 1:
        logger.info(
            "catalogue_single_candidate_fallback",
            number=number,
            candidate_number=candidates[0].card_number,
        )
        return [candidates[0]]

    logger.info("catalogue_no_number_match", number=number, candidates=len(candidates))
    return []


# ---------------------------------------------------------------------------
# Search fallback chain
# ---------------------------------------------------------------------------


class SearchStrategy(NamedTuple):
    """One catalogue search attempt. set_id None searches every set."""
    label: str
    set_id: str | None


def build_search_strategies(
    external_set_id: str | None,
    internal_set_id: str | None = None,
) -> list[SearchStrategy]:
    """PokePulse id, then TCGdex id if it differs, then no set id."""
    strategies: list[SearchStrategy] = []
    if external_set_id:
        strategies.append(SearchStrategy("external_set_id", external_set_id))
    if internal_set_id and internal_set_id != external_set_id:
        strategies.append(SearchStrategy("internal_set_id", internal_set_id))
    strategies.append(SearchStrategy("no_set_id", None))
    return strategies


def catalogue_cache_key(set_id: str | None, card_name: str) -> str:
    return f"catalogue:{set_id or 'noset'}:{card_name}"


# ---------------------------------------------------------------------------
# API client
# ---------------------------------------------------------------------------


class CatalogueClient(PokePulseClient):
    """
    PokePulse catalogue search.

    Usage:
        async with CatalogueClient(limiter) as client:
            payload = await client.search("sv1", "Pikachu")
    """

    service = "pokepulse_catalogue"
    api_key_header = "X-API-Key"

    def __init__(self, rate_limiter: DailyRateLimiter, **kwargs: Any):
        kwargs.setdefault("base_url", settings.POKEPULSE_CATALOGUE_URL)
        kwargs.setdefault("api_key", settings.POKEPULSE_CATALOGUE_KEY)
        super().__init__(rate_limiter, **kwargs)

    async def __aenter__(self) -> CatalogueClient:
        await super().__aenter__()
        return self

    async def search(self, set_id: str | None, card_name: str) -> Any:
        """
        Search raw products by card name, optionally within one set.

        Returns:
            The decoded JSON body, in whichever envelope the service chose.
        """
        payload: dict[str, Any] = {
            "cardName": card_name,
            "excludeGraded": True,
            "limit": settings.CATALOGUE_SEARCH_LIMIT,
        }
        if set_id:
            payload["setId"] = set_id

        logger.info("catalogue_search", set_id=set_id, card_name=card_name)
        return await self._post("/cards/search", payload)


# ---------------------------------------------------------------------------
# Cache table
# ---------------------------------------------------------------------------


def _to_ref(row: CatalogueProduct) -> ProductRef:
    return ProductRef(
        product_id=row.product_id,
        set_id=row.set_id,
        card_number=row.card_number,
        card_name=row.card_name,
        material=row.material,
        image_url=row.image_url,
    )


async def _cached_rows(
    session: AsyncSession,
    set_id: str,
    number: str,
    graded: bool,
) -> list[ProductRef]:
    raw_filter = (
        ~CatalogueProduct.product_id.endswith(RAW_SUFFIX)
        if graded
        else CatalogueProduct.product_id.endswith(RAW_SUFFIX)
    )
    base = (
        select(CatalogueProduct)
        .where(CatalogueProduct.set_id == set_id, raw_filter)
        .order_by(func.coalesce(CatalogueProduct.material, ""), CatalogueProduct.product_id)
    )

    result = await session.execute(base.where(CatalogueProduct.card_number == number))
    rows = [_to_ref(r) for r in result.scalars().all()]
    if rows:
        return rows

    # Stored numbers may be padded or carry "/total": "89" vs "089/123"
    result = await session.execute(
        base.where(
            CatalogueProduct.card_number.contains(_number_base(number), autoescape=True)
        )
    )
    return [
        _to_ref(r) for r in result.scalars().all()
        if r.card_number and match_card_number(r.card_number, number)
    ]


async def find_cached_products(
    session: AsyncSession,
    set_id: str,
    number: str,
) -> list[ProductRef]:
    """
    Raw products for (PokePulse set id, number) from the cache table.

    Exact card_number match first, then a padding/total-insensitive match.
    One row per material.
    """
    try:
        rows = one_per_material(await _cached_rows(session, set_id, number, graded=False))
    except SQLAlchemyError as e:
        logger.error("catalogue_cache_lookup_failed", set_id=set_id, number=number, error=str(e))
        return []

    if rows:
        logger.info("catalogue_cache_hit", set_id=set_id, number=number, variants=len(rows))
    else:
        logger.debug("catalogue_cache_miss", set_id=set_id, number=number)
    return rows


async def find_cached_graded_products(
    session: AsyncSession,
    set_id: str,
    number: str,
) -> list[ProductRef]:
    """Graded products (any grading company / grade) for the card, from the cache table."""
    try:
        return await _cached_rows(session, set_id, number, graded=True)
    except SQLAlchemyError as e:
        logger.error("catalogue_graded_lookup_failed", set_id=set_id, number=number, error=str(e))
        return []


async def cache_catalogue_results(
    session: AsyncSession,
    set_id: str | None,
    rows: Sequence[ProductRef],
    now: datetime | None = None,
) -> int:
    """
    Upsert catalogue rows into pokepulse_catalogue.

    Failures are logged and rolled back; the pricing response never depends
    on this write.

    Returns:
        Number of rows written (0 on failure).
    """
    if not rows:
        return 0

    stmt = text("""
        INSERT INTO pokepulse_catalogue (
            product_id, set_id, card_number, card_name, material, image_url, last_fetched
        ) VALUES (
            :product_id, :set_id, :card_number, :card_name, :material, :image_url, :last_fetched
        )
        ON CONFLICT (product_id) DO UPDATE SET
            card_name = EXCLUDED.card_name,
            image_url = COALESCE(EXCLUDED.image_url, pokepulse_catalogue.image_url),
            last_fetched = EXCLUDED.last_fetched
    """).bindparams(bindparam("last_fetched", type_=DateTime(timezone=True)))
    fetched_at = now or utc_now()

    try:
        for row in rows:
            await session.execute(
                stmt,
                {
                    "product_id": row.product_id,
                    "set_id": set_id or row.set_id,
                    "card_number": row.card_number,
                    "card_name": row.card_name,
                    "material": row.material,
                    "image_url": row.image_url,
                    "last_fetched": fetched_at,
                },
            )
        await session.commit()
    except SQLAlchemyError as e:
        await session.rollback()
        logger.error("catalogue_cache_write_failed", set_id=set_id, error=str(e))
        return 0

    logger.info("catalogue_cache_saved", set_id=set_id or "unknown", count=len(rows))
    return len(rows)


class CatalogueStats(NamedTuple):
    total_products: int
    total_sets: int
    raw_products: int
    oldest_entry: Any
    newest_entry: Any


async def get_catalogue_stats(session: AsyncSession) -> CatalogueStats | None:
    """Size and freshness of the product-identity cache."""
    try:
        result = await session.execute(
            select(
                func.count(),
                func.count(func.distinct(CatalogueProduct.set_id)),
                func.count().filter(CatalogueProduct.product_id.endswith(RAW_SUFFIX)),
                func.min(CatalogueProduct.last_fetched),
                func.max(CatalogueProduct.last_fetched),
            ).select_from(CatalogueProduct)
        )
    except SQLAlchemyError as e:
        logger.error("catalogue_stats_failed", error=str(e))
        return None

    total, sets, raw, oldest, newest = result.one()
    return CatalogueStats(
        total_products=total,
        total_sets=sets,
        raw_products=raw or 0,
        oldest_entry=oldest,
        newest_entry=newest,
    )


# ---------------------------------------------------------------------------
# Resolver
# ---------------------------------------------------------------------------


class CatalogueResolver:
    """
    Cache-first product resolution.

    The search payload for each (set id, name) is also held in the 6h
    in-memory catalogue cache, so repeated misses within the window do not
    spend quota.
    """

    def __init__(self, client: CatalogueClient, cache: TTLCache, clock: Clock = utc_now):
        self._client = client
        self._cache = cache
        self._clock = clock

    async def _search(self, strategy: SearchStrategy, card_name: str) -> list[ProductRef]:
        key = catalogue_cache_key(strategy.set_id, card_name)
        payload = self._cache.get(key, MISSING)
        if payload is MISSING:
            payload = await self._client.search(strategy.set_id, card_name)
            self._cache.set(key, payload)
        else:
            logger.debug("catalogue_search_cache_hit", key=key)
        return extract_catalogue_rows(payload)

    async def resolve_products(
        self,
        session: AsyncSession,
        external_set_id: str,
        number: str,
        card_name: str,
        internal_set_id: str | None = None,
    ) -> list[ProductRef]:
        """
        Product ids for one card, raw variants only.

        Returns an empty list when nothing usable was found; the caller
        treats that as "no pricing available".

        Raises:
            QuotaExceededError: the daily budget ran out mid-chain.
        """
        cached = await find_cached_products(session, external_set_id, number)
        if cached:
            return cached

        candidates: list[ProductRef] = []
        for strategy in build_search_strategies(external_set_id, internal_set_id):
            try:
                candidates = await self._search(strategy, card_name)
            except (httpx.HTTPError, PokePulseUnavailableError) as e:
                logger.warning(
                    "catalogue_search_tier_failed",
                    strategy=strategy.label,
                    set_id=strategy.set_id,
                    error=str(e),
                )
                continue

            if candidates:
                logger.info(
                    "catalogue_search_hit",
                    strategy=strategy.label,
                    set_id=strategy.set_id,
                    results=len(candidates),
                )
                await cache_catalogue_results(
                    session, strategy.set_id, candidates, now=self._clock()
                )
                break

        if not candidates:
            logger.info(
                "catalogue_no_results",
                set_id=external_set_id,
                number=number,
                card_name=card_name,
            )
            return []

        return find_matching_products(candidates, number)

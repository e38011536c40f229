"""
HoloSwap Pricing — PokePulse Market Data Fetcher & Normalizer

Fetches condition-keyed market records for one or more product ids and
normalizes them into PricingSnapshot.

Response shape (batch endpoint):
    {"data": {"<product_id>": [record, ...]}}   or
    {"<product_id>": [record, ...]}             or
    [record, ...]                               (single product)

record:
    {condition: "NM", value: 10.0, currency: "£",
     last_sold_price?, last_sold_date?,
     trends?: {"1d"|"7d"|"30d": {percentage_change, previous_value}}}

The NM record is authoritative for the headline market price, currency,
last sale and trends. Without one the market price is zero. Low/high per
condition are the ±CONDITION_BAND_FACTOR estimate from condition_map, not
provider data.
"""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Sequence

import structlog
from pydantic import BaseModel, Field

from src.config import settings
from src.pipeline.catalogue import ProductRef
from src.pipeline.pokepulse import PokePulseClient
from src.utils.clock import Clock, utc_now
from src.utils.condition_map import ConditionBand, ConditionCode, display_condition, estimate_band
from src.utils.rate_limit import DailyRateLimiter
from src.utils.ttl_cache import MISSING, TTLCache

logger = structlog.get_logger(__name__)

TREND_WINDOWS: tuple[str, ...] = ("1d", "7d", "30d")

_ZERO = Decimal("0")
_TWO_DP = Decimal("0.01")


# ---------------------------------------------------------------------------
# Normalized models
# ---------------------------------------------------------------------------


class TrendPoint(BaseModel):
    """Price movement over one window, as reported for the NM record."""
    percentage: Decimal = _ZERO
    previous: Decimal = _ZERO


class PricingSnapshot(BaseModel):
    """
    Normalized market data for one product id.

    When a card has several materials the first is the headline snapshot and
    the others hang off `variants`. Graded products, when requested, hang
    off `graded`.
    """

    product_id: str
    material: str | None = None
    grading_company: str | None = None
    grade: str | None = None
    market_price: Decimal = _ZERO
    currency: str = Field(default_factory=lambda: settings.DEFAULT_CURRENCY)
    conditions: dict[str, ConditionBand] = Field(default_factory=dict)
    trends: dict[str, TrendPoint] | None = None
    last_sold_price: Decimal | None = None
    last_sold_date: str | None = None
    fetched_at: datetime
    cached: bool = False
    variants: list[PricingSnapshot] = Field(default_factory=list)
    graded: list[PricingSnapshot] = Field(default_factory=list)

    @property
    def has_price(self) -> bool:
        return self.market_price > _ZERO

    def trend_pct(self, window: str) -> Decimal | None:
        if not self.trends or window not in self.trends:
            return None
        return self.trends[window].percentage

    @property
    def trend_7d_pct(self) -> Decimal | None:
        return self.trend_pct("7d")

    @property
    def trend_30d_pct(self) -> Decimal | None:
        return self.trend_pct("30d")

    def last_sold_at(self) -> datetime | None:
        """last_sold_date as an aware datetime, or None when missing or unparseable."""
        if not self.last_sold_date:
            return None
        try:
            parsed = datetime.fromisoformat(self.last_sold_date.replace("Z", "+00:00"))
        except ValueError:
            logger.warning(
                "market_data_invalid_last_sold_date",
                product_id=self.product_id,
                raw_date=self.last_sold_date,
            )
            return None
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed


# ---------------------------------------------------------------------------
# Extraction & normalization
# ---------------------------------------------------------------------------


def _to_decimal(value: Any) -> Decimal | None:
    if value is None or value == "":
        return None
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None


def _to_text(value: Any) -> str | None:
    if value is None or value == "":
        return None
    return str(value)


def _normalize_currency(raw: Any) -> str:
    if not raw:
        return settings.DEFAULT_CURRENCY
    currency = str(raw).strip()
    if currency == "£":
        return "GBP"
    return currency.upper()


def extract_pricing_records(payload: Any, product_id: str) -> list[dict[str, Any]]:
    """Condition records for one product id out of a batch response. Non-dict entries are dropped."""
    if isinstance(payload, dict):
        data = payload.get("data")
        if isinstance(data, dict) and data.get(product_id):
            payload = data[product_id]
        else:
            payload = payload.get(product_id)
    if isinstance(payload, list):
        return [r for r in payload if isinstance(r, dict)]
    return []


def _parse_trends(raw: Any) -> dict[str, TrendPoint] | None:
    if not isinstance(raw, dict):
        return None
    trends: dict[str, TrendPoint] = {}
    for window in TREND_WINDOWS:
        point = raw.get(window)
        if not isinstance(point, dict):
            point = {}
        trends[window] = TrendPoint(
            percentage=_to_decimal(point.get("percentage_change")) or _ZERO,
            previous=_to_decimal(point.get("previous_value")) or _ZERO,
        )
    return trends


def normalize_pricing(
    records: Sequence[dict[str, Any]],
    product: ProductRef | str,
    fetched_at: datetime | None = None,
    cached: bool = False,
) -> PricingSnapshot:
    """
    Build a PricingSnapshot from a product's condition records.

    Unknown condition codes are kept under their upper-cased code. A
    non-numeric value counts as zero.
    """
    ref = product if isinstance(product, ProductRef) else ProductRef(product_id=product)

    conditions: dict[str, ConditionBand] = {}
    fields: dict[str, Any] = {}

    for record in records:
        code = str(record.get("condition") or "").strip().upper()
        value = _to_decimal(record.get("value")) or _ZERO
        conditions[display_condition(code)] = estimate_band(value)

        if code == ConditionCode.NEAR_MINT.value:
            fields = {
                "market_price": value.quantize(_TWO_DP),
                "currency": _normalize_currency(record.get("currency")),
                "last_sold_price": _to_decimal(record.get("last_sold_price")),
                "last_sold_date": _to_text(record.get("last_sold_date")),
                "trends": _parse_trends(record.get("trends")),
            }

    if not fields:
        logger.debug("market_data_no_nm_record", product_id=ref.product_id, records=len(records))

    return PricingSnapshot(
        product_id=ref.product_id,
        material=ref.material,
        grading_company=ref.grading_company,
        grade=ref.grade,
        conditions=conditions,
        fetched_at=fetched_at or utc_now(),
        cached=cached,
        **fields,
    )


def market_cache_key(product_ids: Sequence[str]) -> str:
    return "market:" + ",".join(product_ids)


# ---------------------------------------------------------------------------
# API client
# ---------------------------------------------------------------------------


class MarketDataClient(PokePulseClient):
    """
    PokePulse batch market-data endpoint.

    Usage:
        async with MarketDataClient(limiter) as client:
            payload = await client.fetch_batch(["card:sv1|1|||||"])
    """

    service = "pokepulse_market"
    api_key_header = "x-api-key"

    def __init__(self, rate_limiter: DailyRateLimiter, **kwargs: Any):
        kwargs.setdefault("base_url", settings.POKEPULSE_MARKET_URL)
        kwargs.setdefault("api_key", settings.POKEPULSE_MARKET_KEY)
        super().__init__(rate_limiter, **kwargs)

    async def __aenter__(self) -> MarketDataClient:
        await super().__aenter__()
        return self

    async def fetch_batch(self, product_ids: Sequence[str]) -> Any:
        logger.info("market_data_fetch", product_count=len(product_ids))
        return await self._post("/market-data/batch", {"productIds": list(product_ids)})


# ---------------------------------------------------------------------------
# Fetcher
# ---------------------------------------------------------------------------


class MarketDataFetcher:
    """Cache-first market-data fetch (15 min TTL, keyed by the joined id list)."""

    def __init__(self, client: MarketDataClient, cache: TTLCache, clock: Clock = utc_now):
        self._client = client
        self._cache = cache
        self._clock = clock

    async def fetch_snapshots(self, products: Sequence[ProductRef]) -> list[PricingSnapshot]:
        """
        One snapshot per product that came back with records, in input order.

        Raises:
            QuotaExceededError: on a cache miss with the daily budget spent.
            httpx.HTTPStatusError / PokePulseUnavailableError: upstream failure.
        """
        if not products:
            return []

        product_ids = [p.product_id for p in products]
        key = market_cache_key(product_ids)
        payload = self._cache.get(key, MISSING)
        cached = payload is not MISSING
        if not cached:
            payload = await self._client.fetch_batch(product_ids)
            self._cache.set(key, payload)

        now = self._clock()
        snapshots: list[PricingSnapshot] = []
        for product in products:
            records = extract_pricing_records(payload, product.product_id)
            if not records:
                continue
            snapshots.append(normalize_pricing(records, product, fetched_at=now, cached=cached))

        logger.debug(
            "market_data_normalized",
            requested=len(products),
            priced=len(snapshots),
            cached=cached,
        )
        return snapshots

    async def fetch_and_normalize(self, products: Sequence[ProductRef]) -> PricingSnapshot | None:
        """
        Headline snapshot for a card's variants.

        The first priced variant is the headline; the rest are attached as
        `variants`. Returns None when no variant has records.
        """
        snapshots = await self.fetch_snapshots(products)
        if not snapshots:
            return None
        headline, *others = snapshots
        return headline.model_copy(update={"variants": others})

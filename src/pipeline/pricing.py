"""
HoloSwap Pricing — Card Lookup & Pricing Pipeline

The one pipeline behind every pricing call site: public price check,
seller self-submission, vendor buy and vendor sell.

Flow:
    parse_card_input
      -> resolve_set_code + find_card        (or name / total / prefix search)
      -> external set id                     (card_index override, else mapping)
      -> CatalogueResolver.resolve_products  (cache table first)
      -> MarketDataFetcher.fetch_and_normalize
      -> recommend / record_snapshot         (per LookupContext)

Identity resolution and pricing fail independently: an upstream outage
leaves `pricing=None` on an otherwise resolved card. QuotaExceededError is
the exception and always propagates, so the HTTP layer can answer 429.
"""

from __future__ import annotations

from typing import Any, NamedTuple, Sequence

import httpx
import structlog
from pydantic import BaseModel, Field, ValidationError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.config import LookupContext, LookupStatus
from src.engine.recommendation import Recommendation, recommend
from src.identity.external_ids import to_external_set_id
from src.identity.locator import (
    find_by_prefixed_number,
    find_card,
    find_sets_by_total,
    search_cards_by_name,
)
from src.identity.parser import (
    BareNumber,
    NameSearch,
    ParsedInput,
    PrefixedNumber,
    parse_card_input,
)
from src.identity.set_codes import resolve_set_code
from src.models.card_index import CardIndex
from src.pipeline.catalogue import (
    CatalogueClient,
    CatalogueResolver,
    find_cached_graded_products,
)
from src.pipeline.history import record_snapshot
from src.pipeline.market_data import MarketDataClient, MarketDataFetcher, PricingSnapshot
from src.pipeline.pokepulse import PokePulseUnavailableError
from src.pipeline.services import PricingServices

logger = structlog.get_logger(__name__)

# ValidationError: upstream rows that cannot be coerced into our models
_UPSTREAM_ERRORS = (httpx.HTTPError, PokePulseUnavailableError, ValidationError)


class PricingOptions(NamedTuple):
    """What a call site needs beyond the headline price."""
    include_graded: bool = False
    include_recommendation: bool = False
    record_history: bool = True

    @classmethod
    def for_context(cls, context: LookupContext) -> PricingOptions:
        if context is LookupContext.VENDOR_BUY:
            return cls(include_graded=True, include_recommendation=True)
        if context is LookupContext.SELLER_SUBMISSION:
            return cls(include_recommendation=True)
        return cls()


class LookupResult(BaseModel):
    """
    Answer to one lookup.

    RESOLVED carries `card` and possibly `pricing`; CANDIDATES carries the
    list to show the customer; NOT_FOUND carries `message`.
    """

    status: LookupStatus
    context: LookupContext
    parsed: ParsedInput | None = None
    card: dict[str, Any] | None = None
    candidates: list[dict[str, Any]] = Field(default_factory=list)
    pricing: PricingSnapshot | None = None
    recommendation: Recommendation | None = None
    message: str | None = None


async def get_external_set_id(session: AsyncSession, set_id: str) -> str:
    """PokePulse set id: the card index's stored override for the set, else the mapping."""
    result = await session.execute(
        select(CardIndex.external_set_id)
        .where(CardIndex.set_id == set_id, CardIndex.external_set_id.is_not(None))
        .limit(1)
    )
    stored = result.scalar_one_or_none()
    return stored or to_external_set_id(set_id)


class PricingPipeline:
    """
    Card lookup + pricing over shared PricingServices.

    Usage:
        async with services.open_clients() as (catalogue, market):
            pipeline = PricingPipeline(services, catalogue, market)
            result = await pipeline.lookup(session, "SVI 089/258", LookupContext.VENDOR_BUY)
    """

    def __init__(
        self,
        services: PricingServices,
        catalogue_client: CatalogueClient,
        market_client: MarketDataClient,
    ):
        self.services = services
        self.catalogue = CatalogueResolver(
            catalogue_client, services.catalogue_cache, clock=services.clock
        )
        self.market = MarketDataFetcher(market_client, services.market_cache, clock=services.clock)

    # -----------------------------------------------------------------------
    # Pricing
    # -----------------------------------------------------------------------

    async def get_card_pricing(
        self,
        session: AsyncSession,
        set_id: str,
        number: str,
        card_name: str,
        include_graded: bool = False,
    ) -> PricingSnapshot | None:
        """
        Market pricing for one card-index card.

        Returns:
            Headline snapshot (other materials under `variants`, graded
            products under `graded` when asked), or None when the card has
            no product or no market data.

        Raises:
            QuotaExceededError: the daily PokePulse budget is spent.
        """
        external_set_id = await get_external_set_id(session, set_id)

        products = await self.catalogue.resolve_products(
            session, external_set_id, number, card_name, internal_set_id=set_id
        )
        if not products:
            logger.info("pricing_no_products", set_id=set_id, number=number)
            return None

        try:
            snapshot = await self.market.fetch_and_normalize(products)
        except _UPSTREAM_ERRORS as e:
            logger.warning("pricing_market_data_unavailable", set_id=set_id, number=number, error=str(e))
            return None

        if snapshot is None:
            logger.info("pricing_no_market_data", set_id=set_id, number=number)
            return None

        if include_graded:
            graded_products = await find_cached_graded_products(session, external_set_id, number)
            if graded_products:
                try:
                    graded = await self.market.fetch_snapshots(graded_products)
                except _UPSTREAM_ERRORS as e:
                    logger.warning("pricing_graded_unavailable", set_id=set_id, number=number, error=str(e))
                    graded = []
                snapshot = snapshot.model_copy(update={"graded": graded})

        logger.info(
            "pricing_resolved",
            set_id=set_id,
            number=number,
            product_id=snapshot.product_id,
            market_price=str(snapshot.market_price),
            variants=len(snapshot.variants),
            graded=len(snapshot.graded),
            cached=snapshot.cached,
        )
        return snapshot

    # -----------------------------------------------------------------------
    # Lookup
    # -----------------------------------------------------------------------

    async def _resolved(
        self,
        session: AsyncSession,
        card: CardIndex,
        context: LookupContext,
        parsed: ParsedInput | None,
    ) -> LookupResult:
        options = PricingOptions.for_context(context)
        summary = card.to_summary()
        set_id, number, name = card.set_id or "", card.local_id or "", card.name

        try:
            pricing = await self.get_card_pricing(
                session, set_id, number, name,
                include_graded=options.include_graded,
            )
        except _UPSTREAM_ERRORS as e:
            logger.warning("pricing_unavailable", set_id=set_id, number=number, error=str(e))
            pricing = None

        if pricing is not None and options.record_history:
            await record_snapshot(
                session, set_id, number, name, pricing,
                snapshot_date=self.services.clock().date(),
            )

        recommendation = None
        if options.include_recommendation:
            recommendation = recommend(pricing, now=self.services.clock())

        return LookupResult(
            status=LookupStatus.RESOLVED,
            context=context,
            parsed=parsed,
            card=summary,
            pricing=pricing,
            recommendation=recommendation,
            message=None if pricing else "No pricing available",
        )

    async def _from_matches(
        self,
        session: AsyncSession,
        matches: Sequence[CardIndex],
        context: LookupContext,
        parsed: ParsedInput,
        not_found_message: str,
    ) -> LookupResult:
        if not matches:
            return LookupResult(
                status=LookupStatus.NOT_FOUND, context=context, parsed=parsed,
                message=not_found_message,
            )
        if len(matches) == 1:
            return await self._resolved(session, matches[0], context, parsed)
        return LookupResult(
            status=LookupStatus.CANDIDATES,
            context=context,
            parsed=parsed,
            candidates=[c.to_summary() for c in matches],
        )

    async def lookup(
        self,
        session: AsyncSession,
        raw_input: str,
        context: LookupContext,
    ) -> LookupResult:
        """
        Resolve customer input to a card and price it.

        Raises:
            ValueError: blank input.
            QuotaExceededError: the daily PokePulse budget is spent.
        """
        if not raw_input or not raw_input.strip():
            raise ValueError("Card input is required")

        parsed = parse_card_input(raw_input)
        logger.info("card_lookup", input=raw_input, parsed_type=parsed.type.value, context=context.value)

        if isinstance(parsed, NameSearch):
            cards = await search_cards_by_name(session, parsed.query)
            if not cards:
                return LookupResult(
                    status=LookupStatus.NOT_FOUND, context=context, parsed=parsed,
                    message="No cards found",
                )
            return LookupResult(
                status=LookupStatus.CANDIDATES,
                context=context,
                parsed=parsed,
                candidates=[c.to_summary() for c in cards],
            )

        if isinstance(parsed, PrefixedNumber):
            matches = await find_by_prefixed_number(session, parsed.number, parsed.total)
            return await self._from_matches(
                session, matches, context, parsed,
                f"No card found with number {parsed.number}",
            )

        if isinstance(parsed, BareNumber):
            matches = await find_sets_by_total(session, parsed.total, parsed.number)
            return await self._from_matches(
                session, matches, context, parsed,
                "Couldn't identify the set. Try including the set code.",
            )

        set_id = await resolve_set_code(session, parsed.set_code)
        if set_id is None:
            # "SV 107": the set-code token may be a number prefix
            prefixed = parsed.set_code + parsed.number
            matches = await find_by_prefixed_number(session, prefixed)
            return await self._from_matches(
                session, matches, context, parsed,
                f'Unknown set code "{parsed.set_code}". Try searching by card name.',
            )

        card = await find_card(session, set_id, parsed.number)
        if card is None:
            return LookupResult(
                status=LookupStatus.NOT_FOUND, context=context, parsed=parsed,
                message=f"Card #{parsed.number} not found in set {parsed.set_code}",
            )
        return await self._resolved(session, card, context, parsed)

    async def lookup_card(
        self,
        session: AsyncSession,
        set_id: str,
        local_id: str,
        context: LookupContext,
    ) -> LookupResult:
        """Price a card the customer picked from a candidates list."""
        card = await find_card(session, set_id, local_id)
        if card is None:
            return LookupResult(
                status=LookupStatus.NOT_FOUND, context=context,
                message=f"Card #{local_id} not found in set {set_id}",
            )
        return await self._resolved(session, card, context, parsed=None)

"""
HoloSwap Pricing — Card Locator

Finds card_index rows for a parsed input once the set is known (or, for a
bare "89/191", once the set has been narrowed by its print-run total).

TCGdex is inconsistent about zero padding ("1" in one set, "001" in the
next), so purely numeric lookups are retried padded to three digits and
stripped. Anything returning a list may return several rows; callers ask
the customer to pick rather than guessing.
"""

from __future__ import annotations

from typing import Sequence

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.config import settings
from src.models.card_index import CardIndex

logger = structlog.get_logger(__name__)


def number_variants(number: str) -> list[str]:
    """
    Spellings of a card number worth trying against local_id.

    "89" -> ["89", "089"]; "089" -> ["089", "89"]; "SV107" -> ["SV107"].
    """
    variants = [number]
    if number.isdigit():
        for alt in (number.zfill(3), number.lstrip("0") or "0"):
            if alt not in variants:
                variants.append(alt)
    return variants


async def find_card(session: AsyncSession, set_id: str, number: str) -> CardIndex | None:
    """
    Locate one card by set id and in-set number.

    Tries an exact case-insensitive match on local_id first, then (numeric
    numbers only) the 3-digit padded and zero-stripped spellings.
    """
    result = await session.execute(
        select(CardIndex)
        .where(
            CardIndex.set_id == set_id,
            func.upper(CardIndex.local_id) == number.upper(),
        )
        .limit(1)
    )
    card = result.scalar_one_or_none()
    if card is not None:
        return card

    alternates = number_variants(number)[1:]
    if not alternates:
        logger.debug("card_not_found", set_id=set_id, number=number)
        return None

    result = await session.execute(
        select(CardIndex)
        .where(CardIndex.set_id == set_id, CardIndex.local_id.in_(alternates))
        .order_by(CardIndex.id)
        .limit(1)
    )
    card = result.scalar_one_or_none()
    if card is None:
        logger.debug("card_not_found", set_id=set_id, number=number, tried=alternates)
    return card


async def find_sets_by_total(
    session: AsyncSession,
    total: str,
    number: str,
) -> Sequence[CardIndex]:
    """
    Cards numbered `number` in every set that also has a card numbered `total`.

    A set containing card #191 proves its print run reaches 191, which is
    how "89/191" is pinned to a set without a set code.
    """
    sets_reaching_total = (
        select(CardIndex.set_id)
        .where(CardIndex.local_id.in_(number_variants(total)))
        .scalar_subquery()
    )
    result = await session.execute(
        select(CardIndex)
        .where(
            CardIndex.local_id.in_(number_variants(number)),
            CardIndex.set_id.in_(sets_reaching_total),
        )
        .order_by(CardIndex.set_id)
    )
    cards = result.scalars().all()
    logger.debug("sets_by_total", total=total, number=number, matches=len(cards))
    return cards


async def find_by_prefixed_number(
    session: AsyncSession,
    number: str,
    total: str | None = None,
) -> Sequence[CardIndex]:
    """
    Cards whose local_id equals a letter-prefixed number ("SV107", "TG05").

    With a total ("SV122"), only sets that also contain that number count.
    """
    stmt = select(CardIndex).where(func.upper(CardIndex.local_id) == number.upper())
    if total:
        sets_reaching_total = (
            select(CardIndex.set_id)
            .where(func.upper(CardIndex.local_id) == total.upper())
            .scalar_subquery()
        )
        stmt = stmt.where(CardIndex.set_id.in_(sets_reaching_total))

    result = await session.execute(stmt.order_by(CardIndex.set_id))
    return result.scalars().all()


async def search_cards_by_name(
    session: AsyncSession,
    query: str,
    limit: int | None = None,
) -> Sequence[CardIndex]:
    """Case-insensitive substring search on card name, ordered by set then number."""
    result = await session.execute(
        select(CardIndex)
        .where(func.lower(CardIndex.name).contains(query.lower(), autoescape=True))
        .order_by(CardIndex.set_id, CardIndex.local_id)
        .limit(limit or settings.NAME_SEARCH_LIMIT)
    )
    return result.scalars().all()

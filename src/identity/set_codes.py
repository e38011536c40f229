"""
HoloSwap Pricing — Set-Code Resolver

Maps a printed set abbreviation ("SVI", "PAF", "MEG") to the card index's
internal TCGdex set id.

Resolution order, first hit wins:
    1. SET_CODE_MAP, the printed-code table (covers era-specific and
       irregular naming: promos, half-sets, TCG Pocket).
    2. Exact case-insensitive match against card_index.set_id ("sv01").
    3. Substring match against card_index.set_name ("Obsidian").

A miss returns None. The caller then retries the token as a card-number
prefix, since "SV 107" parses as set code + number.
"""

from __future__ import annotations

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.models.card_index import CardIndex

logger = structlog.get_logger(__name__)

# Printed set code (upper-case) -> TCGdex set id
SET_CODE_MAP: dict[str, str] = {
    # Scarlet & Violet
    "SVI": "sv01",
    "PAL": "sv02",
    "OBF": "sv03",
    "MEW": "sv03.5",
    "PAR": "sv04",
    "PAF": "sv04.5",
    "TEF": "sv05",
    "TWM": "sv06",
    "SFA": "sv06.5",
    "SCR": "sv07",
    "SSP": "sv08",
    "PRE": "sv08.5",
    "JTG": "sv09",
    "DRI": "sv10",
    "BLK": "sv10.5b",
    "WHT": "sv10.5w",
    "SVP": "svp",
    "SVE": "sve",
    # TCG Pocket
    "A1": "A1",
    "A1A": "A1a",
    "A2": "A2",
    "A2A": "A2a",
    "A3": "A3",
    "P-A": "P-A",
    # Mega Evolution
    "MEG": "me01",
    "PFL": "me02",
    "MEP": "MEP",
    # Sword & Shield
    "SSH": "swsh1",
    "RCL": "swsh2",
    "DAA": "swsh3",
    "CPA": "swsh3.5",
    "VIV": "swsh4",
    "SHF": "swsh4.5",
    "BST": "swsh5",
    "CRE": "swsh6",
    "EVS": "swsh7",
    "CEL": "swsh7.5",
    "FST": "swsh8",
    "BRS": "swsh9",
    "ASR": "swsh10",
    "PGO": "swsh10.5",
    "LOR": "swsh11",
    "SIT": "swsh12",
    "CRZ": "swsh12.5",
    # Sun & Moon
    "SUM": "sm1",
    "GRI": "sm2",
    "BUS": "sm3",
    "SLG": "sm35",
    "CIN": "sm4",
    "UPR": "sm5",
    "FLI": "sm6",
    "CES": "sm7",
    "LOT": "sm8",
    "TEU": "sm9",
    "UNB": "sm10",
    "UNM": "sm11",
    "CEC": "sm12",
    # XY
    "XY": "xy1",
    "FLF": "xy2",
    "FFI": "xy3",
    "PHF": "xy4",
    "PRC": "xy5",
    "ROS": "xy6",
    "AOR": "xy7",
    "BKT": "xy8",
    "BKP": "xy9",
    "FCO": "xy10",
    "STS": "xy11",
    "EVO": "xy12",
    # Base era
    "BS": "base1",
    "JU": "base2",
    "FO": "base3",
    "BS2": "base4",
    "TR": "base5",
    "GY": "base6",
}


async def resolve_set_code(session: AsyncSession, code: str) -> str | None:
    """
    Resolve a printed set code to a TCGdex set id.

    Args:
        session: Async database session.
        code: Set code as typed (any case).

    Returns:
        The internal set id, or None if nothing matches.
    """
    code = code.strip()
    if not code:
        return None

    mapped = SET_CODE_MAP.get(code.upper())
    if mapped:
        logger.debug("set_code_resolved", code=code, set_id=mapped, via="table")
        return mapped

    result = await session.execute(
        select(CardIndex.set_id)
        .where(func.lower(CardIndex.set_id) == code.lower())
        .limit(1)
    )
    set_id = result.scalar_one_or_none()
    if set_id:
        logger.debug("set_code_resolved", code=code, set_id=set_id, via="set_id")
        return set_id

    result = await session.execute(
        select(CardIndex.set_id)
        .where(func.lower(CardIndex.set_name).contains(code.lower(), autoescape=True))
        .order_by(CardIndex.set_id)
        .limit(1)
    )
    set_id = result.scalar_one_or_none()
    if set_id:
        logger.debug("set_code_resolved", code=code, set_id=set_id, via="set_name")
        return set_id

    logger.info("set_code_not_found", code=code)
    return None

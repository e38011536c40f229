"""
HoloSwap Pricing — Condition Code Mapping

PokePulse reports one market value per short condition code. This module
maps those codes to display names and builds the low/market/high band
shown to customers.

The band is a presentation estimate: low and high are the observed value
scaled by (1 - CONDITION_BAND_FACTOR) and (1 + CONDITION_BAND_FACTOR). The
provider supplies no range of its own.
"""

from __future__ import annotations

from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import NamedTuple

from src.config import settings

_TWO_DP = Decimal("0.01")


class ConditionCode(str, Enum):
    """PokePulse raw condition codes."""
    NEAR_MINT = "NM"
    LIGHTLY_PLAYED = "LP"
    MODERATELY_PLAYED = "MP"
    HEAVILY_PLAYED = "HP"
    DAMAGED = "DMG"


_DISPLAY_NAMES: dict[str, str] = {
    ConditionCode.NEAR_MINT.value: "Near Mint",
    ConditionCode.LIGHTLY_PLAYED.value: "Lightly Played",
    ConditionCode.MODERATELY_PLAYED.value: "Moderately Played",
    ConditionCode.HEAVILY_PLAYED.value: "Heavily Played",
    ConditionCode.DAMAGED.value: "Damaged",
}


class ConditionBand(NamedTuple):
    """Estimated price band for one condition."""
    low: Decimal
    market: Decimal
    high: Decimal


def display_condition(code: str | None) -> str:
    """
    Display name for a condition code.

    Unknown codes are returned upper-cased as-is; a missing code becomes
    "UNKNOWN".
    """
    if not code:
        return "UNKNOWN"
    normalized = code.strip().upper()
    return _DISPLAY_NAMES.get(normalized, normalized)


def estimate_band(value: Decimal, factor: Decimal | None = None) -> ConditionBand:
    """
    Build the ±factor band around an observed value.

    Examples:
        >>> estimate_band(Decimal("10.00"))
        ConditionBand(low=Decimal('9.00'), market=Decimal('10.00'), high=Decimal('11.00'))
    """
    spread = factor if factor is not None else settings.CONDITION_BAND_FACTOR
    return ConditionBand(
        low=(value * (Decimal("1") - spread)).quantize(_TWO_DP, rounding=ROUND_HALF_UP),
        market=value.quantize(_TWO_DP, rounding=ROUND_HALF_UP),
        high=(value * (Decimal("1") + spread)).quantize(_TWO_DP, rounding=ROUND_HALF_UP),
    )

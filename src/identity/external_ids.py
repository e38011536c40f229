"""
HoloSwap Pricing — PokePulse Set-ID Mapping

TCGdex and PokePulse name sets differently:

    sv01    -> sv1        (leading zeros dropped from the numeric run)
    sv03.5  -> sv3pt5     (half-sets use "pt")
    swsh7.5 -> cel25      (irregular, from EXTERNAL_SET_OVERRIDES)

Overrides are checked before the general rule.
"""

from __future__ import annotations

import re

# TCGdex set id -> PokePulse set id, for sets that break the general rule
EXTERNAL_SET_OVERRIDES: dict[str, str] = {
    # Mega Evolution era
    "me01": "m1",
    "me02": "me02",
    "MEP": "mep",
    # Black Bolt / White Flare
    "sv10.5w": "rsv10pt5",
    "sv10.5b": "zsv10pt5",
    # Anniversary and special sets
    "swsh7.5": "cel25",
    "swsh10.5": "pgo",
    "sm35": "sm3pt5",
    # Base era naming collides with the rule
    "base1": "bsu",
    "base5": "tr",
    # McDonald's promos
    "2021swsh": "mcd21",
}

_LEADING_ZEROS = re.compile(r"(\D+)0*(\d+)")


def _strip_number_padding(value: str) -> str:
    return _LEADING_ZEROS.sub(r"\1\2", value, count=1)


def to_external_set_id(internal_set_id: str) -> str:
    """
    Convert a TCGdex set id to the PokePulse dialect.

    Examples:
        >>> to_external_set_id("sv03.5")
        'sv3pt5'
        >>> to_external_set_id("sv01")
        'sv1'
    """
    override = EXTERNAL_SET_OVERRIDES.get(internal_set_id)
    if override is not None:
        return override

    if "." in internal_set_id:
        prefix, suffix = internal_set_id.split(".", 1)
        return f"{_strip_number_padding(prefix)}pt{suffix}"

    return _strip_number_padding(internal_set_id)

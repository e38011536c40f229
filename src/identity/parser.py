"""
HoloSwap Pricing — Card Input Parser

Turns what a customer types at the counter into one of four shapes:

    "SV107/SV122"   -> PrefixedNumber(number="SV107", total="SV122")
    "SVI 089/258"   -> SetAndNumber(set_code="SVI", number="89")
    "MEG 089"       -> SetAndNumber(set_code="MEG", number="89")
    "4/102"         -> BareNumber(number="4", total="102")
    "sv107"         -> PrefixedNumber(number="SV107")
    "Charizard ex"  -> NameSearch(query="Charizard ex")

Patterns are tried in that order; the first match wins. The grammar is
ambiguous between "set code + number" and "letter-prefixed number" when the
set-code token is plain letters ("SV 107"); the lookup flow resolves this by
retrying a failed set code as a number prefix.
"""

from __future__ import annotations

import re
from typing import Literal, Union

from pydantic import BaseModel

from src.config import ParsedInputType

_PREFIXED_WITH_TOTAL = re.compile(r"^([A-Za-z]+)\s*(\d+)\s*/\s*([A-Za-z]+)\s*(\d+)$")
_SET_NUMBER_TOTAL = re.compile(r"^([A-Za-z0-9._-]+)\s+([A-Za-z]*)\s*(\d+)\s*/\s*[A-Za-z]*\s*(\d+)$")
_SET_NUMBER = re.compile(r"^([A-Za-z0-9._-]+)\s+([A-Za-z]*)\s*(\d+)$")
_NUMBER_TOTAL = re.compile(r"^(\d+)\s*/\s*(\d+)$")
_PREFIXED = re.compile(r"^([A-Za-z]+)\s*(\d+)$")


class NameSearch(BaseModel, frozen=True):
    type: Literal[ParsedInputType.NAME_SEARCH] = ParsedInputType.NAME_SEARCH
    query: str


class SetAndNumber(BaseModel, frozen=True):
    type: Literal[ParsedInputType.SET_AND_NUMBER] = ParsedInputType.SET_AND_NUMBER
    set_code: str
    number: str


class BareNumber(BaseModel, frozen=True):
    type: Literal[ParsedInputType.BARE_NUMBER] = ParsedInputType.BARE_NUMBER
    number: str
    total: str


class PrefixedNumber(BaseModel, frozen=True):
    type: Literal[ParsedInputType.PREFIXED_NUMBER] = ParsedInputType.PREFIXED_NUMBER
    number: str
    total: str | None = None


ParsedInput = Union[NameSearch, SetAndNumber, BareNumber, PrefixedNumber]


def strip_leading_zeros(value: str) -> str:
    """Drop leading zeros, never returning an empty string ("000" -> "0")."""
    return value.lstrip("0") or "0"


def _prefixed(prefix: str, digits: str) -> str:
    return strip_leading_zeros(prefix.upper() + digits)


def parse_card_input(raw: str) -> ParsedInput:
    """
    Classify free-text card input.

    Args:
        raw: Customer input, e.g. "SVI 089/258".

    Returns:
        NameSearch | SetAndNumber | BareNumber | PrefixedNumber.
    """
    text = raw.strip()

    m = _PREFIXED_WITH_TOTAL.match(text)
    if m and m.group(1).upper() == m.group(3).upper():
        prefix = m.group(1).upper()
        return PrefixedNumber(number=prefix + m.group(2), total=prefix + m.group(4))

    m = _SET_NUMBER_TOTAL.match(text)
    if m:
        return SetAndNumber(set_code=m.group(1).upper(), number=_prefixed(m.group(2), m.group(3)))

    m = _SET_NUMBER.match(text)
    if m:
        return SetAndNumber(set_code=m.group(1).upper(), number=_prefixed(m.group(2), m.group(3)))

    m = _NUMBER_TOTAL.match(text)
    if m:
        return BareNumber(
            number=strip_leading_zeros(m.group(1)),
            total=strip_leading_zeros(m.group(2)),
        )

    m = _PREFIXED.match(text)
    if m:
        return PrefixedNumber(number=m.group(1).upper() + m.group(2))

    return NameSearch(query=text)

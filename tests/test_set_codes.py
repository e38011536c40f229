"""
Tests for set-code resolution (src/identity/set_codes.py).
"""

from __future__ import annotations

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from src.identity.set_codes import SET_CODE_MAP, resolve_set_code


# ---------------------------------------------------------------------------
# Test 1: Printed codes resolve through the table
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "code,expected",
    [
        ("SVI", "sv01"),
        ("svi", "sv01"),
        ("PAF", "sv04.5"),
        ("MEG", "me01"),
        ("A1a", "A1a"),
    ],
)
async def test_table_codes(db_session: AsyncSession, code: str, expected: str) -> None:
    """Table hits need no card index rows at all."""
    assert await resolve_set_code(db_session, code) == expected


# ---------------------------------------------------------------------------
# Test 2: Internal set id matches case-insensitively
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_set_id_match(seeded_session: AsyncSession) -> None:
    assert await resolve_set_code(seeded_session, "BASE4") == "base4"


# ---------------------------------------------------------------------------
# Test 3: Set name substring
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_set_name_substring(seeded_session: AsyncSession) -> None:
    assert await resolve_set_code(seeded_session, "obsidian") == "sv03"


@pytest.mark.asyncio
async def test_set_name_substring_picks_lowest_set_id(seeded_session: AsyncSession) -> None:
    """'Base Set' and 'Base Set 2' both contain 'base set'."""
    assert await resolve_set_code(seeded_session, "base set") == "base1"


# ---------------------------------------------------------------------------
# Test 4: Misses
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_unknown_code_returns_none(seeded_session: AsyncSession) -> None:
    assert await resolve_set_code(seeded_session, "ZZZ") is None


@pytest.mark.asyncio
async def test_blank_code_returns_none(seeded_session: AsyncSession) -> None:
    assert await resolve_set_code(seeded_session, "   ") is None


@pytest.mark.asyncio
async def test_like_wildcards_are_literal(seeded_session: AsyncSession) -> None:
    """'%' must not match every set name."""
    assert await resolve_set_code(seeded_session, "%") is None


def test_table_keys_are_upper_case() -> None:
    assert all(code == code.upper() for code in SET_CODE_MAP)

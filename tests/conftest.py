"""
HoloSwap Pricing — Shared pytest Fixtures & Configuration

Provides common fixtures for all test modules:
- In-memory aiosqlite database (session + session factory)
- A small seeded card index
- A controllable clock for caches, the rate limiter and recency scoring
- Pricing services wired to that clock
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator

import pytest
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from src.models.base import Base
from src.models.card_index import CardIndex
from src.pipeline.services import PricingServices


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

pytest_plugins = ("pytest_asyncio",)


@pytest.fixture(scope="session")
def anyio_backend() -> str:
    """Use asyncio backend for anyio tests."""
    return "asyncio"


# ---------------------------------------------------------------------------
# Clock
# ---------------------------------------------------------------------------


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock() -> FakeClock:
    """Clock fixed at 2026-03-10 12:00 UTC."""
    return FakeClock(datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def services(clock: FakeClock) -> PricingServices:
    """Fresh caches and a fresh daily quota per test."""
    return PricingServices.create(clock=clock)


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------


@pytest.fixture
async def db_engine() -> AsyncGenerator[AsyncEngine, None]:
    """
    In-memory SQLite engine with every table created.

    Creates a fresh database for each test, ensuring isolation.
    """
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", echo=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(db_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


# ---------------------------------------------------------------------------
# Card index seed
# ---------------------------------------------------------------------------

# (id, name, local_id, set_id, set_name, set_total)
SEED_CARDS: list[tuple[str, str, str, str, str, int]] = [
    ("sv01-001", "Pikachu", "001", "sv01", "Scarlet & Violet", 258),
    ("sv01-089", "Luxray", "089", "sv01", "Scarlet & Violet", 258),
    ("sv01-258", "Gardevoir ex", "258", "sv01", "Scarlet & Violet", 258),
    ("sv03-125", "Charizard ex", "125", "sv03", "Obsidian Flames", 230),
    ("sv04.5-SV107", "Charmander", "SV107", "sv04.5", "Paldean Fates", 245),
    ("sv04.5-SV122", "Charizard ex", "SV122", "sv04.5", "Paldean Fates", 245),
    ("base1-4", "Charizard", "4", "base1", "Base Set", 102),
    ("base1-102", "Water Energy", "102", "base1", "Base Set", 102),
    ("base4-4", "Charizard", "4", "base4", "Base Set 2", 130),
    ("base4-130", "Water Energy", "130", "base4", "Base Set 2", 130),
]


@pytest.fixture
async def seeded_session(db_session: AsyncSession) -> AsyncSession:
    """db_session with SEED_CARDS loaded into card_index."""
    for card_id, name, local_id, set_id, set_name, set_total in SEED_CARDS:
        db_session.add(
            CardIndex(
                id=card_id,
                name=name,
                local_id=local_id,
                set_id=set_id,
                set_name=set_name,
                set_total=set_total,
                category="Pokemon",
            )
        )
    await db_session.commit()
    return db_session

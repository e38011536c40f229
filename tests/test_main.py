"""
Tests for worker start-up helpers (src/main.py).
"""

from __future__ import annotations

import pytest
import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.main import configure_logging, report_data_state
from src.pipeline.catalogue import ProductRef, cache_catalogue_results


@pytest.mark.asyncio
async def test_report_empty_database(session_factory: async_sessionmaker[AsyncSession]) -> None:
    assert await report_data_state(session_factory) == 0


@pytest.mark.asyncio
async def test_report_seeded_database(
    session_factory: async_sessionmaker[AsyncSession],
    seeded_session: AsyncSession,
) -> None:
    await cache_catalogue_results(
        seeded_session, "sv1", [ProductRef(product_id="card:sv1|1||||", card_number="1")]
    )

    assert await report_data_state(session_factory) == 10


def test_configure_logging_console() -> None:
    configure_logging("DEBUG", json_logs=False)
    structlog.get_logger("test").info("logging_configured")
    structlog.reset_defaults()

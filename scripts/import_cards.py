"""
HoloSwap Pricing — Card Index Import Script

Loads sets and cards from TCGdex into card_index. Safe to re-run: rows are
upserted by TCGdex card id.

Usage:
    python scripts/import_cards.py                 # every set
    python scripts/import_cards.py --set sv01      # one set
    python scripts/import_cards.py --set sv01 --set sv02
"""

from __future__ import annotations

import argparse
import asyncio
import os
import sys

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

# Resolve project root so this script can be run from any working directory
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from src.config import settings
from src.pipeline.tcgdex import TCGdexClient, store_cards


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Import TCGdex sets and cards into the card_index table.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python scripts/import_cards.py
  python scripts/import_cards.py --set sv01
  python scripts/import_cards.py --set swsh7.5 --set sv10.5w
""",
    )
    parser.add_argument(
        "--set",
        dest="sets",
        action="append",
        default=None,
        help="TCGdex set id to import (repeatable). Default: every set.",
    )
    return parser.parse_args()


async def import_cards(set_ids: list[str] | None) -> tuple[int, int]:
    """
    Import the given sets (or all of them).

    Returns:
        (sets_imported, cards_upserted)
    """
    engine = create_async_engine(settings.DATABASE_URL, echo=False)
    session_factory = async_sessionmaker(
        engine, class_=AsyncSession, expire_on_commit=False
    )

    sets_done = 0
    cards_done = 0

    try:
        async with TCGdexClient() as client:
            if not set_ids:
                set_ids = [s.id for s in await client.fetch_sets()]

            for set_id in set_ids:
                set_detail, cards = await client.fetch_set_cards(set_id)
                async with session_factory() as session:
                    stored = await store_cards(set_detail, cards, session)
                sets_done += 1
                cards_done += stored
                print(f"  {set_detail.id:<12} {set_detail.name:<40} {stored} cards")
    finally:
        await engine.dispose()

    return sets_done, cards_done


async def main() -> None:
    args = parse_args()

    scope = ", ".join(args.sets) if args.sets else "all sets"
    print(f"Importing cards from {settings.TCGDEX_BASE_URL} ({scope})")

    try:
        sets_done, cards_done = await import_cards(args.sets)
    except Exception as e:
        print(f"Import failed: {e}", file=sys.stderr)
        sys.exit(1)

    print()
    print(f"Imported {cards_done} cards across {sets_done} sets.")


if __name__ == "__main__":
    asyncio.run(main())

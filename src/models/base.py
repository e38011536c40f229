"""
SQLAlchemy 2.0 async DeclarativeBase for HoloSwap Pricing.

All models inherit from this Base.
"""

from sqlalchemy import JSON
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase

# JSONB on Postgres, plain JSON elsewhere (SQLite in tests).
JSONType = JSON().with_variant(JSONB(), "postgresql")


class Base(DeclarativeBase):
    """Base class for all HoloSwap Pricing database models."""
    pass

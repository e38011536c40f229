"""
Models package — export all SQLAlchemy models.
"""

from src.models.base import Base
from src.models.card_index import CardIndex
from src.models.catalogue_product import CatalogueProduct
from src.models.price_history import MarketPriceHistory
from src.models.watchlist import NotificationSettings, PriceAlert, WatchlistEntry

__all__ = [
    "Base",
    "CardIndex",
    "CatalogueProduct",
    "MarketPriceHistory",
    "NotificationSettings",
    "PriceAlert",
    "WatchlistEntry",
]

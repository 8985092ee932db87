"""
Database package for the power price alert service.
Contains the SQLite connection and the price, subscriber and alert stores.
"""

from .alert_log import AlertLog
from .connection import Database
from .price_store import PriceStore
from .subscriber_directory import SubscriberDirectory

__all__ = [
    "AlertLog",
    "Database",
    "PriceStore",
    "SubscriberDirectory",
]

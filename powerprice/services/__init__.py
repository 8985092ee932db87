"""
Services package for the power price alert service.
Contains price fetching, analytics, alert evaluation and the service facade.
"""

from .alert_evaluator import AlertEvaluator
from .price_alert_service import PriceAlertService
from .price_analytics import PriceAnalytics
from .price_fetcher import PriceFetcher

__all__ = [
    "AlertEvaluator",
    "PriceAlertService",
    "PriceAnalytics",
    "PriceFetcher",
]

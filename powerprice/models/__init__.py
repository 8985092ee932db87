"""
Data models package for the power price alert service.
Contains Pydantic models for prices, subscribers, alerts and API responses.
"""

from .alert import AlertKind, AlertRecord, PassReport
from .price import (
    FetchResult,
    FetchStatus,
    HealthResponse,
    PriceDataStatus,
    PricePoint,
    PriceStatistics,
    PriceZone,
)
from .subscriber import (
    Subscriber,
    SubscriberCreate,
    SubscriberStatistics,
    SubscriberUpdate,
    is_valid_email,
)

__all__ = [
    "AlertKind",
    "AlertRecord",
    "PassReport",
    "FetchResult",
    "FetchStatus",
    "HealthResponse",
    "PriceDataStatus",
    "PricePoint",
    "PriceStatistics",
    "PriceZone",
    "Subscriber",
    "SubscriberCreate",
    "SubscriberStatistics",
    "SubscriberUpdate",
    "is_valid_email",
]

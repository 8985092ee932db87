"""
Pydantic models for subscribers and their alert preferences.
"""

import re
from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field

from powerprice.models.price import PriceZone

EMAIL_PATTERN = re.compile(r"^[A-Za-z0-9+_.-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}$")


def is_valid_email(address: Optional[str]) -> bool:
    """Check that an address has the shape local@domain.tld."""
    if not address:
        return False
    return EMAIL_PATTERN.match(address) is not None


class Subscriber(BaseModel):
    """
    A registered recipient of price alerts.

    alert_threshold drives both low- and high-price alerts: a price below the
    threshold triggers PRICE_LOW, a price above it triggers PRICE_HIGH.
    """
    id: int
    email: str = Field(description="Unique contact address (lower-case)")
    zone: PriceZone
    alert_threshold: Optional[Decimal] = Field(default=None, description="Price threshold in local currency")
    alert_enabled: bool = True
    created_at: datetime
    updated_at: datetime


class SubscriberCreate(BaseModel):
    """Input for registering a subscriber."""
    email: str
    zone: str
    alert_threshold: Optional[Decimal] = None
    alert_enabled: bool = True


class SubscriberUpdate(BaseModel):
    """Partial preference update; fields left as None are unchanged."""
    zone: Optional[str] = None
    alert_threshold: Optional[Decimal] = None
    alert_enabled: Optional[bool] = None


class SubscriberStatistics(BaseModel):
    """Subscriber counts, total and per zone."""
    total: int
    active: int
    inactive: int
    by_zone: dict[str, int]

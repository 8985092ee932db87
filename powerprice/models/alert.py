"""
Pydantic models for sent alerts and alert pass reports.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class AlertKind(str, Enum):
    """
    Kinds of alerts sent to subscribers. Each kind is sent at most once per day.
    """
    PRICE_LOW = "PRICE_LOW"            # Price dropped below the subscriber's threshold
    PRICE_HIGH = "PRICE_HIGH"          # Price rose above the subscriber's threshold
    DAILY_SUMMARY = "DAILY_SUMMARY"    # Average/min/max of the day
    CHEAPEST_HOURS = "CHEAPEST_HOURS"  # Ranked cheapest hours of the day

    @property
    def display_name(self) -> str:
        return _DISPLAY_NAMES[self]


_DISPLAY_NAMES = {
    AlertKind.PRICE_LOW: "Low price",
    AlertKind.PRICE_HIGH: "High price",
    AlertKind.DAILY_SUMMARY: "Daily summary",
    AlertKind.CHEAPEST_HOURS: "Cheapest hours",
}


class AlertRecord(BaseModel):
    """
    Immutable log entry marking that an alert was sent to a subscriber.
    """
    id: int
    subscriber_id: int
    kind: AlertKind
    message: str
    price_at_trigger: Optional[Decimal] = None
    triggered_at: datetime = Field(description="UTC instant the alert was created")
    alert_day: date = Field(description="Local calendar day the alert belongs to")

    class Config:
        frozen = True


class PassReport(BaseModel):
    """Counters for one evaluation pass over all zones."""
    kind: AlertKind
    zones_evaluated: int = 0
    candidates: int = 0
    sent: int = 0
    already_sent: int = 0
    delivery_failures: int = 0
    subscriber_errors: int = 0
    zone_errors: int = 0

    def merge(self, other: "PassReport") -> None:
        self.zones_evaluated += other.zones_evaluated
        self.candidates += other.candidates
        self.sent += other.sent
        self.already_sent += other.already_sent
        self.delivery_failures += other.delivery_failures
        self.subscriber_errors += other.subscriber_errors
        self.zone_errors += other.zone_errors

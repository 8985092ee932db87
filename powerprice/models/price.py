"""
Pydantic data models for price data and API responses.
Defines the structure for hourly price points, fetch results and statistics.
"""

from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from powerprice.exceptions import ValidationError
from powerprice.utils.time_utils import truncate_to_hour

LOCAL_PRICE_QUANTUM = Decimal("0.01")
REFERENCE_PRICE_QUANTUM = Decimal("0.0001")


class PriceZone(str, Enum):
    """
    Norwegian electricity bidding zones.
    """
    NO1 = "NO1"  # Oslo / East Norway
    NO2 = "NO2"  # Kristiansand / South Norway
    NO3 = "NO3"  # Trondheim / Central Norway
    NO4 = "NO4"  # Tromsø / North Norway
    NO5 = "NO5"  # Bergen / West Norway

    @property
    def description(self) -> str:
        return _ZONE_DESCRIPTIONS[self]

    @classmethod
    def parse(cls, value: str) -> "PriceZone":
        """
        Convert user input such as "no1" to a PriceZone.

        Raises:
            ValidationError: If the value is not a known zone
        """
        if value is None:
            raise ValidationError("Zone cannot be empty")
        try:
            return cls(str(value).strip().upper())
        except ValueError:
            valid = ", ".join(zone.value for zone in cls)
            raise ValidationError(f"Invalid price zone: {value}. Valid values: {valid}")


_ZONE_DESCRIPTIONS = {
    PriceZone.NO1: "Oslo / East Norway",
    PriceZone.NO2: "Kristiansand / South Norway",
    PriceZone.NO3: "Trondheim / Central Norway",
    PriceZone.NO4: "Tromsø / North Norway",
    PriceZone.NO5: "Bergen / West Norway",
}


class PricePoint(BaseModel):
    """
    One hour's spot price for one zone.

    Upstream JSON entry:
    {"NOK_per_kWh": 0.85, "EUR_per_kWh": 0.075, "EXR": 11.33,
     "time_start": "2025-12-21T00:00:00+01:00", "time_end": "2025-12-21T01:00:00+01:00"}
    """
    zone: PriceZone = Field(description="Bidding zone")
    timestamp: datetime = Field(
        description="Start of the hour in UTC (minutes, seconds and microseconds are zero)"
    )
    price_local: Decimal = Field(
        description="Price in local currency per kWh, 2 decimals - can be negative"
    )
    price_reference: Decimal = Field(
        description="Price in reference currency (EUR) per kWh, 4 decimals"
    )
    exchange_rate: Optional[Decimal] = Field(default=None, description="Local/reference exchange rate")

    @field_validator("timestamp")
    @classmethod
    def _normalize_timestamp(cls, value: datetime) -> datetime:
        return truncate_to_hour(value)

    @field_validator("price_local")
    @classmethod
    def _quantize_local(cls, value: Decimal) -> Decimal:
        return value.quantize(LOCAL_PRICE_QUANTUM, rounding=ROUND_HALF_UP)

    @field_validator("price_reference")
    @classmethod
    def _quantize_reference(cls, value: Decimal) -> Decimal:
        return value.quantize(REFERENCE_PRICE_QUANTUM, rounding=ROUND_HALF_UP)

    class Config:
        frozen = True


class FetchStatus(str, Enum):
    """Outcome of fetching one zone for one date."""
    STORED = "STORED"
    NOT_PUBLISHED = "NOT_PUBLISHED"
    FAILED = "FAILED"


class FetchResult(BaseModel):
    """Per-zone result of a price fetch, success or failure."""
    zone: PriceZone
    date: date
    status: FetchStatus
    parsed: int = 0
    stored: int = 0
    skipped: int = 0
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status != FetchStatus.FAILED


class PriceStatistics(BaseModel):
    """
    Daily statistics for a zone.
    average/minimum/maximum are None when there is no data for the day.
    """
    zone: PriceZone
    date: date
    average: Optional[Decimal] = None
    minimum: Optional[Decimal] = None
    maximum: Optional[Decimal] = None
    count: int = 0

    @property
    def has_data(self) -> bool:
        return self.count > 0


class PriceDataStatus(BaseModel):
    """Availability of today's and tomorrow's prices for a zone."""
    zone: PriceZone
    has_today: bool
    has_tomorrow: bool


class HealthResponse(BaseModel):
    """
    Health check response model.
    """
    status: str = Field(description="Health status")
    timestamp: datetime = Field(description="Health check timestamp")
    details: Optional[dict] = Field(default=None, description="Additional health details")

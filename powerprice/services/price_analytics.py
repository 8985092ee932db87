"""
Read-only price analytics over the stored series.
Days are local calendar days; the store is queried with their UTC window.
"""

from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import List, Optional

from powerprice.database.price_store import PriceStore
from powerprice.exceptions import ValidationError
from powerprice.logging_config import get_logger
from powerprice.models.price import LOCAL_PRICE_QUANTUM, PricePoint, PriceStatistics, PriceZone
from powerprice.utils.time_utils import Clock

logger = get_logger(__name__)


def average_price(points: List[PricePoint]) -> Optional[Decimal]:
    """Mean local price rounded to 2 decimals, None for an empty series."""
    if not points:
        return None
    total = sum((point.price_local for point in points), Decimal("0"))
    return (total / Decimal(len(points))).quantize(LOCAL_PRICE_QUANTUM, rounding=ROUND_HALF_UP)


def cheapest(points: List[PricePoint], n: int) -> List[PricePoint]:
    """The n lowest prices, ascending; equal prices keep the earlier hour first."""
    if n < 1:
        raise ValidationError(f"Number of hours must be at least 1, got {n}")
    return sorted(points, key=lambda point: (point.price_local, point.timestamp))[:n]


class PriceAnalytics:
    """
    Current price, daily series and statistics per zone.

    Everything is derived from the injected clock, so results are
    deterministic in tests.
    """

    def __init__(self, store: PriceStore, clock: Clock):
        self.store = store
        self.clock = clock

    async def current_price(self, zone: PriceZone) -> Optional[PricePoint]:
        """Price of the current hour, or None if not stored."""
        hour = self.clock.current_hour()
        points = await self.store.query(zone, hour, hour)
        return points[0] if points else None

    async def series_for_date(self, zone: PriceZone, day: date) -> List[PricePoint]:
        start, end = self.clock.day_bounds(day)
        return await self.store.query(zone, start, end)

    async def todays_series(self, zone: PriceZone) -> List[PricePoint]:
        return await self.series_for_date(zone, self.clock.today())

    async def tomorrows_series(self, zone: PriceZone) -> List[PricePoint]:
        return await self.series_for_date(zone, self.clock.tomorrow())

    async def cheapest_n(self, zone: PriceZone, n: int, day: Optional[date] = None) -> List[PricePoint]:
        """
        Cheapest hours of a day (today by default).

        Raises:
            ValidationError: If n is less than 1
        """
        if n < 1:
            raise ValidationError(f"Number of hours must be at least 1, got {n}")
        points = await self.series_for_date(zone, day or self.clock.today())
        return cheapest(points, n)

    async def average(self, zone: PriceZone) -> Optional[Decimal]:
        return average_price(await self.todays_series(zone))

    async def minimum(self, zone: PriceZone) -> Optional[Decimal]:
        points = await self.todays_series(zone)
        return min(point.price_local for point in points) if points else None

    async def maximum(self, zone: PriceZone) -> Optional[Decimal]:
        points = await self.todays_series(zone)
        return max(point.price_local for point in points) if points else None

    async def statistics(self, zone: PriceZone, day: Optional[date] = None) -> PriceStatistics:
        """Average, min and max of a day; all None when there is no data."""
        day = day or self.clock.today()
        points = await self.series_for_date(zone, day)
        if not points:
            logger.debug("No prices for statistics", zone=zone.value, date=day.isoformat())
            return PriceStatistics(zone=zone, date=day)

        prices = [point.price_local for point in points]
        return PriceStatistics(
            zone=zone,
            date=day,
            average=average_price(points),
            minimum=min(prices),
            maximum=max(prices),
            count=len(points),
        )

    async def has_data_for_today(self, zone: PriceZone) -> bool:
        start, end = self.clock.day_bounds(self.clock.today())
        return await self.store.exists(zone, start, end)

    async def has_data_for_tomorrow(self, zone: PriceZone) -> bool:
        start, end = self.clock.day_bounds(self.clock.tomorrow())
        return await self.store.exists(zone, start, end)

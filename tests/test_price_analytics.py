"""
Tests for current price, daily series and statistics.
"""

from datetime import timedelta
from decimal import Decimal

import pytest

from powerprice.exceptions import ValidationError
from powerprice.models.price import PriceZone
from powerprice.services.price_analytics import PriceAnalytics, average_price, cheapest

from conftest import DAY_START_UTC, TODAY


@pytest.fixture
def analytics(price_store, clock):
    return PriceAnalytics(price_store, clock)


class TestCurrentPrice:

    @pytest.mark.asyncio
    async def test_current_hour(self, analytics, price_store, make_points):
        # Clock is 12:30 local, the 13th hour of the day
        await price_store.put_batch(make_points(PriceZone.NO1, [hour / 10 for hour in range(24)]))

        point = await analytics.current_price(PriceZone.NO1)

        assert point.price_local == Decimal("1.20")

    @pytest.mark.asyncio
    async def test_no_price_for_current_hour(self, analytics):
        assert await analytics.current_price(PriceZone.NO1) is None


class TestSeries:

    @pytest.mark.asyncio
    async def test_today_and_tomorrow_windows(self, analytics, price_store, make_points):
        await price_store.put_batch(make_points(PriceZone.NO1, [1.0] * 24))
        await price_store.put_batch(make_points(PriceZone.NO1, [2.0] * 24, start=DAY_START_UTC + timedelta(days=1)))

        today = await analytics.todays_series(PriceZone.NO1)
        tomorrow = await analytics.tomorrows_series(PriceZone.NO1)

        assert len(today) == 24
        assert len(tomorrow) == 24
        assert today[0].timestamp == DAY_START_UTC
        assert all(p.price_local == Decimal("2.00") for p in tomorrow)
        assert await analytics.has_data_for_today(PriceZone.NO1)
        assert await analytics.has_data_for_tomorrow(PriceZone.NO1)

    @pytest.mark.asyncio
    async def test_series_for_other_date(self, analytics, price_store, make_points):
        await price_store.put_batch(make_points(PriceZone.NO2, [1.0] * 24, start=DAY_START_UTC - timedelta(days=1)))

        assert len(await analytics.series_for_date(PriceZone.NO2, TODAY - timedelta(days=1))) == 24
        assert await analytics.todays_series(PriceZone.NO2) == []
        assert not await analytics.has_data_for_today(PriceZone.NO2)


class TestCheapest:

    @pytest.mark.asyncio
    async def test_cheapest_n_ascending_with_ties_by_time(self, analytics, price_store, make_points):
        prices = [0.9, 0.3, 0.5, 0.3, 0.1, 0.8]
        await price_store.put_batch(make_points(PriceZone.NO1, prices))

        result = await analytics.cheapest_n(PriceZone.NO1, 3)

        assert [p.price_local for p in result] == [Decimal("0.10"), Decimal("0.30"), Decimal("0.30")]
        assert result[1].timestamp < result[2].timestamp
        assert result[1].timestamp == DAY_START_UTC + timedelta(hours=1)

    @pytest.mark.asyncio
    async def test_fewer_points_than_n(self, analytics, price_store, make_points):
        await price_store.put_batch(make_points(PriceZone.NO1, [0.5, 0.4]))

        assert len(await analytics.cheapest_n(PriceZone.NO1, 5)) == 2

    @pytest.mark.asyncio
    async def test_n_must_be_positive(self, analytics):
        with pytest.raises(ValidationError):
            await analytics.cheapest_n(PriceZone.NO1, 0)

    def test_cheapest_helper_empty(self):
        assert cheapest([], 3) == []


class TestStatistics:

    @pytest.mark.asyncio
    async def test_statistics(self, analytics, price_store, make_points):
        await price_store.put_batch(make_points(PriceZone.NO1, [0.10, 0.20, 0.25]))

        stats = await analytics.statistics(PriceZone.NO1)

        # (0.10 + 0.20 + 0.25) / 3 = 0.18333 -> 0.18
        assert stats.average == Decimal("0.18")
        assert stats.minimum == Decimal("0.10")
        assert stats.maximum == Decimal("0.25")
        assert stats.count == 3
        assert stats.has_data

    @pytest.mark.asyncio
    async def test_empty_day_returns_sentinel(self, analytics):
        stats = await analytics.statistics(PriceZone.NO4)

        assert stats.date == TODAY
        assert stats.average is None
        assert stats.minimum is None
        assert stats.maximum is None
        assert not stats.has_data
        assert await analytics.average(PriceZone.NO4) is None
        assert await analytics.minimum(PriceZone.NO4) is None
        assert await analytics.maximum(PriceZone.NO4) is None

    @pytest.mark.asyncio
    async def test_negative_prices(self, analytics, price_store, make_points):
        await price_store.put_batch(make_points(PriceZone.NO2, [-0.05, 0.15]))

        assert await analytics.minimum(PriceZone.NO2) == Decimal("-0.05")
        assert await analytics.average(PriceZone.NO2) == Decimal("0.05")

    def test_average_rounds_half_up(self, make_points):
        points = make_points(PriceZone.NO1, [0.10, 0.15])
        assert average_price(points) == Decimal("0.13")

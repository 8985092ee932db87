"""
Tests for the SQLite price store.
"""

from datetime import datetime, timedelta
from decimal import Decimal

import pytest
import pytz

from powerprice.models.price import PricePoint, PriceZone

from conftest import DAY_START_UTC


class TestPriceStore:

    @pytest.mark.asyncio
    async def test_put_is_idempotent(self, price_store, make_points):
        point = make_points(PriceZone.NO1, ["0.85"])[0]

        assert await price_store.put(point) is True
        assert await price_store.put(point) is False

        stored = await price_store.query(PriceZone.NO1, DAY_START_UTC, DAY_START_UTC)
        assert len(stored) == 1

    @pytest.mark.asyncio
    async def test_refetch_keeps_first_value(self, price_store, make_points):
        await price_store.put_batch(make_points(PriceZone.NO1, ["0.85"]))
        stored = await price_store.put_batch(make_points(PriceZone.NO1, ["9.99"]))

        assert stored == 0
        points = await price_store.query(PriceZone.NO1, DAY_START_UTC, DAY_START_UTC)
        assert points[0].price_local == Decimal("0.85")

    @pytest.mark.asyncio
    async def test_query_is_inclusive_and_ascending(self, price_store, make_points):
        points = make_points(PriceZone.NO1, ["0.3", "0.2", "0.1", "0.4"])
        assert await price_store.put_batch(reversed(points)) == 4

        result = await price_store.query(PriceZone.NO1, points[1].timestamp, points[2].timestamp)

        assert [p.timestamp for p in result] == [points[1].timestamp, points[2].timestamp]
        assert result[0].price_local == Decimal("0.20")
        assert result[0].exchange_rate == Decimal("11.5")

    @pytest.mark.asyncio
    async def test_query_filters_by_zone(self, price_store, make_points):
        await price_store.put_batch(make_points(PriceZone.NO1, ["0.5"]))
        await price_store.put_batch(make_points(PriceZone.NO2, ["0.7"]))

        result = await price_store.query(PriceZone.NO2, DAY_START_UTC, DAY_START_UTC + timedelta(hours=23))
        assert [p.zone for p in result] == [PriceZone.NO2]

    @pytest.mark.asyncio
    async def test_query_empty(self, price_store):
        assert await price_store.query(PriceZone.NO4, DAY_START_UTC, DAY_START_UTC) == []
        assert await price_store.exists(PriceZone.NO4, DAY_START_UTC, DAY_START_UTC) is False

    @pytest.mark.asyncio
    async def test_delete_older_than(self, price_store, make_points):
        await price_store.put_batch(make_points(PriceZone.NO1, ["0.1", "0.2", "0.3"]))

        deleted = await price_store.delete_older_than(DAY_START_UTC + timedelta(hours=2))

        assert deleted == 2
        remaining = await price_store.query(PriceZone.NO1, DAY_START_UTC, DAY_START_UTC + timedelta(hours=5))
        assert len(remaining) == 1

    @pytest.mark.asyncio
    async def test_latest_timestamp(self, price_store, make_points):
        assert await price_store.latest_timestamp() is None

        await price_store.put_batch(make_points(PriceZone.NO1, ["0.1", "0.2"]))
        await price_store.put_batch(make_points(PriceZone.NO3, ["0.1"]))

        assert await price_store.latest_timestamp() == DAY_START_UTC + timedelta(hours=1)
        assert await price_store.latest_timestamp(PriceZone.NO3) == DAY_START_UTC

    @pytest.mark.asyncio
    async def test_latest_insert_time(self, price_store, make_points):
        assert await price_store.latest_insert_time() is None

        before = datetime.now(pytz.UTC)
        await price_store.put_batch(make_points(PriceZone.NO1, ["0.1", "0.2"], start=DAY_START_UTC + timedelta(days=1)))
        after = datetime.now(pytz.UTC)

        assert before <= await price_store.latest_insert_time() <= after

    @pytest.mark.asyncio
    async def test_sub_hour_timestamps_share_a_key(self, price_store):
        first = PricePoint(
            zone=PriceZone.NO5,
            timestamp=datetime(2025, 12, 21, 10, 0, tzinfo=pytz.UTC),
            price_local=Decimal("1.00"),
            price_reference=Decimal("0.087"),
        )
        second = PricePoint(
            zone=PriceZone.NO5,
            timestamp=datetime(2025, 12, 21, 10, 59, 59, tzinfo=pytz.UTC),
            price_local=Decimal("2.00"),
            price_reference=Decimal("0.174"),
        )

        assert await price_store.put(first) is True
        assert await price_store.put(second) is False

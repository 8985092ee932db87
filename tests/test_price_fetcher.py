"""
Tests for fetching, parsing and storing prices from the price source.
External HTTP is replaced with httpx.MockTransport.
"""

import asyncio
import json
from datetime import date, timedelta
from decimal import Decimal

import httpx
import pytest

from powerprice.exceptions import DatabaseError
from powerprice.models.price import FetchStatus, PriceZone
from powerprice.services.price_fetcher import PriceFetcher

from conftest import DAY_START_UTC, TODAY

BASE_URL = "https://prices.test/api/v1/prices"
DAY_END_UTC = DAY_START_UTC + timedelta(hours=23, minutes=59)
TOMORROW = TODAY + timedelta(days=1)


@pytest.fixture
def fetcher_for(price_store, clock, mock_transport):
    def _fetcher(routes: dict) -> PriceFetcher:
        return PriceFetcher(
            price_store,
            base_url=BASE_URL,
            timeout=1.0,
            concurrency=5,
            clock=clock,
            transport=mock_transport(routes),
        )
    return _fetcher


class TestFetchZoneDate:

    def test_build_url(self, price_store, clock):
        fetcher = PriceFetcher(price_store, base_url=BASE_URL + "/", clock=clock)
        url = fetcher._build_url(PriceZone.NO1, date(2025, 3, 7))
        assert url == "https://prices.test/api/v1/prices/2025/03-07_NO1.json"

    @pytest.mark.asyncio
    async def test_stores_all_hours(self, fetcher_for, price_store, upstream_payload):
        prices = [0.5 + hour / 100 for hour in range(24)]
        fetcher = fetcher_for({"2025/12-21_NO1.json": upstream_payload(prices)})

        result = await fetcher.fetch_zone_date(PriceZone.NO1, TODAY)

        assert result.status == FetchStatus.STORED
        assert result.parsed == 24
        assert result.stored == 24
        assert result.skipped == 0

        points = await price_store.query(PriceZone.NO1, DAY_START_UTC, DAY_END_UTC)
        assert len(points) == 24
        assert points[0].timestamp == DAY_START_UTC
        assert points[0].price_local == Decimal("0.50")
        assert points[0].exchange_rate == Decimal("11.5")

    @pytest.mark.asyncio
    async def test_refetch_is_idempotent(self, fetcher_for, price_store, upstream_payload):
        fetcher = fetcher_for({"12-21_NO2.json": upstream_payload([1.0] * 24)})

        await fetcher.fetch_zone_date(PriceZone.NO2, TODAY)
        second = await fetcher.fetch_zone_date(PriceZone.NO2, TODAY)

        assert second.status == FetchStatus.STORED
        assert second.stored == 0
        assert len(await price_store.query(PriceZone.NO2, DAY_START_UTC, DAY_END_UTC)) == 24

    @pytest.mark.asyncio
    async def test_canonical_field_names(self, fetcher_for, price_store):
        body = json.dumps([{
            "price_in_local_currency": 1.2345,
            "price_in_reference_currency": 0.10735,
            "exchange_rate": 11.5,
            "interval_start": "2025-12-21T00:00:00+01:00",
            "interval_end": "2025-12-21T01:00:00+01:00",
        }])
        fetcher = fetcher_for({"12-21_NO1.json": body})

        result = await fetcher.fetch_zone_date(PriceZone.NO1, TODAY)

        assert result.stored == 1
        point = (await price_store.query(PriceZone.NO1, DAY_START_UTC, DAY_START_UTC))[0]
        assert point.price_local == Decimal("1.23")
        assert point.price_reference == Decimal("0.1074")

    @pytest.mark.asyncio
    async def test_malformed_entries_are_skipped(self, fetcher_for, price_store, upstream_payload):
        entries = json.loads(upstream_payload([0.5, 0.6, 0.7]))
        entries[1]["NOK_per_kWh"] = "not a number"
        entries.append({"NOK_per_kWh": 0.8, "EUR_per_kWh": 0.07, "time_start": "garbage"})
        entries.append("not an object")
        fetcher = fetcher_for({"12-21_NO1.json": json.dumps(entries)})

        result = await fetcher.fetch_zone_date(PriceZone.NO1, TODAY)

        assert result.status == FetchStatus.STORED
        assert result.stored == 2
        assert result.skipped == 3
        points = await price_store.query(PriceZone.NO1, DAY_START_UTC, DAY_END_UTC)
        assert [p.price_local for p in points] == [Decimal("0.50"), Decimal("0.70")]

    @pytest.mark.asyncio
    async def test_quarter_hours_are_averaged(self, fetcher_for, price_store):
        entries = [
            {
                "NOK_per_kWh": price,
                "EUR_per_kWh": price / 10,
                "EXR": 10,
                "time_start": f"2025-12-21T00:{minute:02d}:00+01:00",
                "time_end": f"2025-12-21T00:{minute + 15:02d}:00+01:00",
            }
            for minute, price in zip((0, 15, 30, 45), (1.0, 2.0, 3.0, 4.0))
        ]
        fetcher = fetcher_for({"12-21_NO1.json": json.dumps(entries)})

        result = await fetcher.fetch_zone_date(PriceZone.NO1, TODAY)

        assert result.parsed == 4
        assert result.stored == 1
        point = (await price_store.query(PriceZone.NO1, DAY_START_UTC, DAY_START_UTC))[0]
        assert point.price_local == Decimal("2.50")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("body", ["", "[]"])
    async def test_empty_response_is_not_published(self, fetcher_for, body):
        fetcher = fetcher_for({"12-22_NO1.json": body})

        result = await fetcher.fetch_zone_date(PriceZone.NO1, TOMORROW)

        assert result.status == FetchStatus.NOT_PUBLISHED
        assert result.ok

    @pytest.mark.asyncio
    async def test_404_for_tomorrow_is_not_published(self, fetcher_for):
        fetcher = fetcher_for({})

        result = await fetcher.fetch_zone_date(PriceZone.NO1, TOMORROW)

        assert result.status == FetchStatus.NOT_PUBLISHED

    @pytest.mark.asyncio
    async def test_404_for_today_is_failure(self, fetcher_for):
        fetcher = fetcher_for({})

        result = await fetcher.fetch_zone_date(PriceZone.NO1, TODAY)

        assert result.status == FetchStatus.FAILED
        assert "404" in result.error

    @pytest.mark.asyncio
    async def test_server_error_is_failure(self, fetcher_for):
        fetcher = fetcher_for({"12-21_NO1.json": 503})

        result = await fetcher.fetch_zone_date(PriceZone.NO1, TODAY)

        assert result.status == FetchStatus.FAILED
        assert "503" in result.error

    @pytest.mark.asyncio
    async def test_timeout_is_failure(self, fetcher_for):
        fetcher = fetcher_for({"12-21_NO1.json": httpx.ReadTimeout("timed out")})

        result = await fetcher.fetch_zone_date(PriceZone.NO1, TODAY)

        assert result.status == FetchStatus.FAILED
        assert "Timeout" in result.error

    @pytest.mark.asyncio
    async def test_non_array_payload_is_failure(self, fetcher_for):
        fetcher = fetcher_for({"12-21_NO1.json": json.dumps({"error": "maintenance"})})

        result = await fetcher.fetch_zone_date(PriceZone.NO1, TODAY)

        assert result.status == FetchStatus.FAILED
        assert "JSON array" in result.error


class TestFetchAllZones:

    @pytest.mark.asyncio
    async def test_one_bad_zone_does_not_stop_others(self, fetcher_for, price_store, upstream_payload):
        routes = {f"12-21_{zone.value}.json": upstream_payload([0.4] * 24) for zone in PriceZone}
        routes["12-21_NO3.json"] = "{not json"
        routes["12-21_NO4.json"] = httpx.ConnectError("connection refused")
        fetcher = fetcher_for(routes)

        results = await fetcher.fetch_all_zones(TODAY)

        assert set(results) == set(PriceZone)
        assert results[PriceZone.NO3].status == FetchStatus.FAILED
        assert results[PriceZone.NO4].status == FetchStatus.FAILED
        for zone in (PriceZone.NO1, PriceZone.NO2, PriceZone.NO5):
            assert results[zone].status == FetchStatus.STORED
            assert len(await price_store.query(zone, DAY_START_UTC, DAY_END_UTC)) == 24
        assert await price_store.query(PriceZone.NO3, DAY_START_UTC, DAY_END_UTC) == []

    @pytest.mark.asyncio
    async def test_manual_fetch_single_zone(self, fetcher_for, upstream_payload):
        fetcher = fetcher_for({"12-21_NO5.json": upstream_payload([0.9] * 24)})

        results = await fetcher.manual_fetch(PriceZone.NO5)

        assert list(results) == [PriceZone.NO5]
        assert results[PriceZone.NO5].stored == 24

    @pytest.mark.asyncio
    async def test_zone_fetches_are_bounded_by_concurrency(self, price_store, clock, upstream_payload):
        body = upstream_payload([0.4] * 24)
        in_flight = 0
        peak = 0

        async def slow_handler(request: httpx.Request) -> httpx.Response:
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0.05)
            in_flight -= 1
            return httpx.Response(200, text=body)

        fetcher = PriceFetcher(
            price_store,
            base_url=BASE_URL,
            timeout=1.0,
            concurrency=2,
            clock=clock,
            transport=httpx.MockTransport(slow_handler),
        )

        results = await fetcher.fetch_all_zones(TODAY)

        assert all(result.status == FetchStatus.STORED for result in results.values())
        assert 1 < peak <= 2

    @pytest.mark.asyncio
    async def test_storage_failure_is_a_failed_result(self, fetcher_for, price_store, upstream_payload,
                                                      monkeypatch):
        async def broken_put_batch(points):
            raise DatabaseError("Failed to save price batch: disk I/O error")

        monkeypatch.setattr(price_store, "put_batch", broken_put_batch)
        fetcher = fetcher_for({"12-21_NO1.json": upstream_payload([0.4] * 24)})

        results = await fetcher.manual_fetch(PriceZone.NO1)

        assert results[PriceZone.NO1].status == FetchStatus.FAILED
        assert results[PriceZone.NO1].parsed == 24
        assert "disk I/O error" in results[PriceZone.NO1].error

"""
Test configuration and fixtures for the power price alert tests.
Contains shared fixtures and test utilities.
"""

import asyncio
import json
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import List, Optional
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
import pytest_asyncio
import pytz
from fastapi.testclient import TestClient

from powerprice.database import AlertLog, Database, PriceStore, SubscriberDirectory
from powerprice.main import create_app
from powerprice.models.price import PricePoint, PriceZone
from powerprice.notifiers.base import NotificationResult, Notifier
from powerprice.utils.time_utils import FixedClock

OSLO = pytz.timezone("Europe/Oslo")

# 2025-12-21 12:30 in Oslo (UTC+1); the local day starts at 2025-12-20 23:00 UTC
NOW = datetime(2025, 12, 21, 11, 30, tzinfo=pytz.UTC)
TODAY = date(2025, 12, 21)
DAY_START_UTC = datetime(2025, 12, 20, 23, 0, tzinfo=pytz.UTC)


class RecordingNotifier(Notifier):
    """Notifier that keeps sent messages in memory."""

    channel = "test"

    def __init__(self, fail_for: Optional[set] = None, raise_for: Optional[set] = None, delay: float = 0):
        self.sent: List[tuple] = []
        self.fail_for = fail_for or set()
        self.raise_for = raise_for or set()
        self.delay = delay
        self.in_flight = 0
        self.peak_in_flight = 0

    async def send(self, recipient: str, subject: str, body: str) -> NotificationResult:
        self.in_flight += 1
        self.peak_in_flight = max(self.peak_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
        finally:
            self.in_flight -= 1
        if recipient in self.raise_for:
            raise ConnectionError("SMTP server unreachable")
        if recipient in self.fail_for:
            return NotificationResult(success=False, channel=self.channel, error="Mailbox full")
        self.sent.append((recipient, subject, body))
        return NotificationResult(success=True, channel=self.channel)

    def recipients(self) -> List[str]:
        return [recipient for recipient, _, _ in self.sent]


@pytest.fixture
def clock():
    """Clock pinned to 12:30 local time on 2025-12-21."""
    return FixedClock(NOW, "Europe/Oslo")


@pytest_asyncio.fixture
async def database():
    """In-memory SQLite database with the schema created."""
    db = Database(":memory:")
    await db.init_database()
    yield db
    await db.close()


@pytest.fixture
def price_store(database):
    return PriceStore(database)


@pytest.fixture
def directory(database):
    return SubscriberDirectory(database)


@pytest.fixture
def alert_log(database):
    return AlertLog(database)


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def make_points():
    """
    Factory for consecutive hourly price points.

    make_points(PriceZone.NO1, ["0.50", "0.40"]) starts at local midnight of today.
    """
    def _make(zone: PriceZone, prices: list, start: datetime = DAY_START_UTC) -> List[PricePoint]:
        return [
            PricePoint(
                zone=zone,
                timestamp=start + timedelta(hours=hour),
                price_local=Decimal(str(price)),
                price_reference=Decimal(str(price)) / Decimal("11.5"),
                exchange_rate=Decimal("11.5"),
            )
            for hour, price in enumerate(prices)
        ]
    return _make


@pytest.fixture
def upstream_payload():
    """
    Factory for a JSON body as served by the price source.

    Uses the upstream field names with local (Oslo) offsets.
    """
    def _payload(prices: list, day: date = TODAY) -> str:
        entries = []
        for hour, price in enumerate(prices):
            start = OSLO.localize(datetime.combine(day, datetime.min.time())) + timedelta(hours=hour)
            start = OSLO.normalize(start)
            entries.append({
                "NOK_per_kWh": price,
                "EUR_per_kWh": round(price / 11.5, 5),
                "EXR": 11.5,
                "time_start": start.isoformat(),
                "time_end": OSLO.normalize(start + timedelta(hours=1)).isoformat(),
            })
        return json.dumps(entries)
    return _payload


@pytest.fixture
def mock_transport():
    """
    Factory for an httpx.MockTransport serving bodies by URL suffix.

    routes maps a suffix such as "12-21_NO1.json" to a body string, an int
    status code or an exception instance. Unknown URLs answer 404.
    """
    def _transport(routes: dict) -> httpx.MockTransport:
        def handler(request: httpx.Request) -> httpx.Response:
            for suffix, answer in routes.items():
                if str(request.url).endswith(suffix):
                    if isinstance(answer, Exception):
                        raise answer
                    if isinstance(answer, int):
                        return httpx.Response(answer)
                    return httpx.Response(200, text=answer)
            return httpx.Response(404)
        return httpx.MockTransport(handler)
    return _transport


@pytest.fixture
def mock_service():
    """
    Mock PriceAlertService for API tests.

    Database calls used at startup and by /health are async mocks; tests set
    the service methods they exercise.
    """
    service = MagicMock()
    service.clock = FixedClock(NOW, "Europe/Oslo")
    service.db.init_database = AsyncMock()
    service.db.close = AsyncMock()
    service.db.health_check = AsyncMock(return_value=True)
    service.store.latest_timestamp = AsyncMock(return_value=None)
    service.store.latest_insert_time = AsyncMock(return_value=None)
    return service


@pytest.fixture
def test_app(mock_service):
    """
    Create a test instance of the FastAPI application.
    """
    return create_app(service=mock_service, run_scheduler=False)


@pytest.fixture
def test_client(test_app):
    """
    Create a test client for the FastAPI application.
    """
    with TestClient(test_app) as client:
        yield client

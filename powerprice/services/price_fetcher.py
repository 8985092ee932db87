"""
Price fetcher - downloads hourly spot prices per zone and date and stores them.
One zone failing (network, bad payload) never stops the other zones.
"""

import asyncio
import json
from datetime import date
from decimal import Decimal
from typing import Dict, List, Optional, Tuple

import httpx
import pandas as pd

from powerprice.config import settings
from powerprice.database.price_store import PriceStore
from powerprice.exceptions import DatabaseError, MalformedDataError, TransientFetchError
from powerprice.logging_config import get_logger
from powerprice.models.price import FetchResult, FetchStatus, PricePoint, PriceZone
from powerprice.utils.time_utils import Clock, truncate_to_hour

logger = get_logger(__name__)

# Upstream field names accepted in place of the canonical ones
FIELD_ALIASES = {
    "NOK_per_kWh": "price_in_local_currency",
    "EUR_per_kWh": "price_in_reference_currency",
    "EXR": "exchange_rate",
    "time_start": "interval_start",
    "time_end": "interval_end",
}


def _decimal(value, field: str) -> Decimal:
    if value is None or isinstance(value, bool):
        raise MalformedDataError(f"Missing or invalid {field}: {value!r}")
    try:
        result = Decimal(str(value))
    except ArithmeticError:
        raise MalformedDataError(f"Invalid {field}: {value!r}")
    if not result.is_finite():
        raise MalformedDataError(f"Invalid {field}: {value!r}")
    return result


def _decimal_mean(values: pd.Series) -> Optional[Decimal]:
    present = [value for value in values if value is not None and not pd.isna(value)]
    if not present:
        return None
    return sum(present, Decimal("0")) / Decimal(len(present))


class PriceFetcher:
    """Fetches, parses and stores spot prices from the external price source."""

    def __init__(
        self,
        store: PriceStore,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        concurrency: Optional[int] = None,
        clock: Optional[Clock] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.store = store
        self.base_url = (base_url or settings.price_api_base_url).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.fetch_timeout_seconds
        self.concurrency = concurrency or settings.fetch_concurrency
        self.clock = clock or Clock(settings.timezone)
        self._transport = transport

    async def fetch_zone_date(self, zone: PriceZone, target_date: date) -> FetchResult:
        """
        Fetch one zone's prices for one date and store them.

        Never raises: failures are logged and returned as a FAILED result so
        sibling zones are unaffected.
        """
        url = self._build_url(zone, target_date)
        log = logger.bind(zone=zone.value, date=target_date.isoformat())

        try:
            payload = await self._fetch_json(url)
        except TransientFetchError as e:
            if self._is_unpublished_error(e, target_date):
                log.info("Prices not published yet")
                return FetchResult(zone=zone, date=target_date, status=FetchStatus.NOT_PUBLISHED)
            log.error("Failed to fetch prices", error=str(e))
            return FetchResult(zone=zone, date=target_date, status=FetchStatus.FAILED, error=str(e))

        if payload is None or not payload.strip():
            log.info("Empty response, prices not published yet")
            return FetchResult(zone=zone, date=target_date, status=FetchStatus.NOT_PUBLISHED)

        try:
            points, parsed, skipped = self._parse_prices(payload, zone)
        except MalformedDataError as e:
            log.error("Malformed price payload", error=str(e))
            return FetchResult(zone=zone, date=target_date, status=FetchStatus.FAILED, error=str(e))

        if parsed == 0 and skipped == 0:
            log.info("No price entries, prices not published yet")
            return FetchResult(zone=zone, date=target_date, status=FetchStatus.NOT_PUBLISHED)

        try:
            stored = await self.store.put_batch(points) if points else 0
        except DatabaseError as e:
            log.error("Failed to store prices", error=str(e))
            return FetchResult(
                zone=zone, date=target_date, status=FetchStatus.FAILED, parsed=parsed, skipped=skipped, error=str(e)
            )

        log.info(
            "Fetched and stored prices",
            parsed=parsed,
            hours=len(points),
            stored=stored,
            skipped=skipped,
        )
        return FetchResult(
            zone=zone,
            date=target_date,
            status=FetchStatus.STORED,
            parsed=parsed,
            stored=stored,
            skipped=skipped,
        )

    async def fetch_all_zones(self, target_date: date) -> Dict[PriceZone, FetchResult]:
        """
        Fetch every zone for a date concurrently.

        Returns:
            One FetchResult per zone, failures included
        """
        semaphore = asyncio.Semaphore(self.concurrency)

        async def guarded(zone: PriceZone) -> FetchResult:
            async with semaphore:
                try:
                    return await self.fetch_zone_date(zone, target_date)
                except Exception as e:
                    logger.error(
                        "Unexpected error fetching zone",
                        zone=zone.value,
                        date=target_date.isoformat(),
                        error=str(e),
                    )
                    return FetchResult(
                        zone=zone, date=target_date, status=FetchStatus.FAILED, error=str(e)
                    )

        zones = list(PriceZone)
        results = await asyncio.gather(*(guarded(zone) for zone in zones))
        by_zone = dict(zip(zones, results))

        failed = [zone.value for zone, result in by_zone.items() if result.status == FetchStatus.FAILED]
        logger.info(
            "Fetched prices for all zones",
            date=target_date.isoformat(),
            stored=sum(result.stored for result in results),
            failed_zones=failed,
        )
        return by_zone

    async def manual_fetch(self, zone: Optional[PriceZone] = None) -> Dict[PriceZone, FetchResult]:
        """Fetch today's prices for one zone, or all zones when zone is None."""
        today = self.clock.today()
        logger.info("Running manual price fetch", zone=zone.value if zone else "all")
        if zone is None:
            return await self.fetch_all_zones(today)
        return {zone: await self.fetch_zone_date(zone, today)}

    def _build_url(self, zone: PriceZone, target_date: date) -> str:
        """Build source URL, e.g. .../prices/2025/12-21_NO1.json"""
        return f"{self.base_url}/{target_date:%Y}/{target_date:%m-%d}_{zone.value}.json"

    def _is_unpublished_error(self, error: TransientFetchError, target_date: date) -> bool:
        """A 404 for a future date means the source has not published it yet."""
        return error.status_code == 404 and target_date > self.clock.today()

    async def _fetch_json(self, url: str) -> Optional[str]:
        """Download the raw JSON text."""
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.get(url)
                response.raise_for_status()
                return response.text
        except httpx.HTTPStatusError as e:
            raise TransientFetchError(
                f"HTTP {e.response.status_code} from {url}",
                status_code=e.response.status_code,
            )
        except httpx.TimeoutException as e:
            raise TransientFetchError(f"Timeout fetching {url}: {e}")
        except httpx.HTTPError as e:
            raise TransientFetchError(f"HTTP error: {e}")

    def _parse_prices(self, payload: str, zone: PriceZone) -> Tuple[List[PricePoint], int, int]:
        """
        Parse the JSON array into hourly price points.

        Entries that fail to parse are skipped with a warning. Sub-hourly
        intervals (e.g. 15 minute resolution) are averaged into their hour.

        Returns:
            (points, parsed entry count, skipped entry count)

        Raises:
            MalformedDataError: If the payload is not a JSON array
        """
        try:
            data = json.loads(payload)
        except ValueError as e:
            raise MalformedDataError(f"Invalid JSON: {e}")

        if not isinstance(data, list):
            raise MalformedDataError(f"Expected a JSON array, got {type(data).__name__}")

        rows = []
        skipped = 0
        for index, entry in enumerate(data):
            try:
                rows.append(self._parse_entry(entry))
            except MalformedDataError as e:
                skipped += 1
                logger.warning("Skipping malformed price entry", zone=zone.value, index=index, error=str(e))

        if not rows:
            return [], 0, skipped

        frame = pd.DataFrame(rows)
        points = []
        for hour, group in frame.groupby("timestamp", sort=True):
            points.append(PricePoint(
                zone=zone,
                timestamp=hour.to_pydatetime(),
                price_local=_decimal_mean(group["price_local"]),
                price_reference=_decimal_mean(group["price_reference"]),
                exchange_rate=_decimal_mean(group["exchange_rate"]),
            ))

        if len(points) < len(rows):
            logger.debug("Aggregated sub-hourly prices", zone=zone.value, entries=len(rows), hours=len(points))

        return points, len(rows), skipped

    def _parse_entry(self, entry) -> dict:
        """Parse one upstream entry into plain values, raising MalformedDataError."""
        if not isinstance(entry, dict):
            raise MalformedDataError(f"Entry is not an object: {entry!r}")

        fields = {FIELD_ALIASES.get(key, key): value for key, value in entry.items()}

        raw_start = fields.get("interval_start")
        if not raw_start or not isinstance(raw_start, str):
            raise MalformedDataError(f"Missing or invalid interval_start: {raw_start!r}")
        try:
            start = pd.Timestamp(raw_start)
        except ValueError as e:
            raise MalformedDataError(f"Invalid interval_start {raw_start!r}: {e}")
        if pd.isna(start):
            raise MalformedDataError(f"Invalid interval_start: {raw_start!r}")
        if start.tzinfo is None:
            start = start.tz_localize("UTC")

        rate = fields.get("exchange_rate")
        return {
            "timestamp": pd.Timestamp(truncate_to_hour(start.to_pydatetime())),
            "price_local": _decimal(fields.get("price_in_local_currency"), "price_in_local_currency"),
            "price_reference": _decimal(fields.get("price_in_reference_currency"), "price_in_reference_currency"),
            "exchange_rate": _decimal(rate, "exchange_rate") if rate is not None else None,
        }

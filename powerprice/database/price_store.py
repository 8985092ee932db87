"""
Durable storage for hourly price points keyed by (zone, hour).
"""

from datetime import datetime
from decimal import Decimal
from typing import Iterable, List, Optional

import pytz

from powerprice.database.connection import Database, format_ts, parse_ts
from powerprice.exceptions import DatabaseError
from powerprice.logging_config import get_logger
from powerprice.models.price import PricePoint, PriceZone

logger = get_logger(__name__)

_INSERT_SQL = """
    INSERT OR IGNORE INTO price_points
    (zone, timestamp, price_local, price_reference, exchange_rate, created_at)
    VALUES (?, ?, ?, ?, ?, ?)
"""


class PriceStore:
    """
    Price point storage.

    Re-fetching an hour that is already stored is a no-op: the first stored
    value wins, so repeated ingests of the same day are deterministic.
    """

    def __init__(self, db: Database):
        self.db = db

    @staticmethod
    def _row_params(point: PricePoint) -> tuple:
        return (
            point.zone.value,
            format_ts(point.timestamp),
            str(point.price_local),
            str(point.price_reference),
            str(point.exchange_rate) if point.exchange_rate is not None else None,
            format_ts(datetime.now(pytz.UTC)),
        )

    async def put(self, point: PricePoint) -> bool:
        """Store a point. Returns True if it was new, False if already present."""
        try:
            async with self.db.transaction() as conn:
                cursor = await conn.execute(_INSERT_SQL, self._row_params(point))
                return cursor.rowcount == 1
        except Exception as e:
            logger.error("Failed to save price point", zone=point.zone.value, error=str(e))
            raise DatabaseError(f"Failed to save price point: {e}")

    async def put_batch(self, points: Iterable[PricePoint]) -> int:
        """
        Store many points; each point is written independently.

        A point that fails to write is logged and skipped, the rest are kept.

        Returns:
            Number of newly stored points
        """
        stored = 0
        failed = 0
        try:
            async with self.db.transaction() as conn:
                for point in points:
                    try:
                        cursor = await conn.execute(_INSERT_SQL, self._row_params(point))
                        stored += cursor.rowcount
                    except Exception as e:
                        failed += 1
                        logger.warning(
                            "Skipping price point that could not be stored",
                            zone=point.zone.value,
                            timestamp=point.timestamp.isoformat(),
                            error=str(e),
                        )
        except Exception as e:
            logger.error("Failed to save price batch", error=str(e))
            raise DatabaseError(f"Failed to save price batch: {e}")

        logger.debug("Saved price batch", stored=stored, failed=failed)
        return stored

    async def query(self, zone: PriceZone, start: datetime, end: datetime) -> List[PricePoint]:
        """Points of a zone with start <= timestamp <= end, ascending by timestamp."""
        try:
            rows = await self.db.fetch_all(
                """
                SELECT zone, timestamp, price_local, price_reference, exchange_rate
                FROM price_points
                WHERE zone = ? AND timestamp >= ? AND timestamp <= ?
                ORDER BY timestamp ASC
                """,
                (zone.value, format_ts(start), format_ts(end)),
            )
        except Exception as e:
            logger.error("Failed to query prices", zone=zone.value, error=str(e))
            raise DatabaseError(f"Price query failed: {e}")

        return [self._row_to_point(row) for row in rows]

    async def exists(self, zone: PriceZone, start: datetime, end: datetime) -> bool:
        """Check whether any point exists in the range."""
        try:
            row = await self.db.fetch_one(
                """
                SELECT 1 FROM price_points
                WHERE zone = ? AND timestamp >= ? AND timestamp <= ?
                LIMIT 1
                """,
                (zone.value, format_ts(start), format_ts(end)),
            )
        except Exception as e:
            logger.error("Failed to check prices", zone=zone.value, error=str(e))
            raise DatabaseError(f"Price query failed: {e}")
        return row is not None

    async def delete_older_than(self, cutoff: datetime) -> int:
        """Remove points with timestamp before cutoff."""
        try:
            async with self.db.transaction() as conn:
                cursor = await conn.execute(
                    "DELETE FROM price_points WHERE timestamp < ?",
                    (format_ts(cutoff),),
                )
                deleted_count = cursor.rowcount
        except Exception as e:
            logger.error("Failed to cleanup old price points", error=str(e))
            raise DatabaseError(f"Cleanup failed: {e}")

        if deleted_count > 0:
            logger.info("Cleaned up old price points", deleted_count=deleted_count)
        return deleted_count

    async def latest_timestamp(self, zone: Optional[PriceZone] = None) -> Optional[datetime]:
        """Most recent stored hour, overall or for one zone."""
        if zone is None:
            row = await self.db.fetch_one("SELECT MAX(timestamp) FROM price_points")
        else:
            row = await self.db.fetch_one(
                "SELECT MAX(timestamp) FROM price_points WHERE zone = ?", (zone.value,)
            )
        if row is None or row[0] is None:
            return None
        return parse_ts(row[0])

    async def latest_insert_time(self) -> Optional[datetime]:
        """When the most recently written price point was stored."""
        row = await self.db.fetch_one("SELECT MAX(created_at) FROM price_points")
        if row is None or row[0] is None:
            return None
        return parse_ts(row[0])

    @staticmethod
    def _row_to_point(row) -> PricePoint:
        return PricePoint(
            zone=PriceZone(row["zone"]),
            timestamp=parse_ts(row["timestamp"]),
            price_local=Decimal(row["price_local"]),
            price_reference=Decimal(row["price_reference"]),
            exchange_rate=Decimal(row["exchange_rate"]) if row["exchange_rate"] is not None else None,
        )

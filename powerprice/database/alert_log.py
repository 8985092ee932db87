"""
Append-only log of sent alerts, used for once-per-day de-duplication and history.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from powerprice.database.connection import Database, format_ts, parse_ts
from powerprice.exceptions import DatabaseError
from powerprice.logging_config import get_logger
from powerprice.models.alert import AlertKind, AlertRecord
from powerprice.utils.time_utils import Clock

logger = get_logger(__name__)


class AlertLog:
    """Alert history storage."""

    def __init__(self, db: Database):
        self.db = db

    async def record_once(
        self,
        subscriber_id: int,
        kind: AlertKind,
        message: str,
        triggered_at: datetime,
        alert_day: date,
        price_at_trigger: Optional[Decimal] = None,
    ) -> Optional[AlertRecord]:
        """
        Append an alert record unless one exists for (subscriber, kind, day).

        Returns:
            The new record, or None when the alert was already recorded that day
        """
        try:
            async with self.db.transaction() as conn:
                cursor = await conn.execute(
                    """
                    INSERT OR IGNORE INTO alert_records
                    (subscriber_id, kind, message, price_at_trigger, triggered_at, alert_day)
                    VALUES (?, ?, ?, ?, ?, ?)
                    """,
                    (
                        subscriber_id,
                        kind.value,
                        message,
                        str(price_at_trigger) if price_at_trigger is not None else None,
                        format_ts(triggered_at),
                        alert_day.isoformat(),
                    ),
                )
                if cursor.rowcount == 0:
                    return None
                record_id = cursor.lastrowid
        except Exception as e:
            logger.error(
                "Failed to record alert",
                subscriber_id=subscriber_id,
                kind=kind.value,
                error=str(e),
            )
            raise DatabaseError(f"Failed to record alert: {e}")

        return AlertRecord(
            id=record_id,
            subscriber_id=subscriber_id,
            kind=kind,
            message=message,
            price_at_trigger=price_at_trigger,
            triggered_at=triggered_at,
            alert_day=alert_day,
        )

    async def has_sent_since(self, subscriber_id: int, kind: AlertKind, since: datetime) -> bool:
        row = await self.db.fetch_one(
            """
            SELECT 1 FROM alert_records
            WHERE subscriber_id = ? AND kind = ? AND triggered_at >= ?
            LIMIT 1
            """,
            (subscriber_id, kind.value, format_ts(since)),
        )
        return row is not None

    async def has_sent_today(self, subscriber_id: int, kind: AlertKind, clock: Clock) -> bool:
        """Whether the alert was already sent since the clock's local midnight."""
        return await self.has_sent_since(subscriber_id, kind, clock.start_of_today())

    async def for_subscriber(self, subscriber_id: int, limit: Optional[int] = None) -> List[AlertRecord]:
        """Alerts of a subscriber, newest first."""
        query = "SELECT * FROM alert_records WHERE subscriber_id = ? ORDER BY triggered_at DESC, id DESC"
        params: tuple = (subscriber_id,)
        if limit is not None:
            query += " LIMIT ?"
            params = (subscriber_id, limit)
        rows = await self.db.fetch_all(query, params)
        return [self._row_to_record(row) for row in rows]

    async def for_subscriber_between(
        self, subscriber_id: int, start: datetime, end: datetime
    ) -> List[AlertRecord]:
        rows = await self.db.fetch_all(
            """
            SELECT * FROM alert_records
            WHERE subscriber_id = ? AND triggered_at >= ? AND triggered_at <= ?
            ORDER BY triggered_at DESC, id DESC
            """,
            (subscriber_id, format_ts(start), format_ts(end)),
        )
        return [self._row_to_record(row) for row in rows]

    async def count_by_kind(self, subscriber_id: int) -> dict:
        rows = await self.db.fetch_all(
            "SELECT kind, COUNT(*) AS total FROM alert_records WHERE subscriber_id = ? GROUP BY kind",
            (subscriber_id,),
        )
        return {AlertKind(row["kind"]): row["total"] for row in rows}

    async def delete_older_than(self, cutoff: datetime) -> int:
        """Retention sweep for alert records."""
        try:
            async with self.db.transaction() as conn:
                cursor = await conn.execute(
                    "DELETE FROM alert_records WHERE triggered_at < ?", (format_ts(cutoff),)
                )
                deleted_count = cursor.rowcount
        except Exception as e:
            logger.error("Failed to cleanup old alerts", error=str(e))
            raise DatabaseError(f"Cleanup failed: {e}")

        if deleted_count > 0:
            logger.info("Cleaned up old alert records", deleted_count=deleted_count)
        return deleted_count

    @staticmethod
    def _row_to_record(row) -> AlertRecord:
        return AlertRecord(
            id=row["id"],
            subscriber_id=row["subscriber_id"],
            kind=AlertKind(row["kind"]),
            message=row["message"],
            price_at_trigger=Decimal(row["price_at_trigger"]) if row["price_at_trigger"] is not None else None,
            triggered_at=parse_ts(row["triggered_at"]),
            alert_day=date.fromisoformat(row["alert_day"]),
        )

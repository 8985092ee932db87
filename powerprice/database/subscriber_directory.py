"""
Subscriber records: contact address, zone, alert threshold and enabled flag.
"""

import sqlite3
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

import pytz

from powerprice.database.connection import Database, format_ts, parse_ts
from powerprice.exceptions import DatabaseError, SubscriberNotFoundError, ValidationError
from powerprice.logging_config import get_logger
from powerprice.models.price import PriceZone
from powerprice.models.subscriber import Subscriber, is_valid_email

logger = get_logger(__name__)

_UNSET = object()


class SubscriberDirectory:
    """CRUD and zone/threshold queries for subscribers."""

    def __init__(self, db: Database):
        self.db = db

    async def create(
        self,
        email: str,
        zone: PriceZone,
        alert_threshold: Optional[Decimal] = None,
        alert_enabled: bool = True,
    ) -> Subscriber:
        """
        Register a new subscriber.

        Raises:
            ValidationError: If the address is malformed or already registered
        """
        address = (email or "").strip().lower()
        if not is_valid_email(address):
            raise ValidationError(f"Invalid email address: {email}")

        now = format_ts(datetime.now(pytz.UTC))
        try:
            async with self.db.transaction() as conn:
                cursor = await conn.execute(
                    """
                    INSERT INTO subscribers
                    (email, zone, alert_threshold, alert_enabled, created_at, updated_at)
                    VALUES (?, ?, ?, ?, ?, ?)
                    """,
                    (
                        address,
                        zone.value,
                        str(alert_threshold) if alert_threshold is not None else None,
                        1 if alert_enabled else 0,
                        now,
                        now,
                    ),
                )
                subscriber_id = cursor.lastrowid
        except sqlite3.IntegrityError:
            raise ValidationError(f"Email already registered: {address}")
        except Exception as e:
            logger.error("Failed to create subscriber", error=str(e))
            raise DatabaseError(f"Failed to create subscriber: {e}")

        logger.info("Subscriber registered", subscriber_id=subscriber_id, zone=zone.value)
        return await self.get_by_id(subscriber_id)

    async def get_by_id(self, subscriber_id: int) -> Optional[Subscriber]:
        row = await self.db.fetch_one("SELECT * FROM subscribers WHERE id = ?", (subscriber_id,))
        return self._row_to_subscriber(row) if row else None

    async def get_by_email(self, email: str) -> Optional[Subscriber]:
        row = await self.db.fetch_one(
            "SELECT * FROM subscribers WHERE email = ?", ((email or "").strip().lower(),)
        )
        return self._row_to_subscriber(row) if row else None

    async def exists_by_email(self, email: str) -> bool:
        return await self.get_by_email(email) is not None

    async def list_all(self) -> List[Subscriber]:
        rows = await self.db.fetch_all("SELECT * FROM subscribers ORDER BY id")
        return [self._row_to_subscriber(row) for row in rows]

    async def list_by_zone(self, zone: PriceZone) -> List[Subscriber]:
        rows = await self.db.fetch_all(
            "SELECT * FROM subscribers WHERE zone = ? ORDER BY id", (zone.value,)
        )
        return [self._row_to_subscriber(row) for row in rows]

    async def enabled_in_zone(self, zone: PriceZone) -> List[Subscriber]:
        """All subscribers in a zone with alerts enabled, regardless of threshold."""
        rows = await self.db.fetch_all(
            "SELECT * FROM subscribers WHERE zone = ? AND alert_enabled = 1 ORDER BY id",
            (zone.value,),
        )
        return [self._row_to_subscriber(row) for row in rows]

    async def for_low_price_alert(self, zone: PriceZone, current_price: Decimal) -> List[Subscriber]:
        """Enabled subscribers whose threshold is strictly above the current price."""
        # Thresholds are stored as text, so the numeric comparison happens here
        return [
            subscriber
            for subscriber in await self.enabled_in_zone(zone)
            if subscriber.alert_threshold is not None and subscriber.alert_threshold > current_price
        ]

    async def for_high_price_alert(self, zone: PriceZone, current_price: Decimal) -> List[Subscriber]:
        """Enabled subscribers whose threshold is strictly below the current price."""
        return [
            subscriber
            for subscriber in await self.enabled_in_zone(zone)
            if subscriber.alert_threshold is not None and subscriber.alert_threshold < current_price
        ]

    async def update_preferences(
        self,
        subscriber_id: int,
        zone: Optional[PriceZone] = None,
        alert_threshold=_UNSET,
        alert_enabled: Optional[bool] = None,
    ) -> Subscriber:
        """
        Update only the given fields and refresh updated_at.

        alert_threshold may be passed as None to clear it; leave it out to keep it.

        Raises:
            SubscriberNotFoundError: If the subscriber does not exist
        """
        subscriber = await self.get_by_id(subscriber_id)
        if subscriber is None:
            raise SubscriberNotFoundError(f"Subscriber not found: {subscriber_id}")

        new_zone = zone if zone is not None else subscriber.zone
        new_threshold = subscriber.alert_threshold if alert_threshold is _UNSET else alert_threshold
        new_enabled = subscriber.alert_enabled if alert_enabled is None else alert_enabled

        try:
            async with self.db.transaction() as conn:
                await conn.execute(
                    """
                    UPDATE subscribers
                    SET zone = ?, alert_threshold = ?, alert_enabled = ?, updated_at = ?
                    WHERE id = ?
                    """,
                    (
                        new_zone.value,
                        str(new_threshold) if new_threshold is not None else None,
                        1 if new_enabled else 0,
                        format_ts(datetime.now(pytz.UTC)),
                        subscriber_id,
                    ),
                )
        except Exception as e:
            logger.error("Failed to update subscriber", subscriber_id=subscriber_id, error=str(e))
            raise DatabaseError(f"Failed to update subscriber: {e}")

        logger.info("Subscriber preferences updated", subscriber_id=subscriber_id)
        return await self.get_by_id(subscriber_id)

    async def delete(self, subscriber_id: int) -> None:
        """
        Delete a subscriber. Their alert records are removed by cascade.

        Raises:
            SubscriberNotFoundError: If the subscriber does not exist
        """
        try:
            async with self.db.transaction() as conn:
                cursor = await conn.execute("DELETE FROM subscribers WHERE id = ?", (subscriber_id,))
                deleted = cursor.rowcount
        except Exception as e:
            logger.error("Failed to delete subscriber", subscriber_id=subscriber_id, error=str(e))
            raise DatabaseError(f"Failed to delete subscriber: {e}")

        if deleted == 0:
            raise SubscriberNotFoundError(f"Subscriber not found: {subscriber_id}")
        logger.info("Subscriber deleted", subscriber_id=subscriber_id)

    async def count(self) -> int:
        row = await self.db.fetch_one("SELECT COUNT(*) FROM subscribers")
        return row[0]

    async def count_active(self) -> int:
        row = await self.db.fetch_one("SELECT COUNT(*) FROM subscribers WHERE alert_enabled = 1")
        return row[0]

    async def count_by_zone(self) -> dict:
        rows = await self.db.fetch_all(
            "SELECT zone, COUNT(*) AS total FROM subscribers GROUP BY zone ORDER BY zone"
        )
        return {row["zone"]: row["total"] for row in rows}

    @staticmethod
    def _row_to_subscriber(row) -> Subscriber:
        return Subscriber(
            id=row["id"],
            email=row["email"],
            zone=PriceZone(row["zone"]),
            alert_threshold=Decimal(row["alert_threshold"]) if row["alert_threshold"] is not None else None,
            alert_enabled=bool(row["alert_enabled"]),
            created_at=parse_ts(row["created_at"]),
            updated_at=parse_ts(row["updated_at"]),
        )

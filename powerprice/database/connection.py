"""
SQLite database connection and schema management using aiosqlite.
One connection per process; writers are serialized through an asyncio lock.
"""

import asyncio
from contextlib import asynccontextmanager
from datetime import datetime
from pathlib import Path
from typing import AsyncIterator, Optional

import aiosqlite
import pytz

from powerprice.config import settings
from powerprice.exceptions import DatabaseError
from powerprice.logging_config import get_logger
from powerprice.utils.time_utils import to_utc

logger = get_logger(__name__)

CURRENT_SCHEMA_VERSION = 1

TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S.%f"


def format_ts(value: datetime) -> str:
    """Fixed-width UTC text form, so string order equals time order."""
    return to_utc(value).strftime(TIMESTAMP_FORMAT)


def parse_ts(value: str) -> datetime:
    """Inverse of format_ts, returning an aware UTC datetime."""
    return pytz.UTC.localize(datetime.strptime(value, TIMESTAMP_FORMAT))


class Database:
    """SQLite connection manager shared by the price store, directory and alert log."""

    def __init__(self, database_path: Optional[str] = None):
        """
        Args:
            database_path: Path to SQLite database file, or ":memory:" for in-memory DB.
        """
        self.database_path = database_path or settings.database_path
        self._connection: Optional[aiosqlite.Connection] = None
        self._write_lock = asyncio.Lock()
        self._connect_lock = asyncio.Lock()

    async def _connect(self) -> aiosqlite.Connection:
        """Open the connection on first use."""
        async with self._connect_lock:
            if self._connection is None:
                if self.database_path != ":memory:":
                    Path(self.database_path).parent.mkdir(parents=True, exist_ok=True)
                connection = await aiosqlite.connect(self.database_path)
                connection.row_factory = aiosqlite.Row
                await connection.execute("PRAGMA foreign_keys = ON")
                self._connection = connection
        return self._connection

    @property
    def connection(self) -> aiosqlite.Connection:
        """Get the open connection."""
        if self._connection is None:
            raise DatabaseError("Database connection is not open")
        return self._connection

    async def close(self) -> None:
        """Close the database connection."""
        if self._connection is not None:
            await self._connection.close()
            self._connection = None

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[aiosqlite.Connection]:
        """
        Serialized write block. Commits on success, rolls back on error.
        """
        conn = await self._connect()
        async with self._write_lock:
            try:
                yield conn
                await conn.commit()
            except Exception:
                await conn.rollback()
                raise

    async def fetch_all(self, query: str, params: tuple = ()) -> list:
        conn = await self._connect()
        async with conn.execute(query, params) as cursor:
            return list(await cursor.fetchall())

    async def fetch_one(self, query: str, params: tuple = ()) -> Optional[aiosqlite.Row]:
        conn = await self._connect()
        async with conn.execute(query, params) as cursor:
            return await cursor.fetchone()

    async def init_database(self) -> None:
        """Initialize database with tables and indexes."""
        try:
            async with self.transaction() as conn:
                current_version = await self._get_schema_version(conn)

                if current_version == 0:
                    await self._create_initial_schema(conn)
                    await self._set_schema_version(conn, CURRENT_SCHEMA_VERSION)
                    logger.info("Database initialized with schema version", version=CURRENT_SCHEMA_VERSION)
                else:
                    logger.debug("Database schema up to date", version=current_version)

        except Exception as e:
            logger.error("Failed to initialize database", error=str(e))
            raise DatabaseError(f"Database initialization failed: {e}")

    async def _get_schema_version(self, conn: aiosqlite.Connection) -> int:
        """Get current database schema version."""
        async with conn.execute(
            "SELECT name FROM sqlite_master WHERE type = 'table' AND name = 'schema_version'"
        ) as cursor:
            if await cursor.fetchone() is None:
                # Table doesn't exist, this is a new database
                return 0
        async with conn.execute(
            "SELECT version FROM schema_version ORDER BY version DESC LIMIT 1"
        ) as cursor:
            row = await cursor.fetchone()
        return row[0] if row else 0

    async def _set_schema_version(self, conn: aiosqlite.Connection, version: int) -> None:
        """Set database schema version."""
        await conn.execute(
            "INSERT INTO schema_version (version, applied_at) VALUES (?, ?)",
            (version, format_ts(datetime.now(pytz.UTC))),
        )

    async def _create_initial_schema(self, conn: aiosqlite.Connection) -> None:
        """Create initial database schema."""
        await conn.execute("""
            CREATE TABLE IF NOT EXISTS schema_version (
                version INTEGER PRIMARY KEY,
                applied_at TEXT NOT NULL
            )
        """)

        # Hourly prices, one row per zone and hour
        await conn.execute("""
            CREATE TABLE IF NOT EXISTS price_points (
                zone TEXT NOT NULL,
                timestamp TEXT NOT NULL,
                price_local TEXT NOT NULL,
                price_reference TEXT NOT NULL,
                exchange_rate TEXT,
                created_at TEXT NOT NULL,
                PRIMARY KEY (zone, timestamp)
            )
        """)

        await conn.execute("""
            CREATE TABLE IF NOT EXISTS subscribers (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                email TEXT NOT NULL UNIQUE,
                zone TEXT NOT NULL,
                alert_threshold TEXT,
                alert_enabled INTEGER NOT NULL DEFAULT 1,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
        """)

        # One alert per subscriber, kind and local day
        await conn.execute("""
            CREATE TABLE IF NOT EXISTS alert_records (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                subscriber_id INTEGER NOT NULL,
                kind TEXT NOT NULL,
                message TEXT NOT NULL,
                price_at_trigger TEXT,
                triggered_at TEXT NOT NULL,
                alert_day TEXT NOT NULL,
                FOREIGN KEY (subscriber_id) REFERENCES subscribers(id) ON DELETE CASCADE,
                UNIQUE (subscriber_id, kind, alert_day)
            )
        """)

        # Indexes for performance
        await conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_price_points_timestamp ON price_points(timestamp)"
        )
        await conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_subscribers_zone ON subscribers(zone, alert_enabled)"
        )
        await conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_alert_records_triggered ON alert_records(subscriber_id, triggered_at)"
        )

        logger.info("Initial database schema created")

    async def health_check(self) -> bool:
        """Check database health."""
        try:
            row = await self.fetch_one(
                "SELECT COUNT(*) FROM sqlite_master WHERE type = 'table' AND name = 'price_points'"
            )
            if row is None or row[0] != 1:
                logger.error("Price points table not found")
                return False
            return True

        except Exception as e:
            logger.error("Database health check failed", error=str(e))
            return False

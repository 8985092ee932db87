"""
Health check module for Docker health checks and monitoring.
Verifies database connectivity and that price data is not stale.
"""

import asyncio
import sys
from datetime import datetime, timedelta
from typing import Optional

import pytz

from powerprice.database.connection import Database
from powerprice.database.price_store import PriceStore
from powerprice.logging_config import get_logger, setup_logging

logger = get_logger(__name__)

# Tomorrow's prices are stored once a day, so nothing written for longer
# than this means ingestion has stopped
MAX_DATA_AGE = timedelta(hours=25)


def data_age(last_insert: Optional[datetime], now: Optional[datetime] = None) -> Optional[timedelta]:
    """Time since prices were last written, None when nothing is stored."""
    if last_insert is None:
        return None
    return (now or datetime.now(pytz.UTC)) - last_insert


async def health_check(db: Optional[Database] = None) -> bool:
    """
    Perform health check of the service.
    """
    db = db or Database()
    try:
        if not await db.health_check():
            return False

        last_insert = await PriceStore(db).latest_insert_time()
        if last_insert is None:
            logger.warning("No price data stored yet")
            return True

        age = data_age(last_insert)
        if age > MAX_DATA_AGE:
            logger.error(
                "Price data is stale",
                last_insert=last_insert.isoformat(),
                age_hours=round(age.total_seconds() / 3600, 1),
            )
            return False
        return True

    except Exception as e:
        logger.error("Health check failed", error=str(e))
        return False
    finally:
        await db.close()


async def main():
    """
    Main health check entry point for command line usage.
    """
    setup_logging()
    is_healthy = await health_check()

    if is_healthy:
        logger.info("Health check passed")
        sys.exit(0)
    else:
        logger.error("Health check failed")
        sys.exit(1)


if __name__ == "__main__":
    asyncio.run(main())

#!/usr/bin/env python3
"""
Development helper scripts for the power price alert service.
Provides utilities for database management and manual operations.
"""

import asyncio
import sys
from pathlib import Path

# Add project root to Python path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from powerprice.config import settings
from powerprice.logging_config import setup_logging
from powerprice.models.price import PriceZone
from powerprice.services.price_alert_service import PriceAlertService


async def _open_service() -> PriceAlertService:
    setup_logging()
    service = PriceAlertService.create()
    await service.db.init_database()
    return service


async def init_db():
    """Initialize the database with required tables."""
    print("Initializing database...")
    service = await _open_service()
    await service.db.close()
    print(f"Database initialized at: {settings.database_path}")


async def fetch_prices_manual(zone: str = None):
    """Manually fetch and store today's prices."""
    print("Starting manual price fetch...")
    service = await _open_service()
    try:
        results = await service.trigger_manual_fetch(PriceZone.parse(zone) if zone else None)
        for price_zone, result in results.items():
            line = f"  {price_zone.value}: {result.status.value:<14} parsed={result.parsed} stored={result.stored}"
            if result.error:
                line += f" error={result.error}"
            print(line)
    finally:
        await service.db.close()
    print("Manual price fetch completed")


async def show_prices(zone: str = "NO1"):
    """Display today's and tomorrow's prices for a zone."""
    service = await _open_service()
    try:
        price_zone = PriceZone.parse(zone)
        tz = service.clock.tz
        for label, points in (
            ("Today", await service.get_todays_prices(price_zone)),
            ("Tomorrow", await service.get_tomorrows_prices(price_zone)),
        ):
            print(f"\n{label} in {price_zone.value} ({price_zone.description}):")
            if not points:
                print("  No price data found")
                continue
            print("-" * 40)
            print(f"{'Hour':<20} {'Price':>12}")
            print("-" * 40)
            for point in points:
                print(f"{point.timestamp.astimezone(tz).strftime('%Y-%m-%d %H:%M'):<20} "
                      f"{point.price_local:>8.2f} {settings.currency_unit}")

        stats = await service.get_statistics(price_zone)
        if stats.has_data:
            print(f"\nAverage {stats.average} / min {stats.minimum} / max {stats.maximum} {settings.currency_unit}")
    finally:
        await service.db.close()


async def run_alerts(pass_name: str = "all"):
    """Run alert passes now."""
    service = await _open_service()
    passes = {
        "low-price": service.run_low_price_pass,
        "high-price": service.run_high_price_pass,
        "cheapest-hours": service.run_cheapest_hours_pass,
        "daily-summary": service.run_daily_summary_pass,
    }
    try:
        selected = passes if pass_name == "all" else {pass_name: passes[pass_name]}
        for name, run in selected.items():
            report = await run()
            print(f"  {name:<15} candidates={report.candidates} sent={report.sent} "
                  f"already_sent={report.already_sent} failures={report.delivery_failures} "
                  f"subscriber_errors={report.subscriber_errors} zone_errors={report.zone_errors}")
    except KeyError:
        print(f"Unknown alert pass: {pass_name}. Valid values: all, {', '.join(passes)}")
    finally:
        await service.db.close()


async def cleanup_old_data():
    """Clean up old prices and alerts based on retention settings."""
    print(f"Cleaning up prices older than {settings.price_retention_days} days "
          f"and alerts older than {settings.alert_retention_days} days...")
    service = await _open_service()
    try:
        deleted = await service.cleanup()
    finally:
        await service.db.close()
    print(f"Deleted {deleted['deleted_prices']} price points and {deleted['deleted_alerts']} alert records")


def show_config():
    """Display current configuration settings."""
    print("Current Configuration:")
    print("-" * 40)
    print(f"API Host: {settings.api_host}")
    print(f"API Port: {settings.api_port}")
    print(f"Debug Mode: {settings.api_debug}")
    print(f"Database Path: {settings.database_path}")
    print(f"Price Source: {settings.price_api_base_url}")
    print(f"Timezone: {settings.timezone}")
    print(f"Hourly Fetch: every hour at :{settings.hourly_fetch_minute:02d}")
    print(f"Tomorrow Fetch: {settings.tomorrow_fetch_hour}:{settings.tomorrow_fetch_minute:02d}")
    print(f"Cheapest Hours Alert: {settings.cheapest_hours_hour}:{settings.cheapest_hours_minute:02d}")
    print(f"Daily Summary: {settings.daily_summary_hour}:{settings.daily_summary_minute:02d}")
    print(f"Price Retention: {settings.price_retention_days} days")
    print(f"Alert Retention: {settings.alert_retention_days} days")
    print(f"Email Enabled: {settings.email_enabled}")
    print(f"Log Level: {settings.log_level}")


def main():
    """Main script entry point with command selection."""
    if len(sys.argv) < 2:
        print("Power Price Alerts Development Scripts")
        print("Usage: python scripts/dev.py <command> [argument]")
        print("\nAvailable commands:")
        print("  init-db               - Initialize database")
        print("  fetch-prices [ZONE]   - Fetch today's prices (all zones by default)")
        print("  show-prices [ZONE]    - Display today's and tomorrow's prices (NO1 by default)")
        print("  run-alerts [PASS]     - Run alert passes (all by default)")
        print("  cleanup-data          - Clean up old prices and alerts")
        print("  show-config           - Display current configuration")
        return

    command = sys.argv[1]
    argument = sys.argv[2] if len(sys.argv) > 2 else None

    if command == "init-db":
        asyncio.run(init_db())
    elif command == "fetch-prices":
        asyncio.run(fetch_prices_manual(argument))
    elif command == "show-prices":
        asyncio.run(show_prices(argument or "NO1"))
    elif command == "run-alerts":
        asyncio.run(run_alerts(argument or "all"))
    elif command == "cleanup-data":
        asyncio.run(cleanup_old_data())
    elif command == "show-config":
        show_config()
    else:
        print(f"Unknown command: {command}")
        print("Run without arguments to see available commands")


if __name__ == "__main__":
    main()

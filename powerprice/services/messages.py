"""
Subject and body text for alert emails.
"""

from decimal import Decimal
from typing import List, Tuple

import pytz

from powerprice.config import settings
from powerprice.models.price import PricePoint, PriceStatistics, PriceZone
from powerprice.models.subscriber import Subscriber

SIGNATURE = "Regards,\nPower Price Alerts"


def format_price(price: Decimal, unit: str = None) -> str:
    return f"{price:.2f} {unit or settings.currency_unit}"


def format_hour(point: PricePoint, tz: pytz.BaseTzInfo) -> str:
    """Local HH:MM of a price point's hour."""
    return point.timestamp.astimezone(tz).strftime("%H:%M")


def _ranked_hours(points: List[PricePoint], tz: pytz.BaseTzInfo) -> str:
    return "\n".join(
        f"{rank}. {format_hour(point, tz)} - {format_price(point.price_local)}"
        for rank, point in enumerate(points, start=1)
    )


def render_low_price(subscriber: Subscriber, point: PricePoint) -> Tuple[str, str]:
    subject = f"Low power price now! {format_price(point.price_local)}"
    body = (
        f"Good news! The power price in {point.zone.value} is low right now.\n\n"
        f"Price: {format_price(point.price_local)}\n"
        f"Your threshold: {format_price(subscriber.alert_threshold)}\n\n"
        "A good time for energy-intensive tasks like laundry, dishwashing or charging your car.\n\n"
        f"{SIGNATURE}"
    )
    return subject, body


def render_high_price(subscriber: Subscriber, point: PricePoint) -> Tuple[str, str]:
    subject = f"High power price now! {format_price(point.price_local)}"
    body = (
        f"Heads up! The power price in {point.zone.value} is high right now.\n\n"
        f"Price: {format_price(point.price_local)}\n"
        f"Your threshold: {format_price(subscriber.alert_threshold)}\n\n"
        "Consider postponing energy-intensive tasks until the price drops.\n\n"
        f"{SIGNATURE}"
    )
    return subject, body


def render_cheapest_hours(
    zone: PriceZone, points: List[PricePoint], tz: pytz.BaseTzInfo
) -> Tuple[str, str]:
    subject = "The cheapest hours today"
    body = (
        f"Here are the {len(points)} cheapest hours today for {zone.value}:\n\n"
        f"{_ranked_hours(points, tz)}\n\n"
        "Plan your energy use around these hours to save money.\n\n"
        f"{SIGNATURE}"
    )
    return subject, body


def render_daily_summary(
    stats: PriceStatistics, cheapest: List[PricePoint], tz: pytz.BaseTzInfo
) -> Tuple[str, str]:
    subject = f"Daily power price summary for {stats.zone.value}"
    lines = [
        f"Power prices in {stats.zone.value} on {stats.date.isoformat()}:",
        "",
        f"Average price: {format_price(stats.average)}",
        f"Lowest price: {format_price(stats.minimum)}",
        f"Highest price: {format_price(stats.maximum)}",
    ]
    if cheapest:
        lines += ["", f"The {len(cheapest)} cheapest hours were:", _ranked_hours(cheapest, tz)]
    lines += ["", SIGNATURE]
    return subject, "\n".join(lines)


def render_welcome(subscriber: Subscriber) -> Tuple[str, str]:
    subject = "Welcome to Power Price Alerts!"
    threshold = (
        format_price(subscriber.alert_threshold)
        if subscriber.alert_threshold is not None
        else "not set"
    )
    body = (
        "Thank you for subscribing to power price alerts.\n\n"
        f"Zone: {subscriber.zone.value} ({subscriber.zone.description})\n"
        f"Alert threshold: {threshold}\n\n"
        "You will be notified when:\n"
        "- the power price is low (below your threshold)\n"
        "- the power price is high (above your threshold)\n"
        "- the cheapest hours of the day are known\n"
        "- the daily summary is ready\n\n"
        f"{SIGNATURE}"
    )
    return subject, body

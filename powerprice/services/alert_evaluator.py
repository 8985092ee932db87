"""
Alert evaluation passes.

Each pass walks every zone, picks the subscribers an alert applies to and sends
it at most once per subscriber, kind and local day. The alert record is written
before the notifier is called; a failed send keeps the record and is not
retried.
"""

import asyncio
from decimal import Decimal
from typing import Awaitable, Callable, List, Optional, Tuple

from powerprice.config import settings
from powerprice.database.alert_log import AlertLog
from powerprice.database.subscriber_directory import SubscriberDirectory
from powerprice.exceptions import DeliveryError
from powerprice.logging_config import get_logger
from powerprice.models.alert import AlertKind, PassReport
from powerprice.models.price import PriceZone
from powerprice.models.subscriber import Subscriber
from powerprice.notifiers.base import Notifier
from powerprice.services import messages
from powerprice.services.price_analytics import PriceAnalytics
from powerprice.utils.time_utils import Clock

logger = get_logger(__name__)

Renderer = Callable[[Subscriber], Tuple[str, str]]

_SENT = "sent"
_ALREADY_SENT = "already_sent"
_FAILED = "failed"
_ERROR = "error"


class AlertEvaluator:
    """Runs the low price, high price, cheapest hours and daily summary passes."""

    def __init__(
        self,
        analytics: PriceAnalytics,
        directory: SubscriberDirectory,
        alert_log: AlertLog,
        notifier: Notifier,
        clock: Clock,
        notify_concurrency: Optional[int] = None,
        notify_timeout: Optional[float] = None,
        cheapest_count: Optional[int] = None,
    ):
        self.analytics = analytics
        self.directory = directory
        self.alert_log = alert_log
        self.notifier = notifier
        self.clock = clock
        self.notify_concurrency = notify_concurrency or settings.notify_concurrency
        self.notify_timeout = notify_timeout if notify_timeout is not None else settings.notify_timeout_seconds
        self.cheapest_count = cheapest_count or settings.cheapest_hours_count

    async def run_low_price_pass(self) -> PassReport:
        """Alert subscribers whose threshold is above the current price."""
        return await self._run_pass(AlertKind.PRICE_LOW, self._evaluate_low_price)

    async def run_high_price_pass(self) -> PassReport:
        """Alert subscribers whose threshold is below the current price."""
        return await self._run_pass(AlertKind.PRICE_HIGH, self._evaluate_high_price)

    async def run_cheapest_hours_pass(self) -> PassReport:
        """Send today's cheapest hours to every enabled subscriber."""
        return await self._run_pass(AlertKind.CHEAPEST_HOURS, self._evaluate_cheapest_hours)

    async def run_daily_summary_pass(self) -> PassReport:
        """Send today's average, minimum and maximum to every enabled subscriber."""
        return await self._run_pass(AlertKind.DAILY_SUMMARY, self._evaluate_daily_summary)

    async def run_price_passes(self) -> List[PassReport]:
        """Low price pass followed by the high price pass."""
        return [await self.run_low_price_pass(), await self.run_high_price_pass()]

    async def _run_pass(
        self, kind: AlertKind, evaluate_zone: Callable[[PriceZone, PassReport], Awaitable[None]]
    ) -> PassReport:
        report = PassReport(kind=kind)

        for zone in PriceZone:
            zone_report = PassReport(kind=kind)
            try:
                await evaluate_zone(zone, zone_report)
            except Exception as e:
                logger.error("Alert evaluation failed for zone", kind=kind.value, zone=zone.value, error=str(e))
                report.zone_errors += 1
                continue
            zone_report.zones_evaluated = 1
            report.merge(zone_report)

        logger.info(
            "Alert pass completed",
            kind=kind.value,
            zones_evaluated=report.zones_evaluated,
            candidates=report.candidates,
            sent=report.sent,
            already_sent=report.already_sent,
            delivery_failures=report.delivery_failures,
            subscriber_errors=report.subscriber_errors,
            zone_errors=report.zone_errors,
        )
        return report

    async def _evaluate_low_price(self, zone: PriceZone, report: PassReport) -> None:
        point = await self.analytics.current_price(zone)
        if point is None:
            logger.debug("No current price, skipping zone", zone=zone.value, kind=AlertKind.PRICE_LOW.value)
            return

        subscribers = await self.directory.for_low_price_alert(zone, point.price_local)
        await self._dispatch(
            AlertKind.PRICE_LOW,
            subscribers,
            lambda subscriber: messages.render_low_price(subscriber, point),
            point.price_local,
            report,
        )

    async def _evaluate_high_price(self, zone: PriceZone, report: PassReport) -> None:
        point = await self.analytics.current_price(zone)
        if point is None:
            logger.debug("No current price, skipping zone", zone=zone.value, kind=AlertKind.PRICE_HIGH.value)
            return

        subscribers = await self.directory.for_high_price_alert(zone, point.price_local)
        await self._dispatch(
            AlertKind.PRICE_HIGH,
            subscribers,
            lambda subscriber: messages.render_high_price(subscriber, point),
            point.price_local,
            report,
        )

    async def _evaluate_cheapest_hours(self, zone: PriceZone, report: PassReport) -> None:
        cheapest = await self.analytics.cheapest_n(zone, self.cheapest_count)
        if not cheapest:
            logger.debug("No prices today, skipping cheapest hours", zone=zone.value)
            return

        subject, body = messages.render_cheapest_hours(zone, cheapest, self.clock.tz)
        subscribers = await self.directory.enabled_in_zone(zone)
        await self._dispatch(
            AlertKind.CHEAPEST_HOURS,
            subscribers,
            lambda subscriber: (subject, body),
            cheapest[0].price_local,
            report,
        )

    async def _evaluate_daily_summary(self, zone: PriceZone, report: PassReport) -> None:
        stats = await self.analytics.statistics(zone)
        if not stats.has_data:
            logger.debug("No prices today, skipping daily summary", zone=zone.value)
            return

        cheapest = await self.analytics.cheapest_n(zone, self.cheapest_count)
        subject, body = messages.render_daily_summary(stats, cheapest, self.clock.tz)
        subscribers = await self.directory.enabled_in_zone(zone)
        await self._dispatch(
            AlertKind.DAILY_SUMMARY,
            subscribers,
            lambda subscriber: (subject, body),
            stats.average,
            report,
        )

    async def _dispatch(
        self,
        kind: AlertKind,
        subscribers: List[Subscriber],
        render: Renderer,
        price: Optional[Decimal],
        report: PassReport,
    ) -> None:
        """Deliver to subscribers concurrently and tally outcomes into report."""
        report.candidates += len(subscribers)
        if not subscribers:
            return

        semaphore = asyncio.Semaphore(self.notify_concurrency)

        async def bounded(subscriber: Subscriber) -> str:
            async with semaphore:
                return await self._deliver_once(kind, subscriber, render, price)

        outcomes = await asyncio.gather(*(bounded(subscriber) for subscriber in subscribers))

        report.sent += outcomes.count(_SENT)
        report.already_sent += outcomes.count(_ALREADY_SENT)
        report.delivery_failures += outcomes.count(_FAILED)
        report.subscriber_errors += outcomes.count(_ERROR)

    async def _deliver_once(
        self,
        kind: AlertKind,
        subscriber: Subscriber,
        render: Renderer,
        price: Optional[Decimal],
    ) -> str:
        try:
            if await self.alert_log.has_sent_today(subscriber.id, kind, self.clock):
                return _ALREADY_SENT

            subject, body = render(subscriber)
            record = await self.alert_log.record_once(
                subscriber_id=subscriber.id,
                kind=kind,
                message=body,
                triggered_at=self.clock.now(),
                alert_day=self.clock.today(),
                price_at_trigger=price,
            )
        except Exception as e:
            logger.error(
                "Failed to record alert",
                subscriber_id=subscriber.id,
                kind=kind.value,
                error=str(e),
            )
            return _ERROR

        if record is None:
            # Another run recorded it between the check and the insert
            return _ALREADY_SENT

        try:
            await self.deliver(subscriber, subject, body)
        except DeliveryError as e:
            logger.warning(
                "Alert recorded but not delivered",
                subscriber_id=subscriber.id,
                kind=kind.value,
                error=str(e),
            )
            return _FAILED

        logger.info("Alert sent", subscriber_id=subscriber.id, kind=kind.value, zone=subscriber.zone.value)
        return _SENT

    async def deliver(self, subscriber: Subscriber, subject: str, body: str) -> None:
        """
        Call the notifier with a deadline.

        Raises:
            DeliveryError: If the notifier fails, raises or times out
        """
        try:
            result = await asyncio.wait_for(
                self.notifier.send(subscriber.email, subject, body),
                timeout=self.notify_timeout,
            )
        except asyncio.TimeoutError:
            raise DeliveryError(f"Notification timed out after {self.notify_timeout}s")
        except Exception as e:
            raise DeliveryError(f"Notifier error: {e}")

        if not result.success:
            raise DeliveryError(result.error or "Notification failed")

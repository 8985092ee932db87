"""
Price alert service - the single entry point used by the API, scheduler and scripts.
Wires storage, fetching, analytics and alert evaluation together.
"""

from datetime import date, timedelta
from decimal import Decimal
from typing import Dict, List, Optional

from powerprice.config import Settings, settings
from powerprice.database.alert_log import AlertLog
from powerprice.database.connection import Database
from powerprice.database.price_store import PriceStore
from powerprice.database.subscriber_directory import SubscriberDirectory
from powerprice.exceptions import DeliveryError, SubscriberNotFoundError, ValidationError
from powerprice.logging_config import get_logger
from powerprice.models.alert import AlertRecord, PassReport
from powerprice.models.price import FetchResult, PriceDataStatus, PricePoint, PriceStatistics, PriceZone
from powerprice.models.subscriber import Subscriber, SubscriberStatistics
from powerprice.notifiers.base import Notifier
from powerprice.notifiers.email import EmailNotifier
from powerprice.services import messages
from powerprice.services.alert_evaluator import AlertEvaluator
from powerprice.services.price_analytics import PriceAnalytics
from powerprice.services.price_fetcher import PriceFetcher
from powerprice.utils.time_utils import Clock

logger = get_logger(__name__)

_UNSET = object()


class PriceAlertService:
    """
    Facade over prices, subscribers and alerts.

    Absence is returned as None or an empty list; invalid input raises
    ValidationError and unknown subscribers raise SubscriberNotFoundError.
    """

    def __init__(
        self,
        db: Database,
        fetcher: PriceFetcher,
        analytics: PriceAnalytics,
        directory: SubscriberDirectory,
        alert_log: AlertLog,
        evaluator: AlertEvaluator,
        notifier: Notifier,
        clock: Clock,
        config: Settings = settings,
    ):
        self.db = db
        self.fetcher = fetcher
        self.analytics = analytics
        self.directory = directory
        self.alert_log = alert_log
        self.evaluator = evaluator
        self.notifier = notifier
        self.clock = clock
        self.config = config

    @classmethod
    def create(
        cls,
        config: Settings = None,
        db: Optional[Database] = None,
        clock: Optional[Clock] = None,
        notifier: Optional[Notifier] = None,
        transport=None,
    ) -> "PriceAlertService":
        """
        Build the service and its collaborators from settings.

        Tests pass an in-memory database, a fixed clock, a recording notifier
        and an httpx mock transport.
        """
        config = config or settings
        db = db or Database(config.database_path)
        clock = clock or Clock(config.timezone)
        notifier = notifier or EmailNotifier.from_settings(config)

        store = PriceStore(db)
        directory = SubscriberDirectory(db)
        alert_log = AlertLog(db)
        fetcher = PriceFetcher(
            store,
            base_url=config.price_api_base_url,
            timeout=config.fetch_timeout_seconds,
            concurrency=config.fetch_concurrency,
            clock=clock,
            transport=transport,
        )
        analytics = PriceAnalytics(store, clock)
        evaluator = AlertEvaluator(
            analytics,
            directory,
            alert_log,
            notifier,
            clock,
            notify_concurrency=config.notify_concurrency,
            notify_timeout=config.notify_timeout_seconds,
            cheapest_count=config.cheapest_hours_count,
        )
        return cls(db, fetcher, analytics, directory, alert_log, evaluator, notifier, clock, config)

    @property
    def store(self) -> PriceStore:
        return self.fetcher.store

    # Prices

    async def get_current_price(self, zone: PriceZone) -> Optional[PricePoint]:
        return await self.analytics.current_price(zone)

    async def get_todays_prices(self, zone: PriceZone) -> List[PricePoint]:
        return await self.analytics.todays_series(zone)

    async def get_tomorrows_prices(self, zone: PriceZone) -> List[PricePoint]:
        return await self.analytics.tomorrows_series(zone)

    async def get_prices_for_date(self, zone: PriceZone, day: date) -> List[PricePoint]:
        return await self.analytics.series_for_date(zone, day)

    async def get_cheapest_hours(self, zone: PriceZone, limit: int = None) -> List[PricePoint]:
        return await self.analytics.cheapest_n(zone, limit or self.config.cheapest_hours_count)

    async def get_statistics(self, zone: PriceZone) -> PriceStatistics:
        return await self.analytics.statistics(zone)

    async def get_price_data_status(self, zone: PriceZone) -> PriceDataStatus:
        return PriceDataStatus(
            zone=zone,
            has_today=await self.analytics.has_data_for_today(zone),
            has_tomorrow=await self.analytics.has_data_for_tomorrow(zone),
        )

    async def trigger_manual_fetch(self, zone: Optional[PriceZone] = None) -> Dict[PriceZone, FetchResult]:
        return await self.fetcher.manual_fetch(zone)

    async def fetch_today(self) -> Dict[PriceZone, FetchResult]:
        return await self.fetcher.fetch_all_zones(self.clock.today())

    async def fetch_tomorrow(self) -> Dict[PriceZone, FetchResult]:
        return await self.fetcher.fetch_all_zones(self.clock.tomorrow())

    # Subscribers

    async def register_subscriber(
        self,
        email: str,
        zone: str,
        alert_threshold: Optional[Decimal] = None,
        alert_enabled: bool = True,
    ) -> Subscriber:
        """
        Register a subscriber and send a welcome email.

        A failed welcome email is logged; the registration still succeeds.

        Raises:
            ValidationError: Invalid or duplicate email, unknown zone
        """
        price_zone = PriceZone.parse(zone) if not isinstance(zone, PriceZone) else zone
        if await self.directory.exists_by_email(email):
            raise ValidationError(f"Email already registered: {email}")

        subscriber = await self.directory.create(email, price_zone, alert_threshold, alert_enabled)

        subject, body = messages.render_welcome(subscriber)
        try:
            await self.evaluator.deliver(subscriber, subject, body)
        except DeliveryError as e:
            logger.warning("Welcome email not delivered", subscriber_id=subscriber.id, error=str(e))

        return subscriber

    async def get_subscriber(self, subscriber_id: int) -> Optional[Subscriber]:
        return await self.directory.get_by_id(subscriber_id)

    async def get_subscriber_by_email(self, email: str) -> Optional[Subscriber]:
        return await self.directory.get_by_email(email)

    async def list_subscribers(self, zone: Optional[PriceZone] = None) -> List[Subscriber]:
        if zone is None:
            return await self.directory.list_all()
        return await self.directory.list_by_zone(zone)

    async def update_subscriber_preferences(
        self,
        subscriber_id: int,
        zone: Optional[str] = None,
        alert_threshold=_UNSET,
        alert_enabled: Optional[bool] = None,
    ) -> Subscriber:
        """
        Change zone, threshold or enabled flag; omitted values are kept.

        Raises:
            ValidationError: Unknown zone
            SubscriberNotFoundError: Unknown subscriber id
        """
        kwargs = {"alert_enabled": alert_enabled}
        if zone is not None:
            kwargs["zone"] = PriceZone.parse(zone) if not isinstance(zone, PriceZone) else zone
        if alert_threshold is not _UNSET:
            kwargs["alert_threshold"] = alert_threshold
        return await self.directory.update_preferences(subscriber_id, **kwargs)

    async def enable_alerts(self, subscriber_id: int) -> Subscriber:
        return await self.directory.update_preferences(subscriber_id, alert_enabled=True)

    async def disable_alerts(self, subscriber_id: int) -> Subscriber:
        return await self.directory.update_preferences(subscriber_id, alert_enabled=False)

    async def delete_subscriber(self, subscriber_id: int) -> None:
        await self.directory.delete(subscriber_id)

    async def subscriber_statistics(self) -> SubscriberStatistics:
        total = await self.directory.count()
        active = await self.directory.count_active()
        return SubscriberStatistics(
            total=total,
            active=active,
            inactive=total - active,
            by_zone=await self.directory.count_by_zone(),
        )

    # Alerts

    async def get_alerts_for_subscriber(self, subscriber_id: int, limit: Optional[int] = None) -> List[AlertRecord]:
        await self._require_subscriber(subscriber_id)
        return await self.alert_log.for_subscriber(subscriber_id, limit)

    async def get_todays_alerts_for_subscriber(self, subscriber_id: int) -> List[AlertRecord]:
        await self._require_subscriber(subscriber_id)
        start, end = self.clock.day_bounds()
        return await self.alert_log.for_subscriber_between(subscriber_id, start, end)

    async def run_low_price_pass(self) -> PassReport:
        return await self.evaluator.run_low_price_pass()

    async def run_high_price_pass(self) -> PassReport:
        return await self.evaluator.run_high_price_pass()

    async def run_cheapest_hours_pass(self) -> PassReport:
        return await self.evaluator.run_cheapest_hours_pass()

    async def run_daily_summary_pass(self) -> PassReport:
        return await self.evaluator.run_daily_summary_pass()

    async def run_price_passes(self) -> List[PassReport]:
        return await self.evaluator.run_price_passes()

    async def cleanup(self) -> Dict[str, int]:
        """Retention sweep: old price points and old alert records."""
        now = self.clock.now()
        deleted_prices = await self.store.delete_older_than(
            now - timedelta(days=self.config.price_retention_days)
        )
        deleted_alerts = await self.alert_log.delete_older_than(
            now - timedelta(days=self.config.alert_retention_days)
        )
        logger.info("Retention sweep completed", deleted_prices=deleted_prices, deleted_alerts=deleted_alerts)
        return {"deleted_prices": deleted_prices, "deleted_alerts": deleted_alerts}

    async def _require_subscriber(self, subscriber_id: int) -> Subscriber:
        subscriber = await self.directory.get_by_id(subscriber_id)
        if subscriber is None:
            raise SubscriberNotFoundError(f"Subscriber not found: {subscriber_id}")
        return subscriber

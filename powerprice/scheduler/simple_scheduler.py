"""
Simple asyncio scheduler for price fetching, alert passes and retention.
Each job runs in its own task and sleeps until its next firing.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from typing import Awaitable, Callable, Dict, Optional

from powerprice.config import Settings, settings
from powerprice.exceptions import ValidationError
from powerprice.logging_config import get_logger
from powerprice.utils.time_utils import Clock, next_daily_run, next_hourly_run

logger = get_logger(__name__)

# Delay before retrying after an error in the loop itself (not in a job)
LOOP_ERROR_DELAY_SECONDS = 60


@dataclass
class ScheduledJob:
    name: str
    action: Callable[[], Awaitable]
    next_run: Callable[[datetime], datetime]
    next_run_at: Optional[datetime] = None
    task: Optional[asyncio.Task] = None
    # Held while the job runs, shared by scheduled and manual runs
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)


class PriceScheduler:
    """
    Background job scheduler.

    A job run is bounded by job_timeout_seconds; failures and timeouts are
    logged and the job fires again at its next slot. A job never overlaps
    itself: every run, scheduled or manual, holds the job's lock.
    """

    def __init__(
        self,
        service=None,
        clock: Optional[Clock] = None,
        config: Settings = None,
        sleep: Callable[[float], Awaitable] = asyncio.sleep,
    ):
        self.service = service
        self.config = config or settings
        self.clock = clock or Clock(self.config.timezone)
        self.job_timeout = self.config.job_timeout_seconds
        self._sleep = sleep
        self._running = False
        self._jobs: Dict[str, ScheduledJob] = {}

        if service is not None:
            self._register_default_jobs()

    def _register_default_jobs(self) -> None:
        config = self.config
        tz = self.clock.tz

        self.add_job(
            "hourly-prices",
            self._hourly_prices_job,
            lambda now: next_hourly_run(now, config.hourly_fetch_minute),
        )
        self.add_job(
            "tomorrow-prices",
            self.service.fetch_tomorrow,
            lambda now: next_daily_run(now, tz, config.tomorrow_fetch_hour, config.tomorrow_fetch_minute),
        )
        self.add_job(
            "cheapest-hours",
            self.service.run_cheapest_hours_pass,
            lambda now: next_daily_run(now, tz, config.cheapest_hours_hour, config.cheapest_hours_minute),
        )
        self.add_job(
            "daily-summary",
            self.service.run_daily_summary_pass,
            lambda now: next_daily_run(now, tz, config.daily_summary_hour, config.daily_summary_minute),
        )
        self.add_job(
            "retention",
            self.service.cleanup,
            lambda now: next_daily_run(now, tz, config.retention_hour, config.retention_minute),
        )

    def add_job(
        self,
        name: str,
        action: Callable[[], Awaitable],
        next_run: Callable[[datetime], datetime],
    ) -> None:
        """Register a job; next_run maps the current instant to the next firing."""
        if name in self._jobs:
            raise ValidationError(f"Job already registered: {name}")
        self._jobs[name] = ScheduledJob(name=name, action=action, next_run=next_run)
        if self._running:
            self._jobs[name].task = asyncio.create_task(self._job_loop(self._jobs[name]))

    async def start(self) -> None:
        """Start one background task per job."""
        if self._running:
            logger.warning("Scheduler already running")
            return

        self._running = True
        for job in self._jobs.values():
            job.task = asyncio.create_task(self._job_loop(job))
        logger.info("Scheduler started", jobs=list(self._jobs))

    async def stop(self) -> None:
        """Stop the scheduler."""
        if not self._running:
            return

        self._running = False
        for job in self._jobs.values():
            if job.task:
                job.task.cancel()
                try:
                    await job.task
                except asyncio.CancelledError:
                    pass
                job.task = None
            job.next_run_at = None

        logger.info("Scheduler stopped")

    async def _job_loop(self, job: ScheduledJob) -> None:
        """Sleep until the job's next firing, run it, repeat."""
        while self._running:
            try:
                job.next_run_at = job.next_run(self.clock.now())
                sleep_seconds = (job.next_run_at - self.clock.now()).total_seconds()

                if sleep_seconds > 0:
                    logger.debug(
                        "Next job run scheduled",
                        job=job.name,
                        next_run=job.next_run_at.isoformat(),
                        sleep_seconds=sleep_seconds,
                    )
                    await self._sleep(sleep_seconds)

                if not self._running:
                    break

                await self._execute(job)

            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error("Scheduler loop error", job=job.name, error=str(e))
                await self._sleep(LOOP_ERROR_DELAY_SECONDS)

    async def _execute(self, job: ScheduledJob) -> bool:
        """Run a job once under the job deadline. Returns True on success."""
        if job.lock.locked():
            logger.info("Job already running, waiting for it to finish", job=job.name)

        async with job.lock:
            job_start = self.clock.now()
            logger.info("Starting scheduled job", job=job.name)

            try:
                await asyncio.wait_for(job.action(), timeout=self.job_timeout)
            except asyncio.TimeoutError:
                logger.error("Scheduled job timed out", job=job.name, timeout_seconds=self.job_timeout)
                return False
            except Exception as e:
                duration = (self.clock.now() - job_start).total_seconds()
                logger.error("Scheduled job failed", job=job.name, error=str(e), duration_seconds=duration)
                return False

        duration = (self.clock.now() - job_start).total_seconds()
        logger.info("Completed scheduled job", job=job.name, duration_seconds=duration)
        return True

    async def _hourly_prices_job(self) -> None:
        """Refresh today's prices, then evaluate low/high price alerts."""
        await self.service.fetch_today()
        await self.service.run_price_passes()

    async def run_job_now(self, name: str) -> bool:
        """
        Run a job immediately, outside its schedule.

        Raises:
            ValidationError: If no job has that name
        """
        job = self._jobs.get(name)
        if job is None:
            raise ValidationError(f"Unknown job: {name}. Valid jobs: {', '.join(self._jobs)}")
        logger.info("Running job manually", job=name)
        return await self._execute(job)

    @property
    def jobs(self) -> Dict[str, Optional[datetime]]:
        """Job name -> next scheduled run (None when not running)."""
        return {name: job.next_run_at for name, job in self._jobs.items()}

    @property
    def is_running(self) -> bool:
        """Check if scheduler is running."""
        return self._running

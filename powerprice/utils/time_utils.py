"""
Time utility functions for hour truncation, local day windows and schedules.
Price timestamps are stored in UTC; calendar days follow the configured local timezone.
"""

from datetime import date, datetime, time, timedelta
from typing import Optional, Tuple

import pytz


def to_utc(value: datetime) -> datetime:
    """Return value as an aware UTC datetime. Naive values are taken to be UTC."""
    if value.tzinfo is None:
        return pytz.UTC.localize(value)
    return value.astimezone(pytz.UTC)


def truncate_to_hour(value: datetime) -> datetime:
    """
    Normalize a datetime to the start of its hour in UTC.

    Examples:
        - 2025-12-21T00:00:00+01:00 -> 2025-12-20T23:00:00+00:00
        - 12:59:59.999 UTC -> 12:00:00 UTC
    """
    return to_utc(value).replace(minute=0, second=0, microsecond=0)


def local_day_bounds(day: date, tz: pytz.BaseTzInfo) -> Tuple[datetime, datetime]:
    """
    Get the UTC window covering a local calendar day.

    Args:
        day: Local calendar date
        tz: pytz timezone defining the day

    Returns:
        (start, end) in UTC where start is local midnight and end is the last
        microsecond before the next local midnight. DST days are 23 or 25 hours.
    """
    start_local = tz.localize(datetime.combine(day, time.min))
    next_local = tz.localize(datetime.combine(day + timedelta(days=1), time.min))
    start = start_local.astimezone(pytz.UTC)
    end = next_local.astimezone(pytz.UTC) - timedelta(microseconds=1)
    return start, end


class Clock:
    """
    Source of "now" for everything that depends on the current time.

    The default implementation reads the wall clock. Tests pass a clock with a
    fixed or movable instant so day boundaries are deterministic.
    """

    def __init__(self, timezone: str = "Europe/Oslo"):
        self.tz = pytz.timezone(timezone)

    def now(self) -> datetime:
        """Current instant as an aware UTC datetime."""
        return datetime.now(pytz.UTC)

    def local_now(self) -> datetime:
        """Current instant in the local timezone."""
        return self.now().astimezone(self.tz)

    def today(self) -> date:
        """Current local calendar date."""
        return self.local_now().date()

    def tomorrow(self) -> date:
        return self.today() + timedelta(days=1)

    def current_hour(self) -> datetime:
        """Current instant truncated to the hour, in UTC."""
        return truncate_to_hour(self.now())

    def start_of_today(self) -> datetime:
        """Local midnight of today, in UTC."""
        return local_day_bounds(self.today(), self.tz)[0]

    def day_bounds(self, day: Optional[date] = None) -> Tuple[datetime, datetime]:
        """UTC window of a local day (today when day is None)."""
        return local_day_bounds(day or self.today(), self.tz)


class FixedClock(Clock):
    """Clock pinned to a given instant; advance() moves it forward."""

    def __init__(self, instant: datetime, timezone: str = "Europe/Oslo"):
        super().__init__(timezone)
        self._instant = to_utc(instant)

    def now(self) -> datetime:
        return self._instant

    def set(self, instant: datetime) -> None:
        self._instant = to_utc(instant)

    def advance(self, **kwargs) -> None:
        self._instant = self._instant + timedelta(**kwargs)


def next_hourly_run(now: datetime, minute: int) -> datetime:
    """
    Next firing of an hourly job at the given minute past the hour.

    A run exactly at now is considered passed, so the result is always in the future.
    """
    candidate = now.replace(minute=minute, second=0, microsecond=0)
    if candidate <= now:
        candidate = candidate + timedelta(hours=1)
    return candidate


def next_daily_run(now: datetime, tz: pytz.BaseTzInfo, hour: int, minute: int) -> datetime:
    """
    Next firing of a daily job at a local wall-clock time.

    Args:
        now: Current instant (aware)
        tz: Scheduling timezone
        hour: Local hour of the run
        minute: Local minute of the run

    Returns:
        Aware local datetime strictly after now
    """
    local_now = now.astimezone(tz)
    candidate = tz.localize(datetime.combine(local_now.date(), time(hour, minute)))

    if candidate <= local_now:
        # Today's run has passed, schedule for tomorrow
        candidate = tz.localize(
            datetime.combine(local_now.date() + timedelta(days=1), time(hour, minute))
        )
    return candidate

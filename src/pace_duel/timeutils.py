"""Date helpers: creator-local "today" and ISO week boundaries."""

import logging
from datetime import date, datetime, timedelta

import pytz

logger = logging.getLogger(__name__)


def resolve_timezone(name: str | None, fallback: str = "UTC") -> pytz.BaseTzInfo:
    """Return the named timezone, falling back to ``fallback`` if missing or unknown."""
    if name:
        try:
            return pytz.timezone(name)
        except pytz.exceptions.UnknownTimeZoneError:
            logger.debug(f"Unknown timezone {name!r}, using {fallback}")
    return pytz.timezone(fallback)


def is_valid_timezone(name: str) -> bool:
    try:
        pytz.timezone(name)
    except pytz.exceptions.UnknownTimeZoneError:
        return False
    return True


def today_in(name: str | None, now: datetime | None = None) -> date:
    """Calendar date in the given timezone.

    Args:
        name: IANA timezone name; invalid or missing names mean UTC
        now: Aware or UTC-naive instant to convert (defaults to now)
    """
    tz = resolve_timezone(name)
    if now is None:
        now = datetime.now(pytz.utc)
    elif now.tzinfo is None:
        now = pytz.utc.localize(now)
    return now.astimezone(tz).date()


def week_start(day: date) -> date:
    """Monday of the week containing ``day``."""
    return day - timedelta(days=day.weekday())


def previous_week_start(day: date) -> date:
    """Monday of the full week before the week containing ``day``."""
    return week_start(day) - timedelta(days=7)


def seconds_until_end_of(end: date, now: datetime | None = None, tz_name: str | None = None) -> int:
    """Seconds left until midnight after ``end`` in the given timezone (0 once past)."""
    tz = resolve_timezone(tz_name)
    if now is None:
        now = datetime.now(pytz.utc)
    elif now.tzinfo is None:
        now = pytz.utc.localize(now)
    deadline = tz.localize(datetime.combine(end + timedelta(days=1), datetime.min.time()))
    remaining = (deadline - now).total_seconds()
    return max(0, int(remaining))

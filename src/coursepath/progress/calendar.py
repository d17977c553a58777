"""Calendar normalization — instants to per-user activity dates.

Everything here is pure. Callers inject ``now`` so streak math never depends
on the wall clock.
"""

from __future__ import annotations

from datetime import date, datetime, timezone, tzinfo
from functools import lru_cache
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import structlog

logger = structlog.get_logger()

UTC: tzinfo = timezone.utc


@lru_cache(maxsize=512)
def resolve_timezone(name: str | None) -> tzinfo:
    """Look up an IANA zone, falling back to UTC for missing or unknown names."""
    if not name:
        return UTC
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError, OSError):
        logger.debug("timezone_fallback", timezone=name)
        return UTC


def to_activity_date(timestamp: datetime, tz: str | None) -> date:
    """Calendar date the instant falls on in ``tz``.

    Naive timestamps are taken as UTC (SQLite hands them back without tzinfo).
    """
    if timestamp.tzinfo is None:
        timestamp = timestamp.replace(tzinfo=timezone.utc)
    return timestamp.astimezone(resolve_timezone(tz)).date()


def days_between(a: date, b: date) -> int:
    """Signed number of calendar days from ``a`` to ``b``."""
    return (b - a).days


def today_in(tz: str | None, now: datetime | None = None) -> date:
    """Today's activity date in ``tz``."""
    if now is None:
        now = datetime.now(timezone.utc)
    return to_activity_date(now, tz)

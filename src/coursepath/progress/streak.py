"""Streak calculation from the full set of completed entries.

The snapshot is always recomputed from scratch; entries may arrive in any
day order, so no incremental counter is trusted.
"""

from __future__ import annotations

import json
from collections.abc import Iterable
from datetime import date, datetime, timedelta

import structlog

from coursepath.progress.calendar import days_between, to_activity_date, today_in
from coursepath.progress.schemas import StreakSnapshot
from coursepath.progress.snapshot import EntryView

logger = structlog.get_logger()

STREAK_CACHE_KEY = "stats:streak:{user_id}"


def activity_dates(entries: Iterable[EntryView], tz: str | None) -> set[date]:
    """Distinct activity dates on which at least one day was completed."""
    return {
        to_activity_date(e.completed_at, tz)
        for e in entries
        if e.completed and e.completed_at is not None
    }


def longest_run(dates: Iterable[date]) -> int:
    """Length of the longest run of consecutive calendar dates."""
    ordered = sorted(set(dates))
    best = run = 0
    previous: date | None = None
    for d in ordered:
        run = run + 1 if previous is not None and days_between(previous, d) == 1 else 1
        best = max(best, run)
        previous = d
    return best


def compute_streak(
    entries: Iterable[EntryView],
    tz: str | None,
    now: datetime | None = None,
) -> StreakSnapshot:
    """Derive the streak snapshot for one user.

    The current streak ends today, or yesterday when nothing has been
    completed yet today, so an idle morning does not read as a broken streak.
    """
    completed = [e for e in entries if e.completed]
    if not completed:
        return StreakSnapshot()

    dates = activity_dates(completed, tz)
    today = today_in(tz, now)

    current = 0
    cursor = today if today in dates else today - timedelta(days=1)
    while cursor in dates:
        current += 1
        cursor -= timedelta(days=1)

    return StreakSnapshot(
        current_streak=current,
        longest_streak=longest_run(dates),
        days_completed=len(completed),
        last_completed_day=max(e.day for e in completed),
        last_activity_date=max(dates) if dates else None,
    )


# --- Display cache ---


async def get_cached_streak(redis: object | None, user_id: int) -> StreakSnapshot | None:
    """Read the cached snapshot, if Redis is available and the key is present."""
    if redis is None:
        return None
    try:
        raw = await redis.get(STREAK_CACHE_KEY.format(user_id=user_id))  # type: ignore[attr-defined]
    except Exception:
        logger.warning("streak_cache_read_failed", user_id=user_id, exc_info=True)
        return None
    if not raw:
        return None
    return StreakSnapshot.model_validate(json.loads(raw))


async def cache_streak(
    redis: object | None,
    user_id: int,
    snapshot: StreakSnapshot,
    ttl_seconds: int,
) -> None:
    """Overwrite the cached snapshot. The cache is display-only and never authoritative."""
    if redis is None:
        return
    try:
        await redis.set(  # type: ignore[attr-defined]
            STREAK_CACHE_KEY.format(user_id=user_id),
            snapshot.model_dump_json(),
            ex=ttl_seconds,
        )
    except Exception:
        logger.warning("streak_cache_write_failed", user_id=user_id, exc_info=True)

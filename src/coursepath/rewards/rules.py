"""Threshold predicates for badges and referral tiers.

Pure functions over in-memory state. Already-earned slugs are skipped before
any predicate runs; results keep catalog order.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from typing import Any

from coursepath.progress.schemas import StreakSnapshot
from coursepath.progress.snapshot import ProgressSnapshot
from coursepath.progress.streak import activity_dates, longest_run
from coursepath.rewards.seed import ReferralTier


def completed_through(snapshot: ProgressSnapshot, last_day: int) -> bool:
    """Every day in 1..last_day is completed."""
    done = snapshot.completed_days
    return all(d in done for d in range(1, last_day + 1))


def _days_completed(
    config: dict[str, Any], snapshot: ProgressSnapshot, streak: StreakSnapshot, challenge_length: int, tz: str | None
) -> bool:
    through = int(config.get("through_day", 0))
    if through < 1 or through > challenge_length:
        return False
    return completed_through(snapshot, through)


def _challenge_complete(
    config: dict[str, Any], snapshot: ProgressSnapshot, streak: StreakSnapshot, challenge_length: int, tz: str | None
) -> bool:
    return completed_through(snapshot, challenge_length)


def _streak(
    config: dict[str, Any], snapshot: ProgressSnapshot, streak: StreakSnapshot, challenge_length: int, tz: str | None
) -> bool:
    needed = int(config.get("streak", 0))
    if needed < 1:
        return False
    return max(streak.current_streak, streak.longest_streak) >= needed


def _perfect_run(
    config: dict[str, Any], snapshot: ProgressSnapshot, streak: StreakSnapshot, challenge_length: int, tz: str | None
) -> bool:
    # Zero missed days: all days done and their activity dates form one unbroken run.
    if not completed_through(snapshot, challenge_length):
        return False
    dates = activity_dates(snapshot.completed_entries, tz)
    return bool(dates) and longest_run(dates) == len(dates)


Predicate = Callable[[dict[str, Any], ProgressSnapshot, StreakSnapshot, int, "str | None"], bool]

BADGE_PREDICATES: dict[str, Predicate] = {
    "days_completed": _days_completed,
    "challenge_complete": _challenge_complete,
    "streak": _streak,
    "perfect_run": _perfect_run,
}


def badges_due(
    catalog: Iterable[Any],
    snapshot: ProgressSnapshot,
    streak: StreakSnapshot,
    earned_slugs: set[str],
    *,
    challenge_length: int,
    tz: str | None = None,
) -> list[str]:
    """Slugs of badges whose predicate holds and that are not earned yet."""
    due = []
    for badge in catalog:
        if badge.slug in earned_slugs:
            continue
        predicate = BADGE_PREDICATES.get(badge.trigger_type)
        if predicate is None:
            continue
        if predicate(badge.trigger_config or {}, snapshot, streak, challenge_length, tz):
            due.append(badge.slug)
    return due


def tiers_due(
    tiers: Iterable[ReferralTier],
    referral_count: int,
    granted_slugs: set[str],
) -> list[str]:
    """Slugs of referral tiers reached by ``referral_count`` and not granted yet."""
    return [
        tier.slug
        for tier in tiers
        if tier.slug not in granted_slugs and referral_count >= tier.threshold
    ]

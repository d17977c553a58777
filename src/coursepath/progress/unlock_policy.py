"""Unlock policy — which days a user may open.

Rules, first match wins:
1. Day 1 is always open.
2. Admins in explicit preview mode see every day (read-only).
3. Paid bypass: ``all_days_unlocked`` or ``coaching_purchased``.
4. Otherwise a day opens once the previous day is completed.

Pure functions over an already-loaded snapshot; safe to call on every render.
"""

from __future__ import annotations

from typing import Any

from coursepath.progress.exceptions import InvalidDay
from coursepath.progress.snapshot import ProgressSnapshot


def validate_day(day: int, challenge_length: int) -> None:
    """Raise InvalidDay for days outside [1, challenge_length]."""
    if isinstance(day, bool) or not isinstance(day, int) or not 1 <= day <= challenge_length:
        raise InvalidDay(day, challenge_length)


def has_paid_bypass(user: Any) -> bool:  # noqa: ANN401
    return bool(user.all_days_unlocked or user.coaching_purchased)


def is_accessible(
    user: Any,  # noqa: ANN401
    snapshot: ProgressSnapshot,
    day: int,
    *,
    challenge_length: int,
    preview: bool = False,
) -> bool:
    """Whether ``user`` may open ``day`` right now."""
    validate_day(day, challenge_length)

    if day == 1:
        return True
    if preview and user.is_admin:
        return True
    if has_paid_bypass(user):
        return True
    return snapshot.is_completed(day - 1)


def accessible_days(
    user: Any,  # noqa: ANN401
    snapshot: ProgressSnapshot,
    *,
    challenge_length: int,
    preview: bool = False,
) -> dict[int, bool]:
    """Lock map for days 1..challenge_length."""
    return {
        day: is_accessible(user, snapshot, day, challenge_length=challenge_length, preview=preview)
        for day in range(1, challenge_length + 1)
    }

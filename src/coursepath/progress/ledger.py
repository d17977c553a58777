"""Progress ledger — the authoritative per-day completion record.

A first completion is claimed with one statement:

    INSERT ... ON CONFLICT (user_id, day)
    DO UPDATE SET completed = true, ... WHERE user_progress.completed = false
    RETURNING ...

A returned row means this caller won the claim. No row means the day was
already completed; the existing row is read back untouched. Two concurrent
callers can therefore never both observe a first completion.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from coursepath.database import upsert
from coursepath.db.models import ProgressEntry
from coursepath.progress.exceptions import NotUnlocked, PayloadTooLarge, PreviewReadOnly
from coursepath.progress.schemas import AnswerPayload
from coursepath.progress.snapshot import ProgressSnapshot
from coursepath.progress.unlock_policy import is_accessible

logger = structlog.get_logger()

# user_inputs is free-form JSON; it gets a proportionally larger allowance.
USER_INPUTS_FACTOR = 4


@dataclass(frozen=True)
class LedgerWrite:
    entry: ProgressEntry
    first_completion: bool


# --- Reads ---


async def list_entries(db: AsyncSession, user_id: int) -> list[ProgressEntry]:
    """All progress rows for a user, ordered by day."""
    result = await db.execute(
        select(ProgressEntry)
        .where(ProgressEntry.user_id == user_id)
        .order_by(ProgressEntry.day)
    )
    return list(result.scalars().all())


async def get_entry(db: AsyncSession, user_id: int, day: int) -> ProgressEntry | None:
    """The progress row for one day, if any."""
    result = await db.execute(
        select(ProgressEntry).where(
            ProgressEntry.user_id == user_id,
            ProgressEntry.day == day,
        )
    )
    return result.scalar_one_or_none()


async def load_snapshot(db: AsyncSession, user_id: int) -> ProgressSnapshot:
    """Read-only snapshot of every row for ``user_id``."""
    return ProgressSnapshot.from_rows(user_id, await list_entries(db, user_id))


# --- Validation ---


def check_payload(answers: AnswerPayload | None, max_chars: int) -> None:
    """Reject catastrophically oversized answers. Content is never interpreted."""
    if answers is None:
        return
    for field in ("micro_decision_choice", "reflection_answer"):
        value = getattr(answers, field)
        if value is not None and len(value) > max_chars:
            raise PayloadTooLarge(field, max_chars)
    if answers.user_inputs is not None:
        limit = max_chars * USER_INPUTS_FACTOR
        if len(json.dumps(answers.user_inputs, default=str)) > limit:
            raise PayloadTooLarge("user_inputs", limit)


def _answer_values(answers: AnswerPayload | None) -> dict[str, Any]:
    if answers is None:
        return {}
    return answers.model_dump(exclude_none=True)


def _guard_write(
    user: Any,  # noqa: ANN401
    snapshot: ProgressSnapshot,
    day: int,
    answers: AnswerPayload | None,
    *,
    challenge_length: int,
    max_answer_chars: int,
    preview: bool,
) -> None:
    # validate_day runs inside is_accessible; preview never writes
    if preview:
        raise PreviewReadOnly()
    if not is_accessible(user, snapshot, day, challenge_length=challenge_length):
        raise NotUnlocked(day)
    # a completed day ignores the payload, so its size is irrelevant
    if not snapshot.is_completed(day):
        check_payload(answers, max_answer_chars)


# --- Writes ---


async def record_completion(
    db: AsyncSession,
    user: Any,  # noqa: ANN401
    day: int,
    answers: AnswerPayload | None,
    *,
    snapshot: ProgressSnapshot,
    challenge_length: int,
    max_answer_chars: int,
    now: datetime | None = None,
    preview: bool = False,
) -> LedgerWrite:
    """Mark ``day`` completed for ``user`` exactly once.

    Re-submitting an already-completed day succeeds and leaves
    ``completed_at`` and the stored answers as they were.
    """
    _guard_write(
        user, snapshot, day, answers,
        challenge_length=challenge_length,
        max_answer_chars=max_answer_chars,
        preview=preview,
    )
    if now is None:
        now = datetime.now(timezone.utc)

    values = _answer_values(answers)
    stmt = upsert(db, ProgressEntry).values(
        user_id=user.id,
        day=day,
        completed=True,
        completed_at=now,
        created_at=now,
        **values,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=[ProgressEntry.user_id, ProgressEntry.day],
        set_={
            "completed": True,
            "completed_at": now,
            **{name: getattr(stmt.excluded, name) for name in values},
        },
        where=ProgressEntry.completed.is_(False),
    ).returning(ProgressEntry.id)

    claimed_id = (await db.execute(stmt)).scalar_one_or_none()
    entry = await _reload(db, user.id, day)

    if claimed_id is None:
        logger.info("day_already_completed", user_id=user.id, day=day)
        return LedgerWrite(entry=entry, first_completion=False)

    logger.info("day_completed", user_id=user.id, day=day)
    return LedgerWrite(entry=entry, first_completion=True)


async def save_draft(
    db: AsyncSession,
    user: Any,  # noqa: ANN401
    day: int,
    answers: AnswerPayload,
    *,
    snapshot: ProgressSnapshot,
    challenge_length: int,
    max_answer_chars: int,
    now: datetime | None = None,
) -> ProgressEntry:
    """Store answers for a day that is not completed yet.

    Completed rows are returned unchanged; drafts never flip ``completed``.
    """
    _guard_write(
        user, snapshot, day, answers,
        challenge_length=challenge_length,
        max_answer_chars=max_answer_chars,
        preview=False,
    )
    if now is None:
        now = datetime.now(timezone.utc)

    values = _answer_values(answers)
    stmt = upsert(db, ProgressEntry).values(
        user_id=user.id,
        day=day,
        completed=False,
        created_at=now,
        **values,
    )
    if values:
        stmt = stmt.on_conflict_do_update(
            index_elements=[ProgressEntry.user_id, ProgressEntry.day],
            set_={name: getattr(stmt.excluded, name) for name in values},
            where=ProgressEntry.completed.is_(False),
        )
    else:
        stmt = stmt.on_conflict_do_nothing(
            index_elements=[ProgressEntry.user_id, ProgressEntry.day],
        )
    await db.execute(stmt)
    return await _reload(db, user.id, day)


async def _reload(db: AsyncSession, user_id: int, day: int) -> ProgressEntry:
    """Fetch the row fresh, bypassing any stale identity-map copy."""
    result = await db.execute(
        select(ProgressEntry)
        .where(ProgressEntry.user_id == user_id, ProgressEntry.day == day)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one()

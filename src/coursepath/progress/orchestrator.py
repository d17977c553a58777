"""Completion orchestrator: the single entry point for finishing a day.

One call validates access, claims the ledger row, recomputes the streak, and
grants newly-due rewards inside the caller's session, then commits once.
A database conflict rolls the whole attempt back and is retried one time.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

import structlog
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from coursepath.config import Settings
from coursepath.db.models import ProgressEntry
from coursepath.progress.exceptions import StorageConflict
from coursepath.progress.ledger import load_snapshot, record_completion
from coursepath.progress.schemas import (
    AnswerPayload,
    ProgressOverviewResponse,
    StreakSnapshot,
)
from coursepath.progress.snapshot import EntryView
from coursepath.progress.streak import cache_streak, compute_streak, get_cached_streak
from coursepath.progress.unlock_policy import accessible_days
from coursepath.referrals.service import get_referral_state
from coursepath.rewards.evaluator import Reward, evaluate_rewards, publish_rewards

logger = structlog.get_logger()

MAX_ATTEMPTS = 2


@dataclass(frozen=True)
class Learner:
    """Detached copy of the user fields the engine reads.

    A rollback expires ORM instances; the retry must not lazy-load them.
    """

    id: int
    is_admin: bool
    all_days_unlocked: bool
    coaching_purchased: bool
    timezone: str | None

    @classmethod
    def of(cls, user: Any) -> Learner:  # noqa: ANN401
        return cls(
            id=user.id,
            is_admin=bool(user.is_admin),
            all_days_unlocked=bool(user.all_days_unlocked),
            coaching_purchased=bool(user.coaching_purchased),
            timezone=user.timezone,
        )


@dataclass(frozen=True)
class CompletionResult:
    entry: ProgressEntry
    streak: StreakSnapshot
    new_rewards: list[Reward] = field(default_factory=list)
    already_completed: bool = False


class CompletionOrchestrator:
    def __init__(self, db: AsyncSession, redis: object | None, settings: Settings) -> None:
        self.db = db
        self.redis = redis
        self.settings = settings

    def _zone(self, learner: Learner) -> str:
        return learner.timezone or self.settings.default_timezone

    async def complete_day(
        self,
        user: Any,  # noqa: ANN401
        day: int,
        answers: AnswerPayload | None = None,
        *,
        preview: bool = False,
        now: datetime | None = None,
    ) -> CompletionResult:
        """Complete ``day`` for ``user``. Repeating a finished day is a successful no-op."""
        learner = user if isinstance(user, Learner) else Learner.of(user)
        if now is None:
            now = datetime.now(timezone.utc)

        for attempt in range(MAX_ATTEMPTS):
            try:
                result = await self._attempt(learner, day, answers, preview=preview, now=now)
                await self.db.commit()
                break
            except (IntegrityError, OperationalError) as exc:
                await self.db.rollback()
                if attempt + 1 >= MAX_ATTEMPTS:
                    logger.warning("storage_conflict", user_id=learner.id, day=day, error=str(exc))
                    raise StorageConflict() from exc
                delay = self.settings.completion_retry_base_delay_seconds * 2**attempt
                logger.info("storage_conflict_retry", user_id=learner.id, day=day, delay=delay)
                await asyncio.sleep(delay)
            except Exception:
                await self.db.rollback()
                raise

        await cache_streak(self.redis, learner.id, result.streak, self.settings.streak_cache_ttl_seconds)
        await publish_rewards(self.redis, learner.id, result.new_rewards, day=day)
        return result

    async def _attempt(
        self,
        learner: Learner,
        day: int,
        answers: AnswerPayload | None,
        *,
        preview: bool,
        now: datetime,
    ) -> CompletionResult:
        snapshot = await load_snapshot(self.db, learner.id)
        write = await record_completion(
            self.db, learner, day, answers,
            snapshot=snapshot,
            challenge_length=self.settings.challenge_length,
            max_answer_chars=self.settings.max_answer_chars,
            now=now,
            preview=preview,
        )
        snapshot = snapshot.with_entry(
            EntryView(day=day, completed=True, completed_at=write.entry.completed_at)
        )
        tz = self._zone(learner)
        streak = compute_streak(snapshot.entries.values(), tz, now)
        referral_state = await get_referral_state(self.db, learner.id)
        rewards = await evaluate_rewards(
            self.db, learner.id, snapshot, streak, referral_state,
            challenge_length=self.settings.challenge_length,
            tz=tz,
            now=now,
        )
        return CompletionResult(
            entry=write.entry,
            streak=streak,
            new_rewards=rewards,
            already_completed=not write.first_completion,
        )

    # --- Reads ---

    async def get_streak(self, user: Any, now: datetime | None = None) -> StreakSnapshot:  # noqa: ANN401
        """Cache-first streak snapshot; a miss is recomputed and cached."""
        learner = Learner.of(user)
        cached = await get_cached_streak(self.redis, learner.id)
        if cached is not None:
            return cached
        snapshot = await load_snapshot(self.db, learner.id)
        streak = compute_streak(snapshot.entries.values(), self._zone(learner), now)
        await cache_streak(self.redis, learner.id, streak, self.settings.streak_cache_ttl_seconds)
        return streak

    async def get_overview(
        self,
        user: Any,  # noqa: ANN401
        now: datetime | None = None,
        *,
        preview: bool = False,
    ) -> ProgressOverviewResponse:
        """Streak, lock map, and completed days for the dashboard."""
        learner = Learner.of(user)
        snapshot = await load_snapshot(self.db, learner.id)
        return ProgressOverviewResponse(
            challenge_length=self.settings.challenge_length,
            streak=compute_streak(snapshot.entries.values(), self._zone(learner), now),
            days=accessible_days(
                learner, snapshot,
                challenge_length=self.settings.challenge_length,
                preview=preview,
            ),
            completed_days=sorted(snapshot.completed_days),
        )

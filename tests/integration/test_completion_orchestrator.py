"""Completion orchestrator — end-to-end completion scenarios."""

import asyncio
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from coursepath.db.base import Base
from coursepath.db.models import ProgressEntry, Referral, UserBadge
from coursepath.progress import orchestrator as orchestrator_module
from coursepath.progress.exceptions import NotUnlocked, PreviewReadOnly, StorageConflict
from coursepath.progress.orchestrator import CompletionOrchestrator, Learner
from coursepath.progress.schemas import AnswerPayload
from coursepath.progress.streak import STREAK_CACHE_KEY
from coursepath.rewards.evaluator import REWARDS_CHANNEL
from coursepath.rewards.seed import seed_badges
from coursepath.users.service import get_or_create_user

DAY0 = datetime(2026, 9, 1, 10, 0, tzinfo=timezone.utc)


def _orchestrator(db, settings, redis=None):
    return CompletionOrchestrator(db, redis, settings)


async def _complete_days(orch, user, days, start=DAY0):
    """Complete ``days`` in order, one per calendar day."""
    results = []
    for i, day in enumerate(days):
        results.append(await orch.complete_day(user, day, now=start + timedelta(days=i)))
    return results


async def _referral(db, referrer, referred, now=DAY0):
    db.add(Referral(referrer_id=referrer.id, referred_user_id=referred.id, created_at=now))
    await db.commit()


class TestCompleteDay:
    @pytest.mark.asyncio
    async def test_first_day(self, db_session, settings, user):
        result = await _orchestrator(db_session, settings).complete_day(
            user, 1, AnswerPayload(reflection_answer="started"), now=DAY0,
        )
        assert result.already_completed is False
        assert result.entry.completed is True
        assert result.streak.current_streak == 1
        assert result.streak.days_completed == 1
        assert [r.slug for r in result.new_rewards] == ["first_steps"]

    @pytest.mark.asyncio
    async def test_day_seven_badge_exactly_once(self, db_session, settings, user):
        orch = _orchestrator(db_session, settings)
        results = await _complete_days(orch, user, range(1, 8))
        assert [r.slug for r in results[-1].new_rewards] == ["planner", "on_fire"]

        again = await orch.complete_day(user, 7, now=DAY0 + timedelta(days=6, hours=2))
        assert again.already_completed is True
        assert again.new_rewards == []

        planner = await db_session.execute(
            select(func.count()).select_from(UserBadge).where(UserBadge.user_id == user.id)
        )
        assert planner.scalar_one() == 3  # first_steps, planner, on_fire

    @pytest.mark.asyncio
    async def test_idempotent_completed_at(self, db_session, settings, user):
        orch = _orchestrator(db_session, settings)
        first = await orch.complete_day(user, 1, now=DAY0)
        stamp = first.entry.completed_at
        second = await orch.complete_day(user, 1, now=DAY0 + timedelta(days=2))
        assert second.entry.completed_at == stamp
        assert second.already_completed is True
        assert second.new_rewards == []

    @pytest.mark.asyncio
    async def test_locked_day(self, db_session, settings, user):
        with pytest.raises(NotUnlocked):
            await _orchestrator(db_session, settings).complete_day(user, 2, now=DAY0)

    @pytest.mark.asyncio
    async def test_admin_preview_is_read_only(self, db_session, settings, make_user):
        admin = await make_user(is_admin=True)
        with pytest.raises(PreviewReadOnly):
            await _orchestrator(db_session, settings).complete_day(admin, 4, preview=True, now=DAY0)

    @pytest.mark.asyncio
    async def test_out_of_order_for_paid_user(self, db_session, settings, make_user):
        paid = await make_user(coaching_purchased=True)
        orch = _orchestrator(db_session, settings)
        five = await orch.complete_day(paid, 5, now=DAY0)
        assert five.streak.last_completed_day == 5
        assert five.new_rewards == []

        four = await orch.complete_day(paid, 4, now=DAY0 + timedelta(hours=1))
        assert four.streak.days_completed == 2
        assert four.streak.current_streak == 1

        one = await orch.complete_day(paid, 1, now=DAY0 + timedelta(hours=2))
        assert [r.slug for r in one.new_rewards] == ["first_steps"]

    @pytest.mark.asyncio
    async def test_referral_count_crossing_three(self, db_session, settings, make_user):
        referrer = await make_user()
        friends = [await make_user() for _ in range(3)]
        for friend in friends[:2]:
            await _referral(db_session, referrer, friend)

        orch = _orchestrator(db_session, settings)
        first = await orch.complete_day(referrer, 1, now=DAY0)
        assert ("referral_tier", "launch_checklist") in [(r.kind, r.slug) for r in first.new_rewards]

        await _referral(db_session, referrer, friends[2])
        second = await orch.complete_day(referrer, 2, now=DAY0 + timedelta(days=1))
        assert [(r.kind, r.slug) for r in second.new_rewards] == [("referral_tier", "marketing_prompts")]

    @pytest.mark.asyncio
    async def test_full_challenge(self, db_session, settings, user):
        orch = _orchestrator(db_session, settings)
        results = await _complete_days(orch, user, range(1, settings.challenge_length + 1))
        last = results[-1]
        assert last.streak.current_streak == settings.challenge_length
        assert {"the_launcher", "elite_consistency", "perfect_run"} <= {r.slug for r in last.new_rewards}
        every = [r.slug for res in results for r in res.new_rewards]
        assert len(every) == len(set(every))


class TestSideEffects:
    @pytest.mark.asyncio
    async def test_streak_cached_and_rewards_published(self, db_session, settings, user):
        redis = AsyncMock()
        await _orchestrator(db_session, settings, redis).complete_day(user, 1, now=DAY0)

        key = STREAK_CACHE_KEY.format(user_id=user.id)
        assert redis.set.await_args.args[0] == key
        assert redis.set.await_args.kwargs["ex"] == settings.streak_cache_ttl_seconds
        assert redis.publish.await_args.args[0] == REWARDS_CHANNEL
        assert '"first_steps"' in redis.publish.await_args.args[1]

    @pytest.mark.asyncio
    async def test_no_publish_without_rewards(self, db_session, settings, user):
        redis = AsyncMock()
        orch = _orchestrator(db_session, settings, redis)
        await orch.complete_day(user, 1, now=DAY0)
        redis.publish.reset_mock()
        await orch.complete_day(user, 1, now=DAY0)
        redis.publish.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_redis_failure_does_not_fail_completion(self, db_session, settings, user):
        redis = AsyncMock()
        redis.set.side_effect = ConnectionError("down")
        redis.publish.side_effect = ConnectionError("down")
        result = await _orchestrator(db_session, settings, redis).complete_day(user, 1, now=DAY0)
        assert result.entry.completed is True


class TestStorageConflict:
    @pytest.mark.asyncio
    async def test_conflict_retried_once_then_succeeds(self, db_session, settings, user, monkeypatch):
        real = orchestrator_module.record_completion
        calls = {"n": 0}

        async def flaky(*args, **kwargs):
            calls["n"] += 1
            if calls["n"] == 1:
                raise OperationalError("UPDATE user_progress", {}, Exception("database is locked"))
            return await real(*args, **kwargs)

        monkeypatch.setattr(orchestrator_module, "record_completion", flaky)
        result = await _orchestrator(db_session, settings).complete_day(user, 1, now=DAY0)
        assert calls["n"] == 2
        assert result.already_completed is False

    @pytest.mark.asyncio
    async def test_second_conflict_surfaces(self, db_session, settings, user, monkeypatch):
        async def always(*args, **kwargs):
            raise OperationalError("UPDATE user_progress", {}, Exception("could not serialize access"))

        monkeypatch.setattr(orchestrator_module, "record_completion", always)
        with pytest.raises(StorageConflict) as exc:
            await _orchestrator(db_session, settings).complete_day(user, 1, now=DAY0)
        assert exc.value.status_code == 409


class TestReads:
    @pytest.mark.asyncio
    async def test_overview(self, db_session, settings, user):
        orch = _orchestrator(db_session, settings)
        await _complete_days(orch, user, [1, 2])
        overview = await orch.get_overview(user, now=DAY0 + timedelta(days=1))
        assert overview.completed_days == [1, 2]
        assert overview.streak.current_streak == 2
        assert [d for d, ok in overview.days.items() if ok] == [1, 2, 3]

    @pytest.mark.asyncio
    async def test_get_streak_prefers_cache(self, db_session, settings, user):
        redis = AsyncMock()
        redis.get.return_value = '{"current_streak": 9, "longest_streak": 9, "days_completed": 9}'
        streak = await _orchestrator(db_session, settings, redis).get_streak(user)
        assert streak.current_streak == 9
        redis.set.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_get_streak_recomputes_on_miss(self, db_session, settings, user):
        orch = _orchestrator(db_session, settings)
        await orch.complete_day(user, 1, now=DAY0)
        streak = await orch.get_streak(user, now=DAY0)
        assert streak.days_completed == 1


class TestConcurrentCompletion:
    @pytest.mark.asyncio
    async def test_simultaneous_completions_grant_badge_once(self, settings, tmp_path):
        engine = create_async_engine(
            f"sqlite+aiosqlite:///{tmp_path / 'race.db'}",
            connect_args={"timeout": 30},
        )
        sessions = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
        try:
            async with engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
            async with sessions() as db:
                await seed_badges(db)
                user, _ = await get_or_create_user(db, "racer@example.com")
                await db.commit()
                learner = Learner.of(user)

            async def complete(i):
                async with sessions() as db:
                    result = await _orchestrator(db, settings).complete_day(
                        learner, 1, now=DAY0 + timedelta(seconds=i),
                    )
                    return [r.slug for r in result.new_rewards], result.already_completed

            outcomes = await asyncio.gather(*(complete(i) for i in range(8)))

            assert [rewards for rewards, _ in outcomes if rewards] == [["first_steps"]]
            assert sum(1 for _, repeated in outcomes if not repeated) == 1
            async with sessions() as db:
                badges = await db.execute(
                    select(func.count()).select_from(UserBadge).where(UserBadge.user_id == learner.id)
                )
                rows = await db.execute(
                    select(func.count()).select_from(ProgressEntry).where(ProgressEntry.user_id == learner.id)
                )
                assert badges.scalar_one() == 1
                assert rows.scalar_one() == 1
        finally:
            await engine.dispose()

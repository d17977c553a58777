"""Reward evaluation: run the threshold rules and grant what is newly due.

Earned sets are loaded first and skipped before any predicate runs. Each due
reward is then granted with insert-if-absent, and only rows this call actually
inserted are reported, so two evaluators racing for the same user can never
both report (or both grant) the same reward.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Literal

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from coursepath.progress.schemas import RewardResponse, StreakSnapshot
from coursepath.progress.snapshot import ProgressSnapshot
from coursepath.referrals.service import ReferralState, grant_tier
from coursepath.rewards.badge_service import award_badge, get_catalog, get_earned_slugs
from coursepath.rewards.rules import badges_due, tiers_due
from coursepath.rewards.seed import REFERRAL_TIERS, REFERRAL_TIERS_BY_SLUG

logger = structlog.get_logger()

REWARDS_CHANNEL = "pubsub:rewards_earned"


@dataclass(frozen=True)
class Reward:
    kind: Literal["badge", "referral_tier"]
    slug: str
    name: str
    description: str
    earned_at: datetime

    def to_response(self) -> RewardResponse:
        return RewardResponse(
            kind=self.kind,
            slug=self.slug,
            name=self.name,
            description=self.description,
            earned_at=self.earned_at,
        )


async def evaluate_badges(
    db: AsyncSession,
    user_id: int,
    snapshot: ProgressSnapshot,
    streak: StreakSnapshot,
    *,
    challenge_length: int,
    tz: str | None = None,
    now: datetime | None = None,
) -> list[Reward]:
    if now is None:
        now = datetime.now(timezone.utc)

    catalog = await get_catalog(db)
    earned = await get_earned_slugs(db, user_id)
    due = set(badges_due(catalog, snapshot, streak, earned, challenge_length=challenge_length, tz=tz))

    rewards = []
    for badge in catalog:
        if badge.slug not in due:
            continue
        if await award_badge(db, user_id, badge, now):
            logger.info("reward_granted", user_id=user_id, kind="badge", slug=badge.slug)
            rewards.append(Reward("badge", badge.slug, badge.name, badge.description, now))
    return rewards


async def evaluate_referral_tiers(
    db: AsyncSession,
    user_id: int,
    referral_state: ReferralState,
    now: datetime | None = None,
) -> list[Reward]:
    if now is None:
        now = datetime.now(timezone.utc)

    rewards = []
    for slug in tiers_due(REFERRAL_TIERS, referral_state.count, set(referral_state.granted_tiers)):
        if await grant_tier(db, user_id, slug, now):
            tier = REFERRAL_TIERS_BY_SLUG[slug]
            logger.info("reward_granted", user_id=user_id, kind="referral_tier", slug=slug)
            rewards.append(Reward("referral_tier", slug, tier.name, tier.description, now))
    return rewards


async def evaluate_rewards(
    db: AsyncSession,
    user_id: int,
    snapshot: ProgressSnapshot,
    streak: StreakSnapshot,
    referral_state: ReferralState,
    *,
    challenge_length: int,
    tz: str | None = None,
    now: datetime | None = None,
) -> list[Reward]:
    """Grant every newly-due badge and referral tier; return only what this call granted.

    Badges come first in catalog order, then referral tiers by threshold.
    Nothing is committed here; the caller owns the transaction.
    """
    if now is None:
        now = datetime.now(timezone.utc)

    rewards = await evaluate_badges(
        db, user_id, snapshot, streak,
        challenge_length=challenge_length, tz=tz, now=now,
    )
    rewards.extend(await evaluate_referral_tiers(db, user_id, referral_state, now))
    return rewards


async def publish_rewards(
    redis: object | None,
    user_id: int,
    rewards: list[Reward],
    *,
    day: int | None = None,
) -> None:
    """Notify subscribers of granted rewards. Call after commit; failures are logged, never raised."""
    if redis is None or not rewards:
        return
    try:
        await redis.publish(  # type: ignore[attr-defined]
            REWARDS_CHANNEL,
            json.dumps({
                "user_id": user_id,
                "day": day,
                "rewards": [
                    {"kind": r.kind, "slug": r.slug, "name": r.name}
                    for r in rewards
                ],
            }),
        )
    except Exception:
        logger.warning("rewards_publish_failed", user_id=user_id, exc_info=True)

"""Referral router — the caller's code, tier progress, and attribution."""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from coursepath.auth.dependencies import get_current_user
from coursepath.database import get_session
from coursepath.db.models import User
from coursepath.referrals.schemas import (
    ReferralStateResponse,
    ReferralTierResponse,
    TrackReferralRequest,
    TrackReferralResponse,
)
from coursepath.redis_client import get_optional_redis
from coursepath.referrals.service import get_or_create_referral_code, get_referral_state, track_referral
from coursepath.rewards.evaluator import evaluate_referral_tiers, publish_rewards
from coursepath.rewards.seed import REFERRAL_TIERS

logger = structlog.get_logger()

router = APIRouter(prefix="/api/v1", tags=["Referrals"])


@router.get("/referral", response_model=ReferralStateResponse)
async def get_referral(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> ReferralStateResponse:
    """Referral code (created on first visit), count, and tier catalog with unlocked flags."""
    code = await get_or_create_referral_code(db, user)
    await db.commit()

    state = await get_referral_state(db, user.id)
    granted = set(state.granted_tiers)
    return ReferralStateResponse(
        referral_code=code,
        count=state.count,
        highest_tier_granted=state.highest_tier_granted,
        granted_tiers=state.granted_tiers,
        tiers=[
            ReferralTierResponse(
                slug=t.slug,
                name=t.name,
                threshold=t.threshold,
                description=t.description,
                unlocked=t.slug in granted,
            )
            for t in REFERRAL_TIERS
        ],
    )


@router.post("/referral/track", response_model=TrackReferralResponse)
async def post_track_referral(
    body: TrackReferralRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
    redis: object | None = Depends(get_optional_redis),
) -> TrackReferralResponse:
    """Attribute the caller to the owner of ``referral_code``.

    Tiers the referrer now reaches are granted here and published for the
    referrer; the response to the referred caller does not carry them.
    """
    referrer_id = await track_referral(db, user.id, body.referral_code)
    state = await get_referral_state(db, referrer_id)
    rewards = await evaluate_referral_tiers(db, referrer_id, state)
    await db.commit()

    if rewards:
        logger.info("referrer_tiers_granted", referrer_id=referrer_id, tiers=[r.slug for r in rewards])
        await publish_rewards(redis, referrer_id, rewards)
    return TrackReferralResponse(tracked=True)

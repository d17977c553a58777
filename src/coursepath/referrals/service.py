"""Referral codes, attribution, and tier grants.

Codes are 8-character alphanumeric (A-Z, 0-9), generated server-side with a
cryptographic random source. A referred user is attributed once, to the first
referrer that claims them; UNIQUE(referred_user_id) settles races.
"""

from __future__ import annotations

import secrets
import string
from dataclasses import dataclass, field
from datetime import datetime, timezone

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from coursepath.database import upsert
from coursepath.db.models import Referral, ReferralRewardGrant, User
from coursepath.progress.exceptions import ProgressError
from coursepath.rewards.seed import REFERRAL_TIERS, REFERRAL_TIERS_BY_SLUG

logger = structlog.get_logger()

CODE_CHARSET = string.ascii_uppercase + string.digits  # A-Z, 0-9
CODE_LENGTH = 8
CODE_ATTEMPTS = 10


class InvalidReferralCode(ProgressError):
    status_code = 400
    detail = "Invalid referral code"


class AlreadyReferred(ProgressError):
    status_code = 409
    detail = "This account has already been referred"


@dataclass(frozen=True)
class ReferralState:
    referral_code: str | None
    count: int
    granted_tiers: list[str] = field(default_factory=list)

    @property
    def highest_tier_granted(self) -> str | None:
        """Highest-threshold tier among the granted ones."""
        granted = [t for t in REFERRAL_TIERS if t.slug in self.granted_tiers]
        return granted[-1].slug if granted else None


def generate_referral_code() -> str:
    """Generate a cryptographically random 8-character referral code."""
    return "".join(secrets.choice(CODE_CHARSET) for _ in range(CODE_LENGTH))


def normalize_referral_code(code: str) -> str:
    """Normalize a code to uppercase for case-insensitive lookup."""
    return code.strip().upper()


async def get_or_create_referral_code(db: AsyncSession, user: User) -> str:
    """Return the user's referral code, assigning a fresh unique one if missing."""
    if user.referral_code:
        return user.referral_code

    for _ in range(CODE_ATTEMPTS):
        code = generate_referral_code()
        existing = await db.execute(select(User.id).where(User.referral_code == code))
        if existing.scalar_one_or_none() is None:
            user.referral_code = code
            await db.flush()
            return code
    raise RuntimeError(f"Failed to generate unique referral code after {CODE_ATTEMPTS} attempts")


async def track_referral(
    db: AsyncSession,
    referred_user_id: int,
    code: str,
    now: datetime | None = None,
) -> int:
    """Attribute ``referred_user_id`` to the owner of ``code``.

    Returns the referrer's user id. Raises InvalidReferralCode for unknown
    codes and self-referral, AlreadyReferred when an earlier attribution exists.
    """
    if now is None:
        now = datetime.now(timezone.utc)

    result = await db.execute(
        select(User.id).where(User.referral_code == normalize_referral_code(code))
    )
    referrer_id = result.scalar_one_or_none()
    if referrer_id is None or referrer_id == referred_user_id:
        raise InvalidReferralCode()

    stmt = (
        upsert(db, Referral)
        .values(referrer_id=referrer_id, referred_user_id=referred_user_id, created_at=now)
        .on_conflict_do_nothing(index_elements=[Referral.referred_user_id])
        .returning(Referral.id)
    )
    if (await db.execute(stmt)).scalar_one_or_none() is None:
        raise AlreadyReferred()

    logger.info("referral_tracked", referrer_id=referrer_id, referred_user_id=referred_user_id)
    return referrer_id


async def count_referrals(db: AsyncSession, user_id: int) -> int:
    """Distinct users attributed to ``user_id``."""
    result = await db.execute(
        select(func.count(func.distinct(Referral.referred_user_id))).where(Referral.referrer_id == user_id)
    )
    return int(result.scalar_one())


async def get_granted_tiers(db: AsyncSession, user_id: int) -> list[ReferralRewardGrant]:
    result = await db.execute(
        select(ReferralRewardGrant)
        .where(ReferralRewardGrant.user_id == user_id)
        .order_by(ReferralRewardGrant.granted_at, ReferralRewardGrant.id)
    )
    return list(result.scalars().all())


async def get_referral_state(db: AsyncSession, user_id: int) -> ReferralState:
    """Code, referral count, and granted tiers for ``user_id``."""
    code = await db.execute(select(User.referral_code).where(User.id == user_id))
    grants = await get_granted_tiers(db, user_id)
    return ReferralState(
        referral_code=code.scalar_one_or_none(),
        count=await count_referrals(db, user_id),
        granted_tiers=[g.tier_slug for g in grants],
    )


async def grant_tier(
    db: AsyncSession,
    user_id: int,
    slug: str,
    now: datetime | None = None,
) -> bool:
    """Record a tier grant. True only when this call created the row."""
    if slug not in REFERRAL_TIERS_BY_SLUG:
        raise ValueError(f"Unknown referral tier: {slug}")
    if now is None:
        now = datetime.now(timezone.utc)

    stmt = (
        upsert(db, ReferralRewardGrant)
        .values(user_id=user_id, tier_slug=slug, granted_at=now)
        .on_conflict_do_nothing(
            index_elements=[ReferralRewardGrant.user_id, ReferralRewardGrant.tier_slug],
        )
        .returning(ReferralRewardGrant.id)
    )
    return (await db.execute(stmt)).scalar_one_or_none() is not None

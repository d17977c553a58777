"""Badge catalog reads and duplicate-proof awarding."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from coursepath.database import upsert
from coursepath.db.models import BadgeDefinition, UserBadge

logger = logging.getLogger(__name__)


async def get_catalog(db: AsyncSession) -> list[BadgeDefinition]:
    """Active badge definitions in evaluation order."""
    result = await db.execute(
        select(BadgeDefinition)
        .where(BadgeDefinition.is_active.is_(True))
        .order_by(BadgeDefinition.sort_order, BadgeDefinition.id)
    )
    return list(result.scalars().all())


async def get_badge_by_slug(db: AsyncSession, slug: str) -> BadgeDefinition | None:
    """Fetch a badge definition by slug."""
    result = await db.execute(
        select(BadgeDefinition).where(BadgeDefinition.slug == slug)
    )
    return result.scalar_one_or_none()


async def get_user_badges(db: AsyncSession, user_id: int) -> list[UserBadge]:
    """Badges earned by a user, oldest first."""
    result = await db.execute(
        select(UserBadge)
        .where(UserBadge.user_id == user_id)
        .order_by(UserBadge.earned_at, UserBadge.id)
    )
    return list(result.scalars().unique().all())


async def get_earned_slugs(db: AsyncSession, user_id: int) -> set[str]:
    result = await db.execute(
        select(BadgeDefinition.slug)
        .join(UserBadge, UserBadge.badge_id == BadgeDefinition.id)
        .where(UserBadge.user_id == user_id)
    )
    return set(result.scalars().all())


async def award_badge(
    db: AsyncSession,
    user_id: int,
    badge: BadgeDefinition,
    now: datetime | None = None,
) -> bool:
    """Insert the badge for ``user_id`` unless it is already there.

    Returns True only when this call created the row. The UNIQUE(user_id,
    badge_id) constraint decides races; the loser sees no returned row.
    """
    if now is None:
        now = datetime.now(timezone.utc)

    stmt = (
        upsert(db, UserBadge)
        .values(user_id=user_id, badge_id=badge.id, earned_at=now)
        .on_conflict_do_nothing(index_elements=[UserBadge.user_id, UserBadge.badge_id])
        .returning(UserBadge.id)
    )
    inserted = (await db.execute(stmt)).scalar_one_or_none()
    if inserted is None:
        logger.debug("Badge %s already held by user %s", badge.slug, user_id)
        return False
    return True

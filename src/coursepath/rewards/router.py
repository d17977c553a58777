"""Badge endpoints — catalog and the caller's earned badges."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from coursepath.auth.dependencies import get_current_user
from coursepath.database import get_session
from coursepath.db.models import User
from coursepath.rewards.badge_service import get_catalog, get_user_badges
from coursepath.rewards.schemas import (
    AllBadgesResponse,
    BadgeDefinitionResponse,
    EarnedBadgeResponse,
    UserBadgesResponse,
)

router = APIRouter(prefix="/api/v1", tags=["Badges"])


# ── Public endpoints ──


@router.get("/badges", response_model=AllBadgesResponse)
async def list_badges(db: AsyncSession = Depends(get_session)):
    """Get all active badge definitions in catalog order."""
    badges = await get_catalog(db)
    return AllBadgesResponse(
        badges=[
            BadgeDefinitionResponse(
                slug=b.slug,
                name=b.name,
                description=b.description,
                icon=b.icon,
                trigger_type=b.trigger_type,
                sort_order=b.sort_order,
            )
            for b in badges
        ]
    )


# ── Authenticated endpoints ──


@router.get("/badges/user", response_model=UserBadgesResponse)
async def get_my_badges(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Get current user's earned badges."""
    earned = await get_user_badges(db, user.id)
    catalog = await get_catalog(db)

    return UserBadgesResponse(
        earned=[
            EarnedBadgeResponse(
                slug=ub.badge.slug,
                name=ub.badge.name,
                description=ub.badge.description,
                icon=ub.badge.icon,
                earned_at=ub.earned_at,
            )
            for ub in earned
        ],
        total_available=len(catalog),
        total_earned=len(earned),
    )

"""Reward catalogs — badge seed data and referral reward tiers.

Catalog order (``sort_order`` for badges, list order for tiers) is the
evaluation order, so simultaneous unlocks are always reported the same way.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession

from coursepath.database import upsert
from coursepath.db.models import BadgeDefinition

logger = logging.getLogger(__name__)

BADGE_SEED_DATA: list[dict] = [
    # Day milestones
    {
        "slug": "first_steps",
        "name": "First Steps",
        "description": "Completed Day 1: chose your idea",
        "icon": "\U0001F3AF",
        "trigger_type": "days_completed",
        "trigger_config": {"through_day": 1},
        "sort_order": 1,
    },
    {
        "slug": "planner",
        "name": "Planner",
        "description": "Completed Week 1: Idea & Planning (Days 1-7)",
        "icon": "\U0001F50D",
        "trigger_type": "days_completed",
        "trigger_config": {"through_day": 7},
        "sort_order": 2,
    },
    {
        "slug": "builder",
        "name": "Builder",
        "description": "Completed Build & Verify (Days 1-10)",
        "icon": "\U0001F3D7",
        "trigger_type": "days_completed",
        "trigger_config": {"through_day": 10},
        "sort_order": 3,
    },
    {
        "slug": "tester",
        "name": "Tester",
        "description": "Completed Make It Work (Days 1-14)",
        "icon": "\U0001F9EA",
        "trigger_type": "days_completed",
        "trigger_config": {"through_day": 14},
        "sort_order": 4,
    },
    {
        "slug": "integrator",
        "name": "Integrator",
        "description": "Completed Infrastructure (Days 1-18)",
        "icon": "\u26A1",
        "trigger_type": "days_completed",
        "trigger_config": {"through_day": 18},
        "sort_order": 5,
    },
    {
        "slug": "launch_ready",
        "name": "Launch Ready",
        "description": "Completed Polish & Launch Prep (Days 1-20)",
        "icon": "\u2728",
        "trigger_type": "days_completed",
        "trigger_config": {"through_day": 20},
        "sort_order": 6,
    },
    {
        "slug": "the_launcher",
        "name": "The Launcher",
        "description": "Completed every day of the challenge",
        "icon": "\U0001F680",
        "trigger_type": "challenge_complete",
        "trigger_config": {},
        "sort_order": 7,
    },
    # Consistency
    {
        "slug": "on_fire",
        "name": "On Fire!",
        "description": "7-day streak",
        "icon": "\U0001F525",
        "trigger_type": "streak",
        "trigger_config": {"streak": 7},
        "sort_order": 8,
    },
    {
        "slug": "unstoppable",
        "name": "Unstoppable",
        "description": "14-day streak",
        "icon": "\u26A1",
        "trigger_type": "streak",
        "trigger_config": {"streak": 14},
        "sort_order": 9,
    },
    {
        "slug": "elite_consistency",
        "name": "Elite Consistency",
        "description": "21-day streak",
        "icon": "\U0001F48E",
        "trigger_type": "streak",
        "trigger_config": {"streak": 21},
        "sort_order": 10,
    },
    {
        "slug": "perfect_run",
        "name": "Perfect Run",
        "description": "Finished the whole challenge without missing a single day",
        "icon": "\U0001F3C6",
        "trigger_type": "perfect_run",
        "trigger_config": {},
        "sort_order": 11,
    },
]


@dataclass(frozen=True)
class ReferralTier:
    slug: str
    name: str
    threshold: int
    description: str


REFERRAL_TIERS: list[ReferralTier] = [
    ReferralTier(
        slug="launch_checklist",
        name="Launch Checklist",
        threshold=1,
        description="47-point checklist covering everything from DNS setup to payment testing",
    ),
    ReferralTier(
        slug="marketing_prompts",
        name="Marketing Prompt Pack",
        threshold=3,
        description="25+ prompts for landing pages, email sequences, ad copy, and social posts",
    ),
    ReferralTier(
        slug="critique_video",
        name="Custom Critique Video",
        threshold=5,
        description="A personal video review of your app, sales page, and positioning",
    ),
    ReferralTier(
        slug="coaching_call",
        name="1-Hour Coaching Call",
        threshold=10,
        description="Private 1:1 call to work through your biggest challenges",
    ),
]

REFERRAL_TIERS_BY_SLUG: dict[str, ReferralTier] = {t.slug: t for t in REFERRAL_TIERS}


async def seed_badges(db: AsyncSession) -> int:
    """Upsert every badge definition. Returns number of badges seeded."""
    seeded = 0
    for badge_data in BADGE_SEED_DATA:
        stmt = upsert(db, BadgeDefinition).values(**badge_data)
        stmt = stmt.on_conflict_do_update(
            index_elements=["slug"],
            set_={
                "name": stmt.excluded.name,
                "description": stmt.excluded.description,
                "icon": stmt.excluded.icon,
                "trigger_type": stmt.excluded.trigger_type,
                "trigger_config": stmt.excluded.trigger_config,
                "sort_order": stmt.excluded.sort_order,
            },
        )
        await db.execute(stmt)
        seeded += 1

    await db.commit()
    logger.info("Seeded %d badge definitions", seeded)
    return seeded

"""User lookups and entitlement flag updates.

Entitlement flags are set by the payment collaborator; the progress engine
only reads them.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import TYPE_CHECKING

import structlog
from sqlalchemy import select

from coursepath.db.models import User

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

logger = structlog.get_logger()

ENTITLEMENT_FLAGS = frozenset({"all_days_unlocked", "coaching_purchased"})


async def get_user_by_id(db: AsyncSession, user_id: int) -> User | None:
    """Fetch a user by primary key."""
    result = await db.execute(select(User).where(User.id == user_id))
    return result.scalar_one_or_none()


async def get_user_by_email(db: AsyncSession, email: str) -> User | None:
    result = await db.execute(select(User).where(User.email == email.lower()))
    return result.scalar_one_or_none()


async def get_or_create_user(
    db: AsyncSession,
    email: str,
    *,
    display_name: str | None = None,
    timezone_name: str | None = None,
    is_admin: bool = False,
) -> tuple[User, bool]:
    """
    Get the user with ``email`` or create one.

    Returns:
        Tuple of (user, created).
    """
    user = await get_user_by_email(db, email)
    if user is not None:
        return user, False

    user = User(
        email=email.lower(),
        display_name=display_name,
        timezone=timezone_name,
        is_admin=is_admin,
        created_at=datetime.now(timezone.utc),
    )
    db.add(user)
    await db.flush()
    logger.info("user_created", user_id=user.id)
    return user, True


async def grant_entitlement(db: AsyncSession, user: User, flag: str) -> User:
    """
    Flip a purchase flag on. Flags are never turned off here.

    Raises:
        ValueError: If ``flag`` is not an entitlement flag.
    """
    if flag not in ENTITLEMENT_FLAGS:
        msg = f"Unknown entitlement flag: {flag}"
        raise ValueError(msg)
    setattr(user, flag, True)
    await db.flush()
    logger.info("entitlement_granted", user_id=user.id, flag=flag)
    return user

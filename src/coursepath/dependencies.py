"""Shared FastAPI dependencies."""

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from coursepath.config import Settings, get_settings
from coursepath.database import get_session as _get_session
from coursepath.progress.orchestrator import CompletionOrchestrator
from coursepath.redis_client import get_optional_redis

get_db = _get_session


def get_orchestrator(
    db: AsyncSession = Depends(get_db),  # noqa: B008
    settings: Settings = Depends(get_settings),  # noqa: B008
) -> CompletionOrchestrator:
    """Orchestrator bound to the request's session; Redis may be absent."""
    return CompletionOrchestrator(db, get_optional_redis(), settings)

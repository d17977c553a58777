"""Progress router — all /api/v1/progress/* endpoints plus /stats."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from coursepath.auth.dependencies import get_current_user
from coursepath.config import Settings, get_settings
from coursepath.database import get_session
from coursepath.db.models import User
from coursepath.dependencies import get_orchestrator
from coursepath.progress.exceptions import NotUnlocked
from coursepath.progress.ledger import get_entry, list_entries, load_snapshot, save_draft
from coursepath.progress.orchestrator import CompletionOrchestrator
from coursepath.progress.schemas import (
    CompletionRequest,
    CompletionResponse,
    DayAccessResponse,
    DraftRequest,
    ProgressEntryResponse,
    ProgressListResponse,
    ProgressOverviewResponse,
    StreakSnapshot,
)
from coursepath.progress.unlock_policy import accessible_days, is_accessible

router = APIRouter(prefix="/api/v1", tags=["Progress"])


@router.get("/progress", response_model=ProgressListResponse)
async def get_progress(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
    settings: Settings = Depends(get_settings),
) -> ProgressListResponse:
    """All progress rows for the caller, ordered by day."""
    entries = await list_entries(db, user.id)
    return ProgressListResponse(
        entries=[ProgressEntryResponse.model_validate(e) for e in entries],
        challenge_length=settings.challenge_length,
    )


@router.get("/progress/days", response_model=DayAccessResponse)
async def get_day_access(
    preview: bool = Query(False),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
    settings: Settings = Depends(get_settings),
) -> DayAccessResponse:
    """Lock map for every day of the challenge."""
    snapshot = await load_snapshot(db, user.id)
    return DayAccessResponse(
        challenge_length=settings.challenge_length,
        days=accessible_days(user, snapshot, challenge_length=settings.challenge_length, preview=preview),
    )


@router.get("/progress/overview", response_model=ProgressOverviewResponse)
async def get_overview(
    preview: bool = Query(False),
    user: User = Depends(get_current_user),
    orchestrator: CompletionOrchestrator = Depends(get_orchestrator),
) -> ProgressOverviewResponse:
    """Streak, lock map, and completed days in one call."""
    return await orchestrator.get_overview(user, preview=preview)


@router.get("/progress/{day}", response_model=ProgressEntryResponse)
async def get_day(
    day: int,
    preview: bool = Query(False),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
    settings: Settings = Depends(get_settings),
) -> ProgressEntryResponse:
    """Entry for one day; 403 while the day is locked."""
    snapshot = await load_snapshot(db, user.id)
    if not is_accessible(user, snapshot, day, challenge_length=settings.challenge_length, preview=preview):
        raise NotUnlocked(day)

    entry = await get_entry(db, user.id, day)
    if entry is None:
        return ProgressEntryResponse(day=day, completed=False)
    return ProgressEntryResponse.model_validate(entry)


@router.post("/progress/complete/{day}", response_model=CompletionResponse)
async def complete_day(
    day: int,
    body: CompletionRequest | None = None,
    user: User = Depends(get_current_user),
    orchestrator: CompletionOrchestrator = Depends(get_orchestrator),
) -> CompletionResponse:
    """Mark a day completed. Repeating a completed day returns 200 with already_completed."""
    body = body or CompletionRequest()
    result = await orchestrator.complete_day(user, day, body.answers, preview=body.preview)
    return CompletionResponse(
        entry=ProgressEntryResponse.model_validate(result.entry),
        streak=result.streak,
        new_rewards=[r.to_response() for r in result.new_rewards],
        already_completed=result.already_completed,
    )


@router.put("/progress/{day}/draft", response_model=ProgressEntryResponse)
async def put_draft(
    day: int,
    body: DraftRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
    settings: Settings = Depends(get_settings),
) -> ProgressEntryResponse:
    """Save answers for a day that is not completed yet."""
    snapshot = await load_snapshot(db, user.id)
    entry = await save_draft(
        db, user, day, body.answers,
        snapshot=snapshot,
        challenge_length=settings.challenge_length,
        max_answer_chars=settings.max_answer_chars,
    )
    await db.commit()
    return ProgressEntryResponse.model_validate(entry)


@router.get("/stats", response_model=StreakSnapshot)
async def get_stats(
    user: User = Depends(get_current_user),
    orchestrator: CompletionOrchestrator = Depends(get_orchestrator),
) -> StreakSnapshot:
    """Streak and days-completed statistics (served from cache when warm)."""
    return await orchestrator.get_streak(user)

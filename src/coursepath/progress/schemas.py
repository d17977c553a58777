"""Pydantic request/response models for progress endpoints."""

from __future__ import annotations

from datetime import date, datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict


# --- Requests ---


class AnswerPayload(BaseModel):
    """Per-day answers. Stored verbatim; the engine only checks size."""

    selected_suggestion: int | None = None
    micro_decision_choice: str | None = None
    reflection_answer: str | None = None
    user_inputs: dict[str, Any] | None = None


class CompletionRequest(BaseModel):
    answers: AnswerPayload | None = None
    preview: bool = False


class DraftRequest(BaseModel):
    answers: AnswerPayload


# --- Responses ---


class ProgressEntryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    day: int
    completed: bool
    completed_at: datetime | None = None
    selected_suggestion: int | None = None
    micro_decision_choice: str | None = None
    reflection_answer: str | None = None
    user_inputs: dict[str, Any] | None = None


class StreakSnapshot(BaseModel):
    current_streak: int = 0
    longest_streak: int = 0
    days_completed: int = 0
    last_completed_day: int | None = None
    last_activity_date: date | None = None


class RewardResponse(BaseModel):
    kind: Literal["badge", "referral_tier"]
    slug: str
    name: str
    description: str
    earned_at: datetime


class CompletionResponse(BaseModel):
    entry: ProgressEntryResponse
    streak: StreakSnapshot
    new_rewards: list[RewardResponse]
    already_completed: bool = False


class ProgressListResponse(BaseModel):
    entries: list[ProgressEntryResponse]
    challenge_length: int


class DayAccessResponse(BaseModel):
    challenge_length: int
    days: dict[int, bool]


class ProgressOverviewResponse(BaseModel):
    challenge_length: int
    streak: StreakSnapshot
    days: dict[int, bool]
    completed_days: list[int]

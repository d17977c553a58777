"""Pydantic request/response models for referral endpoints."""

from __future__ import annotations

from pydantic import BaseModel, Field


class TrackReferralRequest(BaseModel):
    referral_code: str = Field(min_length=1, max_length=16)


class TrackReferralResponse(BaseModel):
    tracked: bool = True


class ReferralTierResponse(BaseModel):
    slug: str
    name: str
    threshold: int
    description: str
    unlocked: bool


class ReferralStateResponse(BaseModel):
    referral_code: str
    count: int
    highest_tier_granted: str | None = None
    granted_tiers: list[str]
    tiers: list[ReferralTierResponse]

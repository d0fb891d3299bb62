"""Pydantic models for badge endpoints."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel


class AwardBadgeRequest(BaseModel):
    user_id: str
    badge_key: str


class BadgeResponse(BaseModel):
    key: str
    name: str
    description: str


class EarnedBadgeResponse(BaseModel):
    id: int
    user_id: str
    badge_key: str
    earned_at: datetime
    badge: BadgeResponse | None = None

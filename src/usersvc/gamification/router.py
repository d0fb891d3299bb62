"""Badge endpoints: listing for users, awarding for internal services."""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from usersvc.auth.dependencies import get_current_user, require_service_token
from usersvc.database import get_session
from usersvc.db.models import User, UserBadge
from usersvc.errors import UserNotFoundError
from usersvc.gamification.badge_service import award_badge, get_badges_for_user
from usersvc.gamification.schemas import AwardBadgeRequest, BadgeResponse, EarnedBadgeResponse
from usersvc.users.service import get_by_id

router = APIRouter(tags=["Gamification"])


def _earned_badge_response(grant: UserBadge) -> EarnedBadgeResponse:
    badge = grant.badge
    return EarnedBadgeResponse(
        id=grant.id,
        user_id=str(grant.user_id),
        badge_key=grant.badge_key,
        earned_at=grant.earned_at,
        badge=BadgeResponse(key=badge.key, name=badge.name, description=badge.description) if badge else None,
    )


def _parse_user_id(raw: str) -> uuid.UUID:
    try:
        return uuid.UUID(raw)
    except ValueError as e:
        raise HTTPException(status_code=400, detail="invalid user id") from e


# ── User endpoints ──


@router.get("/users/me/badges", response_model=list[EarnedBadgeResponse])
async def my_badges(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> list[EarnedBadgeResponse]:
    """Badges earned by the caller, earliest first."""
    grants = await get_badges_for_user(db, user.id)
    return [_earned_badge_response(g) for g in grants]


@router.get("/users/id/{user_id}/badges", response_model=list[EarnedBadgeResponse])
async def user_badges(
    user_id: str,
    _user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> list[EarnedBadgeResponse]:
    """Badges earned by any user, earliest first."""
    target_id = _parse_user_id(user_id)
    try:
        await get_by_id(db, target_id)
    except UserNotFoundError as e:
        raise HTTPException(status_code=404, detail="user not found") from e
    grants = await get_badges_for_user(db, target_id)
    return [_earned_badge_response(g) for g in grants]


# ── Internal endpoints ──


@router.post("/internal/badges/award", dependencies=[Depends(require_service_token)])
async def award(
    body: AwardBadgeRequest,
    db: AsyncSession = Depends(get_session),
) -> dict[str, str]:
    """Award a badge on behalf of another service. Already-held badges also answer ok; unknown users get 404."""
    user_id = _parse_user_id(body.user_id)
    if not body.badge_key:
        raise HTTPException(status_code=400, detail="badge_key is required")
    try:
        await get_by_id(db, user_id)
    except UserNotFoundError as e:
        raise HTTPException(status_code=404, detail="user not found") from e
    await award_badge(db, user_id, body.badge_key)
    await db.commit()
    return {"status": "ok"}

"""Preference endpoints for the caller and for internal services."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Body, Depends, HTTPException
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from usersvc.auth.dependencies import get_current_user, require_service_token
from usersvc.database import get_session
from usersvc.db.models import NotificationSettings, User
from usersvc.errors import UserNotFoundError
from usersvc.preferences import service as prefs
from usersvc.preferences.schemas import (
    ChannelSettings,
    DiscoveryPreferencesRequest,
    DiscoveryPreferencesResponse,
    InterestItem,
    InterestsResponse,
    InterestsUpdateRequest,
    NotificationSettingsGroups,
    NotificationSettingsPatch,
    NotificationSettingsResponse,
)
from usersvc.users.service import get_by_email

router = APIRouter(prefix="/users/me", tags=["Preferences"])
internal_router = APIRouter(prefix="/internal/users", tags=["Internal"], dependencies=[Depends(require_service_token)])


def _settings_response(settings: NotificationSettings, include_system: bool) -> NotificationSettingsResponse:
    groups = NotificationSettingsGroups(
        like=ChannelSettings(email=settings.like_email, push=settings.like_push),
        favorite=ChannelSettings(email=settings.favorite_email, push=settings.favorite_push),
        chat_message=ChannelSettings(email=settings.chat_email, push=settings.chat_push),
        system_alert=(
            ChannelSettings(email=settings.system_email, push=settings.system_push) if include_system else None
        ),
    )
    return NotificationSettingsResponse(settings=groups, expo_push_token=settings.expo_push_token)


async def _require_user(db: AsyncSession, email: str) -> None:
    try:
        await get_by_email(db, email)
    except UserNotFoundError as e:
        raise HTTPException(status_code=404, detail="user not found") from e


# ---------------------------------------------------------------------------
# Notification settings
# ---------------------------------------------------------------------------


@router.get("/notification-settings", response_model=NotificationSettingsResponse, response_model_exclude_none=True)
async def get_my_notification_settings(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> NotificationSettingsResponse:
    settings = await prefs.get_notification_settings(db, user.email)
    await db.commit()
    return _settings_response(settings, include_system=False)


@router.put("/notification-settings", response_model=NotificationSettingsResponse, response_model_exclude_none=True)
async def update_my_notification_settings(
    body: dict[str, Any] = Body(...),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> NotificationSettingsResponse:
    """Merge the provided channel switches. System alert channels are read-only."""
    try:
        patch = NotificationSettingsPatch.model_validate(body).model_dump(exclude_unset=True)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail="invalid input") from e

    try:
        settings = await prefs.update_notification_settings(db, user.email, patch)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    await db.commit()
    return _settings_response(settings, include_system=False)


# ---------------------------------------------------------------------------
# Discovery preferences
# ---------------------------------------------------------------------------


@router.get("/discovery-preferences", response_model=DiscoveryPreferencesResponse)
async def get_my_discovery_preferences(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> DiscoveryPreferencesResponse:
    preferences = await prefs.get_discovery_preferences(db, user.email)
    await db.commit()
    return DiscoveryPreferencesResponse(email=user.email, radius_km=preferences.radius_km)


@router.put("/discovery-preferences", response_model=DiscoveryPreferencesResponse)
async def update_my_discovery_preferences(
    body: DiscoveryPreferencesRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> DiscoveryPreferencesResponse:
    try:
        preferences = await prefs.update_discovery_radius(db, user.email, body.radius_km)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    await db.commit()
    return DiscoveryPreferencesResponse(email=user.email, radius_km=preferences.radius_km)


# ---------------------------------------------------------------------------
# Interests
# ---------------------------------------------------------------------------


@router.get("/interests", response_model=InterestsResponse)
async def get_my_interests(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> InterestsResponse:
    items = await prefs.list_interests_for_user(db, user.email)
    return InterestsResponse(email=user.email, interests=[InterestItem(**i) for i in items])


@router.put("/interests", response_model=InterestsResponse)
async def update_my_interests(
    body: InterestsUpdateRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> InterestsResponse:
    pairs = [(item.id, item.value) for item in body.interests]
    try:
        items = await prefs.update_interests_for_user(db, user.email, pairs)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    await db.commit()
    return InterestsResponse(email=user.email, interests=[InterestItem(**i) for i in items])


# ---------------------------------------------------------------------------
# Internal
# ---------------------------------------------------------------------------


@internal_router.get("/{email}/notification-settings", response_model=NotificationSettingsResponse)
async def internal_notification_settings(
    email: str,
    db: AsyncSession = Depends(get_session),
) -> NotificationSettingsResponse:
    """Full settings including system alert channels."""
    await _require_user(db, email)
    settings = await prefs.get_notification_settings(db, email)
    await db.commit()
    return _settings_response(settings, include_system=True)


@internal_router.get("/{email}/discovery-preferences", response_model=DiscoveryPreferencesResponse)
async def internal_discovery_preferences(
    email: str,
    db: AsyncSession = Depends(get_session),
) -> DiscoveryPreferencesResponse:
    await _require_user(db, email)
    preferences = await prefs.get_discovery_preferences(db, email)
    await db.commit()
    return DiscoveryPreferencesResponse(email=email, radius_km=preferences.radius_km)


@internal_router.get("/{email}/interests", response_model=InterestsResponse)
async def internal_interests(
    email: str,
    db: AsyncSession = Depends(get_session),
) -> InterestsResponse:
    items = await prefs.list_interests_for_user(db, email)
    return InterestsResponse(email=email, interests=[InterestItem(**i) for i in items])

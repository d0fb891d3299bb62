"""User profile router: registration, profile, photo and lookups."""

from __future__ import annotations

from datetime import timedelta

import structlog
from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
from sqlalchemy.ext.asyncio import AsyncSession

from usersvc.auth.dependencies import get_current_subject, get_current_user, require_service_token
from usersvc.config import get_settings
from usersvc.database import get_session
from usersvc.db.models import User
from usersvc.dependencies import get_identity_provider, get_object_store
from usersvc.errors import (
    EmailAlreadyExistsError,
    IdentityProviderError,
    StorageError,
    UserNotFoundError,
)
from usersvc.gamification.badge_service import (
    BADGE_PROFILE_COMPLETE,
    BADGE_PROFILE_PHOTO_UPLOADED,
    award_best_effort,
)
from usersvc.identity.keycloak import BaseIdentityProvider
from usersvc.storage.s3 import BaseObjectStore, profile_photo_key
from usersvc.users import service as users
from usersvc.users.schemas import (
    PresignedUrlResponse,
    ProfilePhotoUploadResponse,
    ProfileUpdateRequest,
    PublicUserResponse,
    RegisterRequest,
    UserResponse,
)

logger = structlog.get_logger()

router = APIRouter(tags=["Users"])
internal_router = APIRouter(prefix="/internal", tags=["Internal"], dependencies=[Depends(require_service_token)])


# ---------------------------------------------------------------------------
# Registration
# ---------------------------------------------------------------------------


@router.post("/users/register", response_model=UserResponse, status_code=201)
async def register(
    body: RegisterRequest,
    db: AsyncSession = Depends(get_session),
    identity_provider: BaseIdentityProvider = Depends(get_identity_provider),
) -> UserResponse:
    """Create the account at the identity provider and the local profile."""
    try:
        user = await users.register_user(db, identity_provider, **body.model_dump())
    except EmailAlreadyExistsError as e:
        raise HTTPException(status_code=409, detail="email already in use") from e
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    except IdentityProviderError as e:
        raise HTTPException(status_code=502, detail="identity provider unavailable, try again") from e

    await db.commit()
    return UserResponse.model_validate(user)


# ---------------------------------------------------------------------------
# Own profile
# ---------------------------------------------------------------------------


@router.put("/users/me", response_model=UserResponse)
async def update_me(
    body: ProfileUpdateRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> UserResponse:
    """Apply the provided profile fields and award the completion badge when earned."""
    patch = body.model_dump(exclude_unset=True)
    await users.update_fields(db, user, patch)
    await db.commit()

    response = UserResponse.model_validate(user)
    if users.is_profile_complete(user):
        await award_best_effort(db, user.id, BADGE_PROFILE_COMPLETE)
    return response


@router.post("/users/me/profile-photo", response_model=ProfilePhotoUploadResponse)
async def upload_profile_photo(
    file: UploadFile = File(...),
    subject: str = Depends(get_current_subject),
    db: AsyncSession = Depends(get_session),
    store: BaseObjectStore = Depends(get_object_store),
) -> ProfilePhotoUploadResponse:
    """Store a jpeg/png/webp profile photo (max 5 MiB) and award the photo badge."""
    max_bytes = get_settings().profile_photo_max_bytes

    try:
        key = profile_photo_key(subject, file.content_type or "")
    except ValueError as e:
        raise HTTPException(status_code=400, detail="unsupported content type") from e

    data = await file.read(max_bytes + 1)
    if len(data) > max_bytes:
        raise HTTPException(status_code=400, detail=f"file too large (max {max_bytes // (1024 * 1024)}MB)")

    try:
        await users.get_by_subject(db, subject)
    except UserNotFoundError as e:
        raise HTTPException(status_code=404, detail="user not found") from e

    try:
        await store.put_object(key, data, file.content_type or "")
    except StorageError as e:
        raise HTTPException(status_code=502, detail="storage unavailable, try again") from e

    public_url = store.public_url(key)
    user = await users.update_profile_photo_url(db, subject, public_url)
    await db.commit()
    logger.info("profile_photo_uploaded", user_id=str(user.id), key=key)

    user_id = user.id
    complete = users.is_profile_complete(user)
    await award_best_effort(db, user_id, BADGE_PROFILE_PHOTO_UPLOADED)
    if complete:
        await award_best_effort(db, user_id, BADGE_PROFILE_COMPLETE)

    return ProfilePhotoUploadResponse(message="profile picture uploaded", public_url=public_url)


@router.get("/users/me/profile-photo/url", response_model=PresignedUrlResponse)
async def profile_photo_url(
    user: User = Depends(get_current_user),
    store: BaseObjectStore = Depends(get_object_store),
) -> PresignedUrlResponse:
    """Short-lived download URL for the caller's profile photo."""
    if not user.profile_photo_url.strip():
        raise HTTPException(status_code=404, detail="no profile photo")

    try:
        key = store.key_from_public_url(user.profile_photo_url)
    except ValueError as e:
        logger.error("profile_photo_url_foreign", user_id=str(user.id))
        raise HTTPException(status_code=500, detail="profile photo url does not match storage") from e

    expires = timedelta(minutes=get_settings().profile_photo_url_expire_minutes)
    try:
        url = await store.presign_get(key, expires)
    except StorageError as e:
        raise HTTPException(status_code=502, detail="storage unavailable, try again") from e
    return PresignedUrlResponse(url=url)


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------


@router.get("/users/keycloak/{sub}", response_model=UserResponse)
async def get_by_keycloak_subject(
    sub: str,
    _subject: str = Depends(get_current_subject),
    db: AsyncSession = Depends(get_session),
) -> UserResponse:
    try:
        user = await users.get_by_subject(db, sub)
    except UserNotFoundError as e:
        raise HTTPException(status_code=404, detail="user not found") from e
    return UserResponse.model_validate(user)


# Registered last: two free path segments would shadow /users/me/* and /users/keycloak/*
@router.get("/users/{first_name}/{last_name}", response_model=PublicUserResponse)
async def get_by_name(
    first_name: str,
    last_name: str,
    _subject: str = Depends(get_current_subject),
    db: AsyncSession = Depends(get_session),
) -> PublicUserResponse:
    """Public contact info by case-insensitive first and last name."""
    try:
        info = await users.get_public_info_by_name(db, first_name, last_name)
    except UserNotFoundError as e:
        raise HTTPException(status_code=404, detail="user not found") from e
    return PublicUserResponse(**info)


# ---------------------------------------------------------------------------
# Internal
# ---------------------------------------------------------------------------


@internal_router.get("/users/{email}", response_model=UserResponse)
async def internal_get_by_email(
    email: str,
    db: AsyncSession = Depends(get_session),
) -> UserResponse:
    try:
        user = await users.get_by_email(db, email)
    except UserNotFoundError as e:
        raise HTTPException(status_code=404, detail="user not found") from e
    return UserResponse.model_validate(user)

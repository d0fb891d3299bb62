"""Authentication router: login, token refresh and password reset."""

from __future__ import annotations

from datetime import timedelta

import structlog
from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from usersvc.auth.password import verify_password
from usersvc.auth.reset_service import PasswordResetService
from usersvc.auth.schemas import (
    ForgotPasswordRequest,
    LoginRequest,
    MessageResponse,
    RefreshRequest,
    ResetPasswordRequest,
    TokenResponse,
)
from usersvc.config import get_settings
from usersvc.database import get_session
from usersvc.dependencies import get_identity_provider, get_notifier
from usersvc.errors import (
    IdentityProviderError,
    InvalidResetTokenError,
    PasswordPolicyError,
    ResetInconsistencyError,
    UserNotFoundError,
)
from usersvc.identity.keycloak import BaseIdentityProvider
from usersvc.notifications.client import NotificationClient
from usersvc.users.service import get_by_email

logger = structlog.get_logger()

router = APIRouter(prefix="/auth", tags=["Authentication"])

FORGOT_PASSWORD_MESSAGE = "if the email exists, a reset link will be sent"


def get_reset_service(
    db: AsyncSession = Depends(get_session),
    identity_provider: BaseIdentityProvider = Depends(get_identity_provider),
) -> PasswordResetService:
    ttl = timedelta(minutes=get_settings().password_reset_token_ttl_minutes)
    return PasswordResetService(db, identity_provider, token_ttl=ttl)


# ---------------------------------------------------------------------------
# Login
# ---------------------------------------------------------------------------


@router.post("/login", response_model=TokenResponse)
async def login(
    body: LoginRequest,
    db: AsyncSession = Depends(get_session),
    identity_provider: BaseIdentityProvider = Depends(get_identity_provider),
) -> TokenResponse:
    """Check the local credential, then obtain tokens from the identity provider."""
    if not body.email or not body.password:
        raise HTTPException(status_code=400, detail="invalid request body")

    try:
        user = await get_by_email(db, body.email)
    except UserNotFoundError as e:
        raise HTTPException(status_code=401, detail="invalid email or password") from e

    if not verify_password(body.password, user.password):
        raise HTTPException(status_code=401, detail="invalid email or password")
    if user.is_blocked:
        raise HTTPException(status_code=403, detail="account is blocked")

    try:
        tokens = await identity_provider.get_access_token(body.email, body.password)
    except IdentityProviderError as e:
        logger.warning("login_token_grant_failed", user_id=str(user.id))
        raise HTTPException(status_code=401, detail="authentication failed") from e

    logger.info("login_success", user_id=str(user.id))
    return TokenResponse(**tokens.model_dump())


@router.post("/refresh", response_model=TokenResponse)
async def refresh(
    body: RefreshRequest,
    identity_provider: BaseIdentityProvider = Depends(get_identity_provider),
) -> TokenResponse:
    """Exchange a refresh token for a new token pair."""
    if not body.refresh_token:
        raise HTTPException(status_code=400, detail="refresh_token is required")
    try:
        tokens = await identity_provider.refresh_access_token(body.refresh_token)
    except IdentityProviderError as e:
        raise HTTPException(status_code=401, detail="invalid or expired refresh token") from e
    return TokenResponse(**tokens.model_dump())


# ---------------------------------------------------------------------------
# Password reset
# ---------------------------------------------------------------------------


@router.post("/forgot-password", response_model=MessageResponse)
async def forgot_password(
    body: ForgotPasswordRequest,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_session),
    service: PasswordResetService = Depends(get_reset_service),
    notifier: NotificationClient = Depends(get_notifier),
) -> MessageResponse:
    """Issue a reset token. The response is identical whether or not the account exists."""
    if not body.email:
        raise HTTPException(status_code=400, detail="email is required")

    raw_token = await service.request_reset(body.email)
    await db.commit()

    # Delivered after the response is sent
    background_tasks.add_task(notifier.send_password_reset, body.email, raw_token)

    return MessageResponse(message=FORGOT_PASSWORD_MESSAGE)


@router.post("/reset-password", response_model=MessageResponse)
async def reset_password(
    body: ResetPasswordRequest,
    service: PasswordResetService = Depends(get_reset_service),
) -> MessageResponse:
    """Complete a reset with a valid token."""
    if not body.token or not body.new_password:
        raise HTTPException(status_code=400, detail="token and new_password are required")

    try:
        await service.reset_password(body.token, body.new_password)
    except PasswordPolicyError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    except InvalidResetTokenError as e:
        raise HTTPException(status_code=401, detail=str(e)) from e
    except ResetInconsistencyError as e:
        raise HTTPException(status_code=500, detail="password reset incomplete, try again") from e
    except IdentityProviderError as e:
        raise HTTPException(status_code=502, detail="identity provider unavailable, try again") from e

    return MessageResponse(message="password updated")

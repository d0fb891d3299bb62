"""Request/response schemas for authentication endpoints."""

from __future__ import annotations

from pydantic import BaseModel, Field, field_validator


class LoginRequest(BaseModel):
    """Email + password login."""

    email: str = ""
    password: str = ""


class RefreshRequest(BaseModel):
    refresh_token: str = ""


class TokenResponse(BaseModel):
    """Tokens as issued by the identity provider."""

    access_token: str
    token_type: str
    expires_in: int
    refresh_token: str
    refresh_expires_in: int


# ---------------------------------------------------------------------------
# Password reset
# ---------------------------------------------------------------------------


class ForgotPasswordRequest(BaseModel):
    """Request a password reset token. Missing email is rejected by the route."""

    email: str = Field("", max_length=320)

    @field_validator("email")
    @classmethod
    def strip_email(cls, v: str) -> str:
        return v.strip()


class ResetPasswordRequest(BaseModel):
    """Complete a reset with the raw token from the notification."""

    token: str = ""
    new_password: str = ""


class MessageResponse(BaseModel):
    message: str

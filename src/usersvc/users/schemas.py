"""Request/response schemas for user endpoints."""

from __future__ import annotations

import uuid

from pydantic import BaseModel, ConfigDict, Field


class RegisterRequest(BaseModel):
    """Registration payload. Required fields are checked by the service so the route can answer 400."""

    email: str = Field("", max_length=320)
    password: str = Field("", max_length=1024)
    first_name: str = Field("", max_length=128)
    last_name: str = Field("", max_length=128)
    phone_number: str = Field("", max_length=32)
    phone_number_visible: bool = False
    country: str = Field("", max_length=64)
    job_function: str = Field("", max_length=128)
    sector: str = Field("", max_length=128)
    biography: str = ""


class ProfileUpdateRequest(BaseModel):
    """Partial profile update.

    Only keys present in the request body are applied (see
    ``model_dump(exclude_unset=True)``); sending ``""`` clears a field.
    """

    first_name: str = Field("", max_length=128)
    last_name: str = Field("", max_length=128)
    phone_number: str = Field("", max_length=32)
    phone_number_visible: bool = False
    country: str = Field("", max_length=64)
    job_function: str = Field("", max_length=128)
    sector: str = Field("", max_length=128)
    biography: str = ""
    profile_photo_url: str = ""


class UserResponse(BaseModel):
    """Full profile. The credential hash is never included."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    keycloak_id: str | None
    email: str
    first_name: str
    last_name: str
    phone_number: str
    phone_number_visible: bool
    country: str
    job_function: str
    sector: str
    biography: str
    is_blocked: bool
    profile_photo_url: str


class PublicUserResponse(BaseModel):
    first_name: str
    last_name: str
    email: str


class ProfilePhotoUploadResponse(BaseModel):
    message: str
    public_url: str


class PresignedUrlResponse(BaseModel):
    url: str

"""Request/response schemas for preference endpoints."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict


# --- Notification settings ---


class NotificationSettingsPatch(BaseModel):
    """Partial update. Unknown keys are rejected; absent keys are left alone."""

    model_config = ConfigDict(extra="forbid")

    like_email: bool = True
    like_push: bool = True
    favorite_email: bool = True
    favorite_push: bool = True
    chat_email: bool = True
    chat_push: bool = True
    # Accepted by the parser only so the route can reject them explicitly
    system_email: bool = True
    system_push: bool = False
    expo_push_token: str = ""


class ChannelSettings(BaseModel):
    email: bool
    push: bool


class NotificationSettingsGroups(BaseModel):
    like: ChannelSettings
    favorite: ChannelSettings
    chat_message: ChannelSettings
    system_alert: ChannelSettings | None = None


class NotificationSettingsResponse(BaseModel):
    settings: NotificationSettingsGroups
    expo_push_token: str


# --- Discovery ---


class DiscoveryPreferencesRequest(BaseModel):
    radius_km: int


class DiscoveryPreferencesResponse(BaseModel):
    email: str
    radius_km: int


# --- Interests ---


class InterestItemInput(BaseModel):
    id: int
    value: bool


class InterestsUpdateRequest(BaseModel):
    interests: list[InterestItemInput]


class InterestItem(BaseModel):
    id: int
    key: str
    value: bool


class InterestsResponse(BaseModel):
    email: str
    interests: list[InterestItem]

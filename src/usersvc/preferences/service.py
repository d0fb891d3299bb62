"""Per-user preferences: notification channels, discovery radius and interests."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import structlog
from sqlalchemy import select

from usersvc.db.dialect import upsert_insert
from usersvc.db.models import DiscoveryPreferences, Interest, NotificationSettings, UserInterest

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

logger = structlog.get_logger()

DEFAULT_RADIUS_KM = 50
MIN_RADIUS_KM = 1
MAX_RADIUS_KM = 500

NOTIFICATION_DEFAULTS: dict[str, Any] = {
    "like_email": True,
    "like_push": True,
    "favorite_email": True,
    "favorite_push": True,
    "chat_email": True,
    "chat_push": True,
    "system_email": True,
    "system_push": False,
    "expo_push_token": "",
}

USER_EDITABLE_NOTIFICATION_FIELDS = frozenset({
    "like_email",
    "like_push",
    "favorite_email",
    "favorite_push",
    "chat_email",
    "chat_push",
    "expo_push_token",
})


# ---------------------------------------------------------------------------
# Notification settings
# ---------------------------------------------------------------------------


async def get_notification_settings(db: AsyncSession, email: str) -> NotificationSettings:
    """Get settings for ``email``, creating the defaults on first access."""
    stmt = upsert_insert(db, NotificationSettings).values(user_email=email, **NOTIFICATION_DEFAULTS)
    await db.execute(stmt.on_conflict_do_nothing(index_elements=["user_email"]))
    result = await db.execute(select(NotificationSettings).where(NotificationSettings.user_email == email))
    return result.scalar_one()


def merge_notification_settings(settings: NotificationSettings, patch: dict[str, Any]) -> NotificationSettings:
    """
    Overwrite only the keys present in ``patch``.

    Raises:
        ValueError: If the patch touches system alert channels or unknown fields.
    """
    if "system_email" in patch or "system_push" in patch:
        msg = "system_alert settings cannot be modified"
        raise ValueError(msg)
    unknown = set(patch) - USER_EDITABLE_NOTIFICATION_FIELDS
    if unknown:
        msg = f"unknown fields: {', '.join(sorted(unknown))}"
        raise ValueError(msg)

    for field, value in patch.items():
        if field == "expo_push_token":
            value = value.strip()
        setattr(settings, field, value)
    return settings


async def update_notification_settings(db: AsyncSession, email: str, patch: dict[str, Any]) -> NotificationSettings:
    settings = await get_notification_settings(db, email)
    merge_notification_settings(settings, patch)
    await db.flush()
    logger.info("notification_settings_updated", fields=sorted(patch))
    return settings


# ---------------------------------------------------------------------------
# Discovery preferences
# ---------------------------------------------------------------------------


async def get_discovery_preferences(db: AsyncSession, email: str) -> DiscoveryPreferences:
    """Get preferences for ``email``, creating the default radius on first access."""
    stmt = upsert_insert(db, DiscoveryPreferences).values(email=email, radius_km=DEFAULT_RADIUS_KM)
    await db.execute(stmt.on_conflict_do_nothing(index_elements=["email"]))
    result = await db.execute(select(DiscoveryPreferences).where(DiscoveryPreferences.email == email))
    return result.scalar_one()


async def update_discovery_radius(db: AsyncSession, email: str, radius_km: int) -> DiscoveryPreferences:
    """
    Set the discovery radius.

    Raises:
        ValueError: If the radius is outside 1..500 km.
    """
    if radius_km < MIN_RADIUS_KM or radius_km > MAX_RADIUS_KM:
        msg = f"radius_km must be between {MIN_RADIUS_KM} and {MAX_RADIUS_KM}"
        raise ValueError(msg)

    prefs = await get_discovery_preferences(db, email)
    prefs.radius_km = radius_km
    await db.flush()
    return prefs


# ---------------------------------------------------------------------------
# Interests
# ---------------------------------------------------------------------------


async def list_interests_for_user(db: AsyncSession, email: str) -> list[dict[str, Any]]:
    """Every catalog interest (by id) with the user's value, False when unset."""
    interests = (await db.execute(select(Interest).order_by(Interest.id.asc()))).scalars().all()
    rows = await db.execute(
        select(UserInterest.interest_id, UserInterest.value).where(UserInterest.user_email == email)
    )
    values = {interest_id: value for interest_id, value in rows}
    return [{"id": i.id, "key": i.key, "value": values.get(i.id, False)} for i in interests]


async def update_interests_for_user(
    db: AsyncSession,
    email: str,
    items: list[tuple[int, bool]],
) -> list[dict[str, Any]]:
    """
    Upsert ``(interest_id, value)`` pairs and return the full list.

    Raises:
        ValueError: If an id is not in the catalog.
    """
    known = set((await db.execute(select(Interest.id))).scalars().all())
    unknown = sorted({interest_id for interest_id, _ in items} - known)
    if unknown:
        msg = f"unknown interest ids: {', '.join(str(i) for i in unknown)}"
        raise ValueError(msg)

    for interest_id, value in items:
        stmt = upsert_insert(db, UserInterest).values(user_email=email, interest_id=interest_id, value=value)
        stmt = stmt.on_conflict_do_update(
            index_elements=["user_email", "interest_id"],
            set_={"value": stmt.excluded.value},
        )
        await db.execute(stmt)

    return await list_interests_for_user(db, email)

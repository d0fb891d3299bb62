"""Badge ledger: idempotent awards and per-user listing."""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from usersvc.db.models import Badge, UserBadge

logger = logging.getLogger(__name__)

BADGE_PROFILE_PHOTO_UPLOADED = "profile_photo_uploaded"
BADGE_PROFILE_COMPLETE = "profile_complete"
BADGE_WATCH_50_VIDEOS = "watch_50_videos"
BADGE_SHARE_10_VIDEOS = "share_10_videos"
BADGE_LIKE_25_VIDEOS = "like_25_videos"


async def get_badge_by_key(db: AsyncSession, badge_key: str) -> Badge | None:
    """Fetch a catalog entry by key."""
    result = await db.execute(select(Badge).where(Badge.key == badge_key))
    return result.scalar_one_or_none()


async def has_badge(db: AsyncSession, user_id: uuid.UUID, badge_key: str) -> bool:
    """Check if user already has a specific badge."""
    result = await db.execute(
        select(UserBadge.id).where(
            UserBadge.user_id == user_id,
            UserBadge.badge_key == badge_key,
        )
    )
    return result.first() is not None


async def award_badge(db: AsyncSession, user_id: uuid.UUID, badge_key: str) -> bool:
    """Award a badge to a user.

    Returns True if a grant was created, False if the user already held it.
    A unique violation on insert means a concurrent call won; the session is
    rolled back and False returned. Callers commit their own pending work
    before awarding. Keys missing from the catalog are stored anyway.
    """
    if await has_badge(db, user_id, badge_key):
        return False

    if await get_badge_by_key(db, badge_key) is None:
        logger.warning("Awarding badge key not in catalog: %s", badge_key)

    user_badge = UserBadge(
        user_id=user_id,
        badge_key=badge_key,
        earned_at=datetime.now(timezone.utc),
    )
    db.add(user_badge)

    try:
        await db.flush()
    except IntegrityError:
        await db.rollback()
        # Only the (user_id, badge_key) duplicate is absorbed
        if await has_badge(db, user_id, badge_key):
            return False  # Race condition: badge already awarded
        raise

    logger.info("Badge awarded: user=%s badge=%s", user_id, badge_key)
    return True


async def get_badges_for_user(db: AsyncSession, user_id: uuid.UUID) -> list[UserBadge]:
    """All grants for a user, earliest first, with catalog metadata joined."""
    result = await db.execute(
        select(UserBadge)
        .where(UserBadge.user_id == user_id)
        .order_by(UserBadge.earned_at.asc(), UserBadge.id.asc())
    )
    return list(result.scalars().unique().all())


async def award_best_effort(db: AsyncSession, user_id: uuid.UUID, badge_key: str) -> bool:
    """Award and commit, logging instead of raising on failure.

    Used from profile and photo handlers where a failed award must not fail
    the request.
    """
    try:
        awarded = await award_badge(db, user_id, badge_key)
        await db.commit()
    except Exception:
        logger.warning("Badge award failed: user=%s badge=%s", user_id, badge_key, exc_info=True)
        await db.rollback()
        return False
    return awarded

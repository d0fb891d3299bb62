"""Badge catalog seed data."""

from __future__ import annotations

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from usersvc.db.dialect import upsert_insert
from usersvc.db.models import Badge
from usersvc.gamification.badge_service import (
    BADGE_LIKE_25_VIDEOS,
    BADGE_PROFILE_COMPLETE,
    BADGE_PROFILE_PHOTO_UPLOADED,
    BADGE_SHARE_10_VIDEOS,
    BADGE_WATCH_50_VIDEOS,
)

logger = logging.getLogger(__name__)

BADGE_SEED_DATA: list[dict] = [
    {
        "key": BADGE_PROFILE_PHOTO_UPLOADED,
        "name": "Profile picture",
        "description": "User uploaded a profile photo",
    },
    {
        "key": BADGE_PROFILE_COMPLETE,
        "name": "Complete Profile",
        "description": "User completed all required profile information",
    },
    {
        "key": BADGE_WATCH_50_VIDEOS,
        "name": "Watched 50 Videos",
        "description": "User has watched 50 videos",
    },
    {
        "key": BADGE_SHARE_10_VIDEOS,
        "name": "Shared 10 Videos",
        "description": "User has shared 10 videos",
    },
    {
        "key": BADGE_LIKE_25_VIDEOS,
        "name": "Liked 25 Videos",
        "description": "User has liked 25 videos",
    },
]


async def seed_badges(db: AsyncSession) -> int:
    """Insert missing badge definitions. Existing rows are left untouched.

    Returns the number of rows inserted.
    """
    inserted = 0
    for badge_data in BADGE_SEED_DATA:
        stmt = upsert_insert(db, Badge).values(**badge_data)
        stmt = stmt.on_conflict_do_nothing(index_elements=["key"])
        result = await db.execute(stmt)
        inserted += max(result.rowcount, 0)

    await db.commit()
    logger.info("Seeded %d badge definitions", inserted)
    return inserted

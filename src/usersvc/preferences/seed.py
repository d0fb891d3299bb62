"""Interest catalog seed data."""

from __future__ import annotations

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from usersvc.db.dialect import upsert_insert
from usersvc.db.models import Interest

logger = logging.getLogger(__name__)

INTEREST_KEYS: list[str] = [
    "Gezondheidszorg en Welzijn",
    "Handel en Dienstverlening",
    "ICT",
    "Justitie, Veiligheid en Openbaar Bestuur",
    "Milieu en Agrarische Sector",
    "Media en Communicatie",
    "Onderwijs, Cultuur en Wetenschap",
    "Techniek, Productie en Bouw",
    "Toerisme, Recreatie en Horeca",
    "Transport en Logistiek",
    "Behoefte aan Investering",
    "Interesse om te Investeren",
]


async def seed_interests(db: AsyncSession) -> int:
    """Insert missing interest keys. Returns the number of rows inserted."""
    inserted = 0
    for key in INTEREST_KEYS:
        stmt = upsert_insert(db, Interest).values(key=key).on_conflict_do_nothing(index_elements=["key"])
        result = await db.execute(stmt)
        inserted += max(result.rowcount, 0)

    await db.commit()
    logger.info("Seeded %d interests", inserted)
    return inserted

"""Dialect-aware INSERT for upserts (PostgreSQL in production, SQLite in tests)."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession


def upsert_insert(db: AsyncSession, model: Any) -> Any:  # noqa: ANN401
    """Return an ``INSERT`` supporting ``on_conflict_do_*`` for the session's backend."""
    if db.get_bind().dialect.name == "sqlite":
        return sqlite_insert(model)
    return pg_insert(model)

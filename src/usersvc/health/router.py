"""Liveness, readiness and version endpoints."""

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from usersvc.config import get_settings
from usersvc.database import get_session
from usersvc.dependencies import get_object_store
from usersvc.errors import StorageError
from usersvc.storage.s3 import BaseObjectStore

router = APIRouter()


@router.get("/health")
async def health() -> dict[str, str]:
    """Liveness probe: 200 while the process serves requests."""
    return {"status": "healthy"}


@router.get("/ready")
async def readiness(
    db: AsyncSession = Depends(get_session),  # noqa: B008
    store: BaseObjectStore = Depends(get_object_store),  # noqa: B008
) -> dict[str, object]:
    """Readiness probe. The database is required; storage only degrades photo endpoints."""
    checks: dict[str, str] = {}

    try:
        await db.execute(text("SELECT 1"))
        checks["database"] = "ok"
    except SQLAlchemyError as exc:
        checks["database"] = f"error: {type(exc).__name__}"

    try:
        await store.ensure_bucket()
        checks["storage"] = "ok"
    except StorageError as exc:
        checks["storage"] = f"error: {exc}"

    if checks["database"] != "ok":
        status = "unavailable"
    elif checks["storage"] != "ok":
        status = "degraded"
    else:
        status = "ready"
    return {"status": status, "checks": checks}


@router.get("/version")
async def version() -> dict[str, str]:
    settings = get_settings()
    return {
        "service": "usersvc",
        "version": settings.app_version,
        "environment": settings.environment,
    }

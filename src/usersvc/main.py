"""FastAPI application factory."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI

from usersvc.auth.router import router as auth_router
from usersvc.config import get_settings
from usersvc.database import close_db, create_tables, get_session_factory, init_db, wait_for_db
from usersvc.dependencies import get_object_store
from usersvc.gamification.router import router as gamification_router
from usersvc.gamification.seed import seed_badges
from usersvc.health.router import router as health_router
from usersvc.middleware import setup_middleware
from usersvc.preferences.router import internal_router as preferences_internal_router
from usersvc.preferences.router import router as preferences_router
from usersvc.preferences.seed import seed_interests
from usersvc.storage.s3 import ensure_bucket_with_retry
from usersvc.users.router import internal_router as users_internal_router
from usersvc.users.router import router as users_router

logger = structlog.get_logger()


async def seed_reference_data() -> None:
    """Insert the badge and interest catalogs (idempotent)."""
    async with get_session_factory()() as db:
        await seed_badges(db)
        await seed_interests(db)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup and shutdown lifecycle."""
    settings = get_settings()
    await init_db(settings.database_url)
    await wait_for_db(settings.database_connect_attempts, settings.database_connect_retry_seconds)
    if settings.auto_create_tables:
        await create_tables()

    await seed_reference_data()

    # Storage outages degrade photo endpoints only; startup continues
    await ensure_bucket_with_retry(
        get_object_store(),
        attempts=settings.s3_ensure_bucket_attempts,
        delay_seconds=settings.database_connect_retry_seconds,
    )
    logger.info("startup_complete", version=settings.app_version, environment=settings.environment)

    yield

    await close_db()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="User Service API",
        description="User profiles, preferences, badges and password reset",
        version=settings.app_version,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )

    setup_middleware(app, settings)
    app.include_router(health_router, tags=["Health"])
    app.include_router(auth_router)
    app.include_router(gamification_router)
    app.include_router(preferences_router)
    app.include_router(preferences_internal_router)
    # Users last: its /users/{first_name}/{last_name} route matches any two segments
    app.include_router(users_router)
    app.include_router(users_internal_router)

    return app


app = create_app()

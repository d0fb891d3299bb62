"""Shared test fixtures.

Each test gets its own SQLite database file; external collaborators (the
identity provider, object store and notification service) are replaced by
in-memory fakes through ``app.dependency_overrides``.
"""

from __future__ import annotations

import os

os.environ.setdefault("USERSVC_SERVICE_TOKEN", "test-service-token")
os.environ.setdefault("USERSVC_LOG_FORMAT", "console")

from collections.abc import AsyncGenerator, Awaitable, Callable  # noqa: E402
from datetime import timedelta  # noqa: E402
from pathlib import Path  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from fastapi import HTTPException, Security  # noqa: E402
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession  # noqa: E402

from usersvc.auth.dependencies import get_current_subject  # noqa: E402
from usersvc.auth.password import hash_password  # noqa: E402
from usersvc.config import get_settings  # noqa: E402
from usersvc.database import close_db, create_tables, get_session_factory, init_db  # noqa: E402
from usersvc.db.models import User  # noqa: E402
from usersvc.dependencies import get_identity_provider, get_notifier, get_object_store  # noqa: E402
from usersvc.errors import (  # noqa: E402
    EmailAlreadyExistsError,
    IdentityProviderError,
    IdentityUserNotFoundError,
    StorageError,
)
from usersvc.gamification.seed import seed_badges  # noqa: E402
from usersvc.identity.keycloak import BaseIdentityProvider, TokenResponse  # noqa: E402
from usersvc.main import create_app  # noqa: E402
from usersvc.notifications.client import NotificationClient  # noqa: E402
from usersvc.preferences.seed import seed_interests  # noqa: E402
from usersvc.storage.s3 import BaseObjectStore  # noqa: E402

get_settings.cache_clear()

SERVICE_TOKEN = "test-service-token"


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


class FakeIdentityProvider(BaseIdentityProvider):
    """In-memory identity provider that records every call."""

    def __init__(self) -> None:
        self.subjects: dict[str, str] = {}
        self.passwords: dict[str, str] = {}
        self.reset_calls: list[tuple[str, str]] = []
        self.unknown_emails: set[str] = set()
        self.fail_with: Exception | None = None

    def _maybe_fail(self) -> None:
        if self.fail_with is not None:
            raise self.fail_with

    async def get_access_token(self, email: str, password: str) -> TokenResponse:
        self._maybe_fail()
        return TokenResponse(
            access_token=f"access-{email}",
            expires_in=300,
            refresh_token=f"refresh-{email}",
            refresh_expires_in=1800,
        )

    async def refresh_access_token(self, refresh_token: str) -> TokenResponse:
        self._maybe_fail()
        if not refresh_token.startswith("refresh-"):
            msg = "token grant failed, status: 400"
            raise IdentityProviderError(msg)
        return TokenResponse(access_token="access-refreshed", expires_in=300, refresh_token=refresh_token)

    async def create_user(self, email: str, first_name: str, last_name: str, password: str) -> str:
        self._maybe_fail()
        if email in self.subjects:
            msg = "email already exists"
            raise EmailAlreadyExistsError(msg)
        sub = f"kc-{len(self.subjects) + 1}"
        self.subjects[email] = sub
        self.passwords[email] = password
        return sub

    async def reset_password_for_email(self, email: str, new_password: str) -> None:
        self._maybe_fail()
        if email in self.unknown_emails:
            msg = "user not found in identity provider"
            raise IdentityUserNotFoundError(msg)
        self.reset_calls.append((email, new_password))
        self.passwords[email] = new_password


class FakeObjectStore(BaseObjectStore):
    """Dict-backed object store."""

    def __init__(self) -> None:
        self.bucket = "user-media"
        self.public_base_url = "http://storage.test/user-media"
        self.objects: dict[str, tuple[bytes, str]] = {}
        self.ensure_failures = 0
        self.ensure_calls = 0
        self.fail_uploads = False

    async def ensure_bucket(self) -> None:
        self.ensure_calls += 1
        if self.ensure_calls <= self.ensure_failures:
            msg = "storage not reachable"
            raise StorageError(msg)

    async def put_object(self, key: str, data: bytes, content_type: str) -> None:
        if self.fail_uploads:
            msg = "upload failed"
            raise StorageError(msg)
        self.objects[key] = (data, content_type)

    async def presign_get(self, key: str, expires: timedelta) -> str:
        return f"{self.public_url(key)}?expires={int(expires.total_seconds())}"

    async def presign_put(self, key: str, expires: timedelta) -> str:
        return f"{self.public_url(key)}?upload=1&expires={int(expires.total_seconds())}"


class FakeNotifier(NotificationClient):
    """Captures password reset deliveries instead of sending them."""

    def __init__(self) -> None:
        super().__init__(url="")
        self.sent: list[tuple[str, str]] = []

    async def send_password_reset(self, email: str, raw_token: str) -> bool:
        self.sent.append((email, raw_token))
        return True


_bearer = HTTPBearer(auto_error=False)


async def _subject_from_bearer(
    credentials: HTTPAuthorizationCredentials | None = Security(_bearer),
) -> str:
    """Tests authenticate with ``Authorization: Bearer <subject>``."""
    if credentials is None:
        raise HTTPException(status_code=401, detail="missing authorization header")
    return credentials.credentials


def auth_headers(subject: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {subject}"}


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def database(tmp_path: Path) -> AsyncGenerator[None, None]:
    """Fresh SQLite database with schema and reference data."""
    await init_db(f"sqlite+aiosqlite:///{tmp_path / 'usersvc.db'}")
    await create_tables()
    async with get_session_factory()() as session:
        await seed_badges(session)
        await seed_interests(session)
    yield
    await close_db()


@pytest_asyncio.fixture
async def db_session(database: None) -> AsyncGenerator[AsyncSession, None]:
    """Direct database session for setup and assertions."""
    async with get_session_factory()() as session:
        yield session


@pytest.fixture
def make_user(db_session: AsyncSession) -> Callable[..., Awaitable[User]]:
    """Factory that inserts and commits a local user."""

    async def _make(
        email: str = "alice@example.com",
        keycloak_id: str | None = "kc-alice",
        password: str = "secret1",
        **fields: object,
    ) -> User:
        user = User(email=email, keycloak_id=keycloak_id, password=hash_password(password), **fields)
        db_session.add(user)
        await db_session.commit()
        return user

    return _make


# ---------------------------------------------------------------------------
# Collaborators and HTTP client
# ---------------------------------------------------------------------------


@pytest.fixture
def identity_provider() -> FakeIdentityProvider:
    return FakeIdentityProvider()


@pytest.fixture
def object_store() -> FakeObjectStore:
    return FakeObjectStore()


@pytest.fixture
def notifier() -> FakeNotifier:
    return FakeNotifier()


@pytest_asyncio.fixture
async def client(
    database: None,
    identity_provider: FakeIdentityProvider,
    object_store: FakeObjectStore,
    notifier: FakeNotifier,
) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client against the app with all collaborators faked."""
    app = create_app()
    app.dependency_overrides[get_identity_provider] = lambda: identity_provider
    app.dependency_overrides[get_object_store] = lambda: object_store
    app.dependency_overrides[get_notifier] = lambda: notifier
    app.dependency_overrides[get_current_subject] = _subject_from_bearer

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
def service_headers() -> dict[str, str]:
    return {"X-Service-Token": SERVICE_TOKEN}

"""Tests for health endpoints and request middleware."""

from collections.abc import AsyncGenerator

import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.exc import OperationalError

from usersvc.errors import StorageError
from usersvc.main import create_app, seed_reference_data


class TestHealth:
    async def test_health(self, client: AsyncClient):
        response = await client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}

    async def test_ready(self, client: AsyncClient):
        response = await client.get("/ready")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ready"
        assert data["checks"] == {"database": "ok", "storage": "ok"}

    async def test_ready_degraded_without_storage(self, client: AsyncClient, object_store):
        object_store.ensure_failures = 1
        response = await client.get("/ready")
        assert response.status_code == 200
        assert response.json()["status"] == "degraded"

    async def test_version(self, client: AsyncClient):
        response = await client.get("/version")
        assert response.status_code == 200
        data = response.json()
        assert data["service"] == "usersvc"
        assert "version" in data


class TestMiddleware:
    async def test_request_id_generated(self, client: AsyncClient):
        response = await client.get("/health")
        assert response.headers.get("X-Request-Id")

    async def test_request_id_propagated(self, client: AsyncClient):
        response = await client.get("/health", headers={"X-Request-Id": "req-123"})
        assert response.headers["X-Request-Id"] == "req-123"

    async def test_oversized_request_id_replaced(self, client: AsyncClient):
        response = await client.get("/health", headers={"X-Request-Id": "x" * 500})
        assert response.headers["X-Request-Id"] != "x" * 500
        assert len(response.headers["X-Request-Id"]) == 36

    async def test_404_is_json(self, client: AsyncClient):
        response = await client.get("/does-not-exist")
        assert response.status_code == 404
        assert response.json() == {"detail": "Not Found"}

    async def test_validation_error_shape(self, client: AsyncClient):
        response = await client.post("/auth/login", content=b"not json", headers={"Content-Type": "application/json"})
        assert response.status_code == 422
        assert response.json()["detail"] == "Validation error"


async def test_reference_data_seed_is_repeatable(database):
    await seed_reference_data()
    await seed_reference_data()


class TestErrorHandlers:
    @pytest_asyncio.fixture
    async def failing_client(self) -> AsyncGenerator[AsyncClient, None]:
        app = create_app()

        @app.get("/boom/storage")
        async def _storage() -> None:
            raise StorageError("upload failed")

        @app.get("/boom/database")
        async def _database() -> None:
            raise OperationalError("SELECT 1", {}, ConnectionRefusedError("refused"))

        @app.get("/boom/bug")
        async def _bug() -> None:
            raise KeyError("missing")

        transport = ASGITransport(app=app, raise_app_exceptions=False)
        async with AsyncClient(transport=transport, base_url="http://test") as ac:
            yield ac

    async def test_upstream_error_is_502(self, failing_client: AsyncClient):
        response = await failing_client.get("/boom/storage")
        assert response.status_code == 502
        assert response.json() == {"detail": "storage unavailable, try again"}
        assert response.headers["Retry-After"] == "5"

    async def test_database_down_is_503(self, failing_client: AsyncClient):
        response = await failing_client.get("/boom/database")
        assert response.status_code == 503

    async def test_unhandled_is_500_json(self, failing_client: AsyncClient):
        response = await failing_client.get("/boom/bug")
        assert response.status_code == 500
        assert response.json() == {"detail": "Internal server error"}

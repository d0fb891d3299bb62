"""Keycloak client tests over httpx.MockTransport."""

from __future__ import annotations

import json

import httpx
import pytest

from usersvc.errors import EmailAlreadyExistsError, IdentityProviderError, IdentityUserNotFoundError
from usersvc.identity.keycloak import KeycloakClient

BASE = "http://keycloak.test"
USERS_PATH = "/admin/realms/app/users"


def _client(handler) -> KeycloakClient:
    return KeycloakClient(
        base_url=BASE + "/",
        realm="app",
        client_id="usersvc",
        client_secret="shh",
        admin_user="admin",
        admin_password="admin-pw",
        timeout=1.0,
        transport=httpx.MockTransport(handler),
    )


class KeycloakStub:
    """Routes admin and token requests; records every request."""

    def __init__(self, users: list[dict] | None = None, create_status: int = 201, reset_status: int = 204) -> None:
        self.users = users if users is not None else [{"id": "kc-1"}]
        self.create_status = create_status
        self.reset_status = reset_status
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if path == "/realms/master/protocol/openid-connect/token":
            return httpx.Response(200, json={"access_token": "admin-token"})
        if path == "/realms/app/protocol/openid-connect/token":
            form = dict(httpx.QueryParams(request.content.decode()))
            if form.get("password") == "bad" or form.get("refresh_token") == "bad":
                return httpx.Response(401, json={"error": "invalid_grant"})
            return httpx.Response(200, json={
                "access_token": "user-access",
                "token_type": "Bearer",
                "expires_in": 300,
                "refresh_token": "user-refresh",
                "refresh_expires_in": 1800,
            })
        if path == USERS_PATH and request.method == "GET":
            return httpx.Response(200, json=self.users)
        if path == USERS_PATH and request.method == "POST":
            return httpx.Response(self.create_status)
        if path.endswith("/reset-password") and request.method == "PUT":
            return httpx.Response(self.reset_status)
        return httpx.Response(404)


class TestUrls:
    def test_derived_urls(self):
        kc = _client(KeycloakStub())
        assert kc.token_url == "http://keycloak.test/realms/app/protocol/openid-connect/token"
        assert kc.certs_url == "http://keycloak.test/realms/app/protocol/openid-connect/certs"
        assert kc.issuer == "http://keycloak.test/realms/app"


class TestTokenGrants:
    async def test_password_grant(self):
        stub = KeycloakStub()
        tokens = await _client(stub).get_access_token("alice@example.com", "secret1")
        assert tokens.access_token == "user-access"
        assert tokens.refresh_expires_in == 1800
        form = dict(httpx.QueryParams(stub.requests[0].content.decode()))
        assert form["grant_type"] == "password"
        assert form["username"] == "alice@example.com"
        assert form["client_id"] == "usersvc"

    async def test_password_grant_rejected(self):
        with pytest.raises(IdentityProviderError, match="401"):
            await _client(KeycloakStub()).get_access_token("alice@example.com", "bad")

    async def test_refresh_grant(self):
        stub = KeycloakStub()
        tokens = await _client(stub).refresh_access_token("old-refresh")
        assert tokens.refresh_token == "user-refresh"
        form = dict(httpx.QueryParams(stub.requests[0].content.decode()))
        assert form["grant_type"] == "refresh_token"


class TestResetPassword:
    async def test_sets_non_temporary_password(self):
        stub = KeycloakStub()
        await _client(stub).reset_password_for_email("alice@example.com", "newpass1")

        lookup = stub.requests[1]
        assert lookup.url.params["email"] == "alice@example.com"
        assert lookup.url.params["exact"] == "true"
        assert lookup.headers["Authorization"] == "Bearer admin-token"

        put = stub.requests[2]
        assert put.url.path == "/admin/realms/app/users/kc-1/reset-password"
        assert json.loads(put.content) == {"type": "password", "value": "newpass1", "temporary": False}

    async def test_unknown_email(self):
        with pytest.raises(IdentityUserNotFoundError):
            await _client(KeycloakStub(users=[])).reset_password_for_email("ghost@example.com", "newpass1")

    async def test_unexpected_status(self):
        with pytest.raises(IdentityProviderError, match="failed to set password"):
            await _client(KeycloakStub(reset_status=500)).reset_password_for_email("alice@example.com", "newpass1")

    async def test_timeout(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectTimeout("timed out", request=request)

        with pytest.raises(IdentityProviderError, match="timed out"):
            await _client(handler).reset_password_for_email("alice@example.com", "newpass1")

    async def test_connection_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(IdentityProviderError, match="unreachable"):
            await _client(handler).reset_password_for_email("alice@example.com", "newpass1")


class TestCreateUser:
    async def test_returns_subject(self):
        stub = KeycloakStub(users=[{"id": "kc-new"}])
        sub = await _client(stub).create_user("new@example.com", "New", "User", "secret1")
        assert sub == "kc-new"

        create = stub.requests[1]
        body = json.loads(create.content)
        assert body["username"] == "new@example.com"
        assert body["firstName"] == "New"
        assert body["enabled"] is True

    async def test_conflict(self):
        with pytest.raises(EmailAlreadyExistsError):
            await _client(KeycloakStub(create_status=409)).create_user("alice@example.com", "A", "J", "secret1")

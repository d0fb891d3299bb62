"""
Identity provider client.

Keycloak is the system of record for credentials and token issuance. User
token grants go to the service realm; account administration uses an admin
token obtained from the master realm through the built-in ``admin-cli``
client.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

import httpx
import structlog
from pydantic import BaseModel

from usersvc.config import Settings, get_settings
from usersvc.errors import (
    EmailAlreadyExistsError,
    IdentityProviderError,
    IdentityUserNotFoundError,
)

logger = structlog.get_logger()


class TokenResponse(BaseModel):
    """Token endpoint response."""

    access_token: str
    token_type: str = "Bearer"
    expires_in: int = 0
    refresh_token: str = ""
    refresh_expires_in: int = 0


class BaseIdentityProvider(ABC):
    """Operations the service needs from the identity provider."""

    @abstractmethod
    async def get_access_token(self, email: str, password: str) -> TokenResponse:
        """Exchange user credentials for tokens (password grant)."""
        ...

    @abstractmethod
    async def refresh_access_token(self, refresh_token: str) -> TokenResponse:
        """Exchange a refresh token for a new token pair."""
        ...

    @abstractmethod
    async def create_user(self, email: str, first_name: str, last_name: str, password: str) -> str:
        """Create an account with a non-temporary password. Returns the subject id."""
        ...

    @abstractmethod
    async def reset_password_for_email(self, email: str, new_password: str) -> None:
        """Set a new password for the account registered under ``email``."""
        ...


class KeycloakClient(BaseIdentityProvider):
    """Keycloak REST client over httpx.

    Every request is bounded by ``timeout``; transport errors and timeouts
    surface as ``IdentityProviderError``.
    """

    def __init__(
        self,
        base_url: str,
        realm: str,
        client_id: str,
        client_secret: str,
        admin_user: str,
        admin_password: str,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.realm = realm
        self.client_id = client_id
        self.client_secret = client_secret
        self.admin_user = admin_user
        self.admin_password = admin_password
        self.timeout = timeout
        self._transport = transport

    @classmethod
    def from_settings(cls, settings: Settings) -> KeycloakClient:
        return cls(
            base_url=settings.keycloak_url,
            realm=settings.keycloak_realm,
            client_id=settings.keycloak_client_id,
            client_secret=settings.keycloak_client_secret,
            admin_user=settings.keycloak_admin_user,
            admin_password=settings.keycloak_admin_password,
            timeout=settings.keycloak_timeout_seconds,
        )

    @property
    def token_url(self) -> str:
        return f"{self.base_url}/realms/{self.realm}/protocol/openid-connect/token"

    @property
    def certs_url(self) -> str:
        return f"{self.base_url}/realms/{self.realm}/protocol/openid-connect/certs"

    @property
    def issuer(self) -> str:
        return f"{self.base_url}/realms/{self.realm}"

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self._transport)

    async def _request(
        self,
        client: httpx.AsyncClient,
        method: str,
        url: str,
        **kwargs: Any,  # noqa: ANN401
    ) -> httpx.Response:
        try:
            return await client.request(method, url, **kwargs)
        except httpx.TimeoutException as e:
            logger.warning("identity_provider_timeout", method=method, url=url)
            msg = "identity provider timed out"
            raise IdentityProviderError(msg) from e
        except httpx.HTTPError as e:
            logger.warning("identity_provider_unreachable", method=method, url=url, error=str(e))
            msg = "identity provider unreachable"
            raise IdentityProviderError(msg) from e

    # ------------------------------------------------------------------
    # User token grants
    # ------------------------------------------------------------------

    async def _token_grant(self, data: dict[str, str]) -> TokenResponse:
        async with self._client() as client:
            resp = await self._request(client, "POST", self.token_url, data=data)
        if resp.status_code != 200:
            msg = f"token grant failed, status: {resp.status_code}"
            raise IdentityProviderError(msg)
        return TokenResponse.model_validate(resp.json())

    async def get_access_token(self, email: str, password: str) -> TokenResponse:
        return await self._token_grant({
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "grant_type": "password",
            "username": email,
            "password": password,
        })

    async def refresh_access_token(self, refresh_token: str) -> TokenResponse:
        return await self._token_grant({
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "grant_type": "refresh_token",
            "refresh_token": refresh_token,
        })

    # ------------------------------------------------------------------
    # Admin API
    # ------------------------------------------------------------------

    async def _admin_token(self, client: httpx.AsyncClient) -> str:
        resp = await self._request(
            client,
            "POST",
            f"{self.base_url}/realms/master/protocol/openid-connect/token",
            data={
                "client_id": "admin-cli",
                "grant_type": "password",
                "username": self.admin_user,
                "password": self.admin_password,
            },
        )
        if not resp.is_success:
            msg = f"failed to get admin token, status: {resp.status_code}"
            raise IdentityProviderError(msg)
        return TokenResponse.model_validate(resp.json()).access_token

    async def _find_user_id(self, client: httpx.AsyncClient, admin_token: str, email: str) -> str:
        resp = await self._request(
            client,
            "GET",
            f"{self.base_url}/admin/realms/{self.realm}/users",
            params={"email": email, "exact": "true"},
            headers={"Authorization": f"Bearer {admin_token}"},
        )
        if not resp.is_success:
            msg = f"failed to query user, status: {resp.status_code}"
            raise IdentityProviderError(msg)
        found = resp.json()
        if not found:
            msg = "user not found in identity provider"
            raise IdentityUserNotFoundError(msg)
        kc_id = found[0].get("id")
        if not isinstance(kc_id, str):
            msg = "user id missing in identity provider response"
            raise IdentityProviderError(msg)
        return kc_id

    async def _set_password(self, client: httpx.AsyncClient, admin_token: str, kc_id: str, password: str) -> None:
        resp = await self._request(
            client,
            "PUT",
            f"{self.base_url}/admin/realms/{self.realm}/users/{kc_id}/reset-password",
            json={"type": "password", "value": password, "temporary": False},
            headers={"Authorization": f"Bearer {admin_token}"},
        )
        if resp.status_code != 204:
            msg = f"failed to set password, status: {resp.status_code}"
            raise IdentityProviderError(msg)

    async def create_user(self, email: str, first_name: str, last_name: str, password: str) -> str:
        async with self._client() as client:
            admin_token = await self._admin_token(client)
            resp = await self._request(
                client,
                "POST",
                f"{self.base_url}/admin/realms/{self.realm}/users",
                json={
                    "email": email,
                    "username": email,
                    "firstName": first_name,
                    "lastName": last_name,
                    "enabled": True,
                },
                headers={"Authorization": f"Bearer {admin_token}"},
            )
            if resp.status_code == 409:
                msg = "email already exists"
                raise EmailAlreadyExistsError(msg)
            if not resp.is_success:
                msg = f"failed to create user, status: {resp.status_code}"
                raise IdentityProviderError(msg)

            kc_id = await self._find_user_id(client, admin_token, email)
            await self._set_password(client, admin_token, kc_id, password)

        logger.info("identity_user_created", keycloak_id=kc_id)
        return kc_id

    async def reset_password_for_email(self, email: str, new_password: str) -> None:
        async with self._client() as client:
            admin_token = await self._admin_token(client)
            kc_id = await self._find_user_id(client, admin_token, email)
            await self._set_password(client, admin_token, kc_id, new_password)

        logger.info("identity_password_reset", keycloak_id=kc_id)


def get_keycloak_client() -> KeycloakClient:
    """Build the client from application settings."""
    return KeycloakClient.from_settings(get_settings())

"""FastAPI authentication dependencies."""

from __future__ import annotations

import asyncio
import secrets
from functools import lru_cache

import jwt
from fastapi import Depends, Header, HTTPException, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from usersvc.config import get_settings
from usersvc.database import get_session
from usersvc.db.models import User
from usersvc.errors import UserNotFoundError
from usersvc.identity.keycloak import KeycloakClient
from usersvc.users.service import get_by_subject

_bearer = HTTPBearer(auto_error=False)


@lru_cache
def _jwk_client() -> jwt.PyJWKClient:
    settings = get_settings()
    certs_url = KeycloakClient.from_settings(settings).certs_url
    return jwt.PyJWKClient(certs_url, cache_keys=True, timeout=int(settings.keycloak_timeout_seconds))


async def verify_access_token(token: str) -> dict:
    """
    Verify a Keycloak-issued RS256 access token against the realm JWKS.

    Raises:
        jwt.InvalidTokenError: If the token is malformed, expired or badly signed.
        jwt.PyJWKClientError: If the signing key cannot be resolved.
    """
    settings = get_settings()
    # PyJWKClient fetches the key set synchronously
    signing_key = await asyncio.to_thread(_jwk_client().get_signing_key_from_jwt, token)
    options = {"verify_aud": False, "require": ["exp", "sub"]}
    if settings.keycloak_issuer:
        return jwt.decode(
            token,
            signing_key.key,
            algorithms=["RS256"],
            issuer=settings.keycloak_issuer,
            options=options,
        )
    return jwt.decode(token, signing_key.key, algorithms=["RS256"], options=options)


async def get_current_subject(
    credentials: HTTPAuthorizationCredentials | None = Security(_bearer),
) -> str:
    """Return the ``sub`` claim of a valid bearer token. Raises 401 otherwise."""
    if credentials is None:
        raise HTTPException(status_code=401, detail="missing authorization header")
    try:
        payload = await verify_access_token(credentials.credentials)
    except (jwt.InvalidTokenError, jwt.PyJWKClientError) as e:
        raise HTTPException(status_code=401, detail="invalid or expired token") from e

    sub = payload.get("sub")
    if not isinstance(sub, str) or not sub:
        raise HTTPException(status_code=401, detail="invalid or expired token")
    return sub


async def get_current_user(
    subject: str = Depends(get_current_subject),
    db: AsyncSession = Depends(get_session),
) -> User:
    """Resolve the bearer subject to the local user. Raises 404/403."""
    try:
        user = await get_by_subject(db, subject)
    except UserNotFoundError as e:
        raise HTTPException(status_code=404, detail="user not found") from e
    if user.is_blocked:
        raise HTTPException(status_code=403, detail="account is blocked")
    return user


async def require_service_token(
    x_service_token: str | None = Header(default=None),
) -> None:
    """Guard for internal routes: ``X-Service-Token`` must match the configured token.

    An empty configured token rejects every request.
    """
    expected = get_settings().service_token
    if not expected or not x_service_token:
        raise HTTPException(status_code=401, detail="invalid service token")
    if not secrets.compare_digest(x_service_token.encode(), expected.encode()):
        raise HTTPException(status_code=401, detail="invalid service token")

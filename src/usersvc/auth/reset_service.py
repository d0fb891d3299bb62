"""
Password reset token lifecycle.

A token is ISSUED on request and CONSUMED at most once. Expiry is not stored
as a state; it is evaluated at lookup time (``now < expires_at``). Only the
SHA-256 of the raw token is persisted.

Completing a reset touches two systems of record in a fixed order:

1. the identity provider password,
2. the local credential hash,
3. the token's ``used`` flag.

If (1) fails nothing local changes and the token stays valid. If (2) or (3)
fails after (1) succeeded, the failure is logged as an inconsistency and the
token stays valid, so a retry with the same token can finish the job. A token
consumed by a concurrent request between lookup and (3) is the same kind of
inconsistency: the identity provider already holds this caller's password.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

import structlog
from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError

from usersvc.auth.password import validate_password_strength
from usersvc.auth.tokens import generate_reset_token, hash_token
from usersvc.db.models import PasswordResetToken
from usersvc.errors import (
    IdentityUserNotFoundError,
    InvalidResetTokenError,
    ResetInconsistencyError,
    UserNotFoundError,
)
from usersvc.users import service as users

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from usersvc.identity.keycloak import BaseIdentityProvider

logger = structlog.get_logger()

DEFAULT_TOKEN_TTL = timedelta(minutes=30)


class PasswordResetService:
    """Issues and consumes reset tokens."""

    def __init__(
        self,
        db: AsyncSession,
        identity_provider: BaseIdentityProvider,
        token_ttl: timedelta = DEFAULT_TOKEN_TTL,
    ) -> None:
        self.db = db
        self.identity_provider = identity_provider
        self.token_ttl = token_ttl

    async def request_reset(self, email: str) -> str:
        """
        Issue a token for ``email`` and return the raw value.

        A token is created whether or not the email belongs to an account, so
        neither the result nor the work done reveals which emails exist. The
        row is flushed, not committed.
        """
        try:
            await users.get_by_email(self.db, email)
        except UserNotFoundError:
            pass

        raw_token = generate_reset_token()
        now = datetime.now(timezone.utc)
        self.db.add(
            PasswordResetToken(
                email=email,
                token_hash=hash_token(raw_token),
                expires_at=now + self.token_ttl,
                used=False,
                created_at=now,
            )
        )
        await self.db.flush()

        logger.info("password_reset_requested")
        return raw_token

    async def find_valid_token(self, raw_token: str) -> PasswordResetToken:
        """
        Look up an unused, unexpired token by the hash of ``raw_token``.

        Raises:
            InvalidResetTokenError: For unknown, used and expired tokens alike.
        """
        now = datetime.now(timezone.utc)
        result = await self.db.execute(
            select(PasswordResetToken).where(
                PasswordResetToken.token_hash == hash_token(raw_token),
                PasswordResetToken.used.is_(False),
                PasswordResetToken.expires_at > now,
            )
        )
        token = result.scalar_one_or_none()
        if token is None:
            raise InvalidResetTokenError
        return token

    async def reset_password(self, raw_token: str, new_password: str) -> None:
        """
        Consume ``raw_token`` and set ``new_password`` everywhere. Commits.

        Raises:
            InvalidResetTokenError: Empty, unknown, used or expired token.
            PasswordPolicyError: The new password is too weak.
            IdentityProviderError: The identity provider failed or timed out.
            ResetInconsistencyError: The identity provider was updated but the
                local update did not complete.
        """
        if not raw_token:
            raise InvalidResetTokenError

        validate_password_strength(new_password)

        token = await self.find_valid_token(raw_token)
        token_id, email = token.id, token.email
        # Nothing of ours is pending while the remote call runs
        await self.db.rollback()

        try:
            await self.identity_provider.reset_password_for_email(email, new_password)
        except IdentityUserNotFoundError as e:
            raise InvalidResetTokenError from e

        try:
            await users.update_password_hash(self.db, email, new_password)
            consumed = await self._mark_used(token_id)
            if consumed:
                await self.db.commit()
        except (SQLAlchemyError, UserNotFoundError) as e:
            await self.db.rollback()
            logger.error(
                "password_reset_inconsistent",
                token_id=token_id,
                error=type(e).__name__,
            )
            msg = "password changed at identity provider but local update failed"
            raise ResetInconsistencyError(msg) from e

        if not consumed:
            # The identity provider already holds this caller's password
            await self.db.rollback()
            logger.error(
                "password_reset_inconsistent",
                token_id=token_id,
                error="TokenConsumedConcurrently",
            )
            msg = "password changed at identity provider but token was consumed by another request"
            raise ResetInconsistencyError(msg)

        logger.info("password_reset_completed", token_id=token_id)

    async def _mark_used(self, token_id: int) -> bool:
        """Flip ``used`` false -> true. Returns False if another request got there first."""
        result = await self.db.execute(
            update(PasswordResetToken)
            .where(PasswordResetToken.id == token_id, PasswordResetToken.used.is_(False))
            .values(used=True)
        )
        return result.rowcount == 1

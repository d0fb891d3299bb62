"""Tests for the password reset token lifecycle."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import select, update

from usersvc.auth import reset_service
from usersvc.auth.password import verify_password
from usersvc.auth.reset_service import PasswordResetService
from usersvc.auth.tokens import generate_reset_token, hash_token
from usersvc.database import get_session_factory
from usersvc.db.models import PasswordResetToken, User
from usersvc.errors import (
    IdentityProviderError,
    InvalidResetTokenError,
    PasswordPolicyError,
    ResetInconsistencyError,
)


class _RecordingLogger:
    def __init__(self, events: list) -> None:
        self.events = events

    def info(self, event: str, **fields) -> None:
        self.events.append(("info", event, fields))

    def warning(self, event: str, **fields) -> None:
        self.events.append(("warning", event, fields))

    def error(self, event: str, **fields) -> None:
        self.events.append(("error", event, fields))


async def _token_used(db, raw_token: str) -> bool:
    result = await db.execute(
        select(PasswordResetToken.used).where(PasswordResetToken.token_hash == hash_token(raw_token))
    )
    return result.scalar_one()


async def _stored_hash(db, email: str) -> str:
    result = await db.execute(select(User.password).where(User.email == email))
    return result.scalar_one()


async def _issue(db, identity_provider, email: str) -> str:
    service = PasswordResetService(db, identity_provider)
    raw = await service.request_reset(email)
    await db.commit()
    return raw


class TestRequestReset:
    async def test_stores_only_the_hash(self, db_session, identity_provider, make_user):
        await make_user()
        raw = await _issue(db_session, identity_provider, "alice@example.com")

        rows = (await db_session.execute(select(PasswordResetToken))).scalars().all()
        assert len(rows) == 1
        assert rows[0].token_hash == hash_token(raw)
        assert rows[0].token_hash != raw
        assert rows[0].used is False

    async def test_unknown_email_still_issues_token(self, db_session, identity_provider):
        raw = await _issue(db_session, identity_provider, "ghost@example.com")
        assert raw
        result = await db_session.execute(
            select(PasswordResetToken.email).where(PasswordResetToken.token_hash == hash_token(raw))
        )
        assert result.scalar_one() == "ghost@example.com"

    async def test_expiry_uses_configured_ttl(self, db_session, identity_provider):
        service = PasswordResetService(db_session, identity_provider, token_ttl=timedelta(minutes=5))
        before = datetime.now(timezone.utc).replace(tzinfo=None)
        raw = await service.request_reset("ghost@example.com")
        await db_session.commit()

        token = await service.find_valid_token(raw)
        expires_at = token.expires_at.replace(tzinfo=None)
        assert timedelta(minutes=4) < expires_at - before <= timedelta(minutes=5, seconds=5)

    async def test_each_request_issues_a_new_token(self, db_session, identity_provider, make_user):
        await make_user()
        first = await _issue(db_session, identity_provider, "alice@example.com")
        second = await _issue(db_session, identity_provider, "alice@example.com")
        assert first != second

        service = PasswordResetService(db_session, identity_provider)
        # Earlier tokens stay valid until used or expired
        await service.find_valid_token(first)
        await service.find_valid_token(second)


class TestResetPassword:
    async def test_success_updates_both_systems_and_consumes_token(
        self, db_session, identity_provider, make_user
    ):
        await make_user()
        raw = await _issue(db_session, identity_provider, "alice@example.com")

        service = PasswordResetService(db_session, identity_provider)
        await service.reset_password(raw, "newpass1")

        assert identity_provider.reset_calls == [("alice@example.com", "newpass1")]
        assert verify_password("newpass1", await _stored_hash(db_session, "alice@example.com"))
        assert await _token_used(db_session, raw) is True

    async def test_token_is_single_use(self, db_session, identity_provider, make_user):
        await make_user()
        raw = await _issue(db_session, identity_provider, "alice@example.com")

        service = PasswordResetService(db_session, identity_provider)
        await service.reset_password(raw, "newpass1")

        with pytest.raises(InvalidResetTokenError):
            await service.reset_password(raw, "another2")
        assert len(identity_provider.reset_calls) == 1
        assert verify_password("newpass1", await _stored_hash(db_session, "alice@example.com"))

    async def test_unknown_token(self, db_session, identity_provider):
        service = PasswordResetService(db_session, identity_provider)
        with pytest.raises(InvalidResetTokenError):
            await service.reset_password(generate_reset_token(), "newpass1")
        assert identity_provider.reset_calls == []

    async def test_empty_token(self, db_session, identity_provider):
        service = PasswordResetService(db_session, identity_provider)
        with pytest.raises(InvalidResetTokenError):
            await service.reset_password("", "newpass1")

    async def test_expired_token(self, db_session, identity_provider, make_user):
        await make_user()
        raw = generate_reset_token()
        now = datetime.now(timezone.utc)
        db_session.add(
            PasswordResetToken(
                email="alice@example.com",
                token_hash=hash_token(raw),
                expires_at=now - timedelta(seconds=1),
                used=False,
                created_at=now - timedelta(minutes=31),
            )
        )
        await db_session.commit()

        service = PasswordResetService(db_session, identity_provider)
        with pytest.raises(InvalidResetTokenError):
            await service.reset_password(raw, "newpass1")
        assert identity_provider.reset_calls == []

    async def test_weak_password_rejected_before_lookup(self, db_session, identity_provider, make_user):
        await make_user()
        raw = await _issue(db_session, identity_provider, "alice@example.com")

        service = PasswordResetService(db_session, identity_provider)
        with pytest.raises(PasswordPolicyError):
            await service.reset_password(raw, "nodigits")
        assert await _token_used(db_session, raw) is False

    async def test_identity_provider_failure_leaves_token_valid(self, db_session, identity_provider, make_user):
        await make_user(password="oldpass1")
        raw = await _issue(db_session, identity_provider, "alice@example.com")
        identity_provider.fail_with = IdentityProviderError("identity provider timed out")

        service = PasswordResetService(db_session, identity_provider)
        with pytest.raises(IdentityProviderError):
            await service.reset_password(raw, "newpass1")

        assert await _token_used(db_session, raw) is False
        assert verify_password("oldpass1", await _stored_hash(db_session, "alice@example.com"))

        # Retry with the same token once the provider recovers
        identity_provider.fail_with = None
        await service.reset_password(raw, "newpass1")
        assert await _token_used(db_session, raw) is True

    async def test_identity_account_missing(self, db_session, identity_provider, make_user):
        await make_user()
        raw = await _issue(db_session, identity_provider, "alice@example.com")
        identity_provider.unknown_emails.add("alice@example.com")

        service = PasswordResetService(db_session, identity_provider)
        with pytest.raises(InvalidResetTokenError):
            await service.reset_password(raw, "newpass1")
        assert await _token_used(db_session, raw) is False

    async def test_local_user_missing_is_inconsistency(self, db_session, identity_provider):
        raw = await _issue(db_session, identity_provider, "ghost@example.com")

        service = PasswordResetService(db_session, identity_provider)
        with pytest.raises(ResetInconsistencyError):
            await service.reset_password(raw, "newpass1")

        # Remote side was changed; the token survives so a retry is possible
        assert identity_provider.reset_calls == [("ghost@example.com", "newpass1")]
        assert await _token_used(db_session, raw) is False

    async def test_token_consumed_during_identity_call_is_inconsistency(
        self, db_session, identity_provider, make_user, monkeypatch
    ):
        await make_user(password="oldpass1")
        raw = await _issue(db_session, identity_provider, "alice@example.com")

        set_remote_password = identity_provider.reset_password_for_email

        async def consumed_by_other_request(email: str, new_password: str) -> None:
            async with get_session_factory()() as other:
                await other.execute(
                    update(PasswordResetToken)
                    .where(PasswordResetToken.token_hash == hash_token(raw))
                    .values(used=True)
                )
                await other.commit()
            await set_remote_password(email, new_password)

        monkeypatch.setattr(identity_provider, "reset_password_for_email", consumed_by_other_request)
        events: list[tuple[str, str, dict]] = []
        monkeypatch.setattr(reset_service, "logger", _RecordingLogger(events))

        service = PasswordResetService(db_session, identity_provider)
        with pytest.raises(ResetInconsistencyError):
            await service.reset_password(raw, "latecomer1")

        assert identity_provider.passwords["alice@example.com"] == "latecomer1"
        assert verify_password("oldpass1", await _stored_hash(db_session, "alice@example.com"))
        assert ("error", "password_reset_inconsistent") in [(level, event) for level, event, _ in events]
        assert all(fields.get("token_id") is not None for _, _, fields in events)

"""User directory: lookups and profile mutations."""

from __future__ import annotations

import uuid
from typing import TYPE_CHECKING, Any

import structlog
from pydantic import validate_email
from pydantic_core import PydanticCustomError
from sqlalchemy import func, select, update

from usersvc.auth.password import hash_password, validate_password_strength
from usersvc.db.models import User
from usersvc.errors import EmailAlreadyExistsError, UserNotFoundError

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from usersvc.identity.keycloak import BaseIdentityProvider

logger = structlog.get_logger()

# Fields a user may change on their own profile
UPDATABLE_FIELDS = frozenset({
    "first_name",
    "last_name",
    "phone_number",
    "phone_number_visible",
    "country",
    "job_function",
    "sector",
    "biography",
    "profile_photo_url",
})

# All must be non-empty for the profile to count as complete
REQUIRED_PROFILE_FIELDS = (
    "first_name",
    "last_name",
    "phone_number",
    "country",
    "job_function",
    "sector",
    "biography",
    "profile_photo_url",
)


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------


async def _one(db: AsyncSession, stmt: Any) -> User:  # noqa: ANN401
    result = await db.execute(stmt)
    user = result.scalar_one_or_none()
    if user is None:
        msg = "user not found"
        raise UserNotFoundError(msg)
    return user


async def get_by_email(db: AsyncSession, email: str) -> User:
    return await _one(db, select(User).where(User.email == email))


async def get_by_id(db: AsyncSession, user_id: uuid.UUID) -> User:
    return await _one(db, select(User).where(User.id == user_id))


async def get_by_subject(db: AsyncSession, subject: str) -> User:
    """Look up by identity-provider subject (the ``sub`` claim)."""
    return await _one(db, select(User).where(User.keycloak_id == subject))


async def get_public_info_by_name(db: AsyncSession, first_name: str, last_name: str) -> dict[str, str]:
    """Case-insensitive name match. Only public fields are returned."""
    user = await _one(
        db,
        select(User)
        .where(func.lower(User.first_name) == first_name.lower())
        .where(func.lower(User.last_name) == last_name.lower())
        .limit(1),
    )
    return {"first_name": user.first_name, "last_name": user.last_name, "email": user.email}


async def email_exists(db: AsyncSession, email: str) -> bool:
    result = await db.execute(select(User.id).where(User.email == email))
    return result.first() is not None


# ---------------------------------------------------------------------------
# Mutations
# ---------------------------------------------------------------------------


def is_profile_complete(user: User) -> bool:
    """True when every required profile field is non-empty."""
    return all(getattr(user, field) for field in REQUIRED_PROFILE_FIELDS)


async def update_fields(db: AsyncSession, user: User, patch: dict[str, Any]) -> User:
    """
    Apply only the fields present in ``patch``.

    Absent keys are left alone; a present key always overwrites, so an
    explicit empty string clears the field.

    Raises:
        ValueError: If the patch names a field that is not updatable.
    """
    unknown = set(patch) - UPDATABLE_FIELDS
    if unknown:
        msg = f"unknown fields: {', '.join(sorted(unknown))}"
        raise ValueError(msg)

    for field, value in patch.items():
        setattr(user, field, value)

    await db.flush()
    logger.info("profile_updated", user_id=str(user.id), fields=sorted(patch))
    return user


async def update_password_hash(db: AsyncSession, email: str, new_password: str) -> None:
    """Validate, hash and store a new local credential for ``email``."""
    validate_password_strength(new_password)
    result = await db.execute(
        update(User).where(User.email == email).values(password=hash_password(new_password))
    )
    if result.rowcount == 0:
        msg = "user not found"
        raise UserNotFoundError(msg)


async def update_profile_photo_url(db: AsyncSession, subject: str, url: str) -> User:
    user = await get_by_subject(db, subject)
    user.profile_photo_url = url
    await db.flush()
    return user


async def register_user(
    db: AsyncSession,
    identity_provider: BaseIdentityProvider,
    *,
    email: str,
    password: str,
    first_name: str,
    last_name: str,
    **profile: Any,  # noqa: ANN401
) -> User:
    """
    Create the identity-provider account, then the local row.

    Raises:
        ValueError: If a required field is missing.
        EmailAlreadyExistsError: If the email is taken locally or remotely.
        PasswordPolicyError: If the password is too weak.
        IdentityProviderError: If the identity provider call fails.
    """
    if not email:
        msg = "email is required"
        raise ValueError(msg)
    try:
        validate_email(email)
    except PydanticCustomError as e:
        msg = "invalid email address"
        raise ValueError(msg) from e
    if not first_name:
        msg = "first name is required"
        raise ValueError(msg)
    if not last_name:
        msg = "last name is required"
        raise ValueError(msg)

    if await email_exists(db, email):
        msg = "email already exists"
        raise EmailAlreadyExistsError(msg)

    validate_password_strength(password)

    keycloak_id = await identity_provider.create_user(email, first_name, last_name, password)

    user = User(
        email=email,
        password=hash_password(password),
        first_name=first_name,
        last_name=last_name,
        keycloak_id=keycloak_id,
        **{k: v for k, v in profile.items() if k in UPDATABLE_FIELDS},
    )
    db.add(user)
    await db.flush()

    logger.info("user_registered", user_id=str(user.id), keycloak_id=keycloak_id)
    return user

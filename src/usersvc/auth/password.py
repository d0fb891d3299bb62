"""
Password hashing and policy checks.

Local credential hashes use argon2id. The identity provider remains the
system of record for authentication; the local hash is a mirror used for
the login pre-check.
"""

from __future__ import annotations

import argon2

from usersvc.config import get_settings
from usersvc.errors import PasswordPolicyError

_hasher = argon2.PasswordHasher(
    time_cost=2,
    memory_cost=65536,  # 64 MB
    parallelism=1,
    hash_len=32,
    salt_len=16,
    type=argon2.Type.ID,  # argon2id
)


def hash_password(password: str) -> str:
    """Hash a password using argon2id. Returns the full hash string."""
    return _hasher.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    """
    Verify a password against its argon2id hash.

    Returns True if the password matches. Never raises on mismatch.
    """
    try:
        return _hasher.verify(password_hash, password)
    except argon2.exceptions.VerifyMismatchError:
        return False
    except argon2.exceptions.InvalidHashError:
        return False


def validate_password_strength(password: str) -> None:
    """
    Validate the password policy.

    Raises PasswordPolicyError if the password is too weak.

    Requirements:
    - Minimum length (``password_min_length``, 6 by default)
    - Maximum length (``password_max_length``, prevents DoS via huge passwords)
    - At least one digit
    """
    settings = get_settings()
    if not password or not password.strip():
        msg = "password cannot be empty"
        raise PasswordPolicyError(msg)
    if len(password) < settings.password_min_length:
        msg = f"password must be at least {settings.password_min_length} characters"
        raise PasswordPolicyError(msg)
    if len(password) > settings.password_max_length:
        msg = f"password must not exceed {settings.password_max_length} characters"
        raise PasswordPolicyError(msg)
    if not any(c.isdigit() for c in password):
        msg = "password must contain at least one digit"
        raise PasswordPolicyError(msg)

"""Reset token generation and hashing."""

from __future__ import annotations

import hashlib
import secrets

# 32 random bytes -> 43 URL-safe characters, no padding.
RESET_TOKEN_BYTES = 32


def generate_reset_token() -> str:
    """Return a fresh URL-safe raw token with 256 bits of entropy."""
    return secrets.token_urlsafe(RESET_TOKEN_BYTES)


def hash_token(raw_token: str) -> str:
    """SHA-256 hex digest of a raw token. Only this value is ever stored."""
    return hashlib.sha256(raw_token.encode()).hexdigest()

"""Domain exceptions shared across services and routers."""

from __future__ import annotations


class UserNotFoundError(LookupError):
    """Raised when a user lookup matches no row."""


class PasswordPolicyError(ValueError):
    """Raised when a password does not meet the policy."""


class InvalidResetTokenError(ValueError):
    """Raised for any unusable reset token: unknown, expired or already used."""

    def __init__(self, msg: str = "invalid or expired token") -> None:
        super().__init__(msg)


class EmailAlreadyExistsError(ValueError):
    """Raised when registering an email that is already taken."""


class UpstreamError(RuntimeError):
    """An external collaborator failed or timed out. Retryable."""


class IdentityProviderError(UpstreamError):
    """The identity provider call failed or timed out."""


class IdentityUserNotFoundError(IdentityProviderError):
    """The identity provider has no account for the given email."""


class StorageError(UpstreamError):
    """The object store call failed."""


class ResetInconsistencyError(RuntimeError):
    """The identity provider accepted a new password but the local mirror was not updated."""

"""ORM models.

Column types are kept portable (``sqlalchemy.Uuid`` rather than the
PostgreSQL dialect type) so the same metadata runs against SQLite in tests.
"""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, foreign, mapped_column, relationship

from usersvc.db.base import Base


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


class User(Base):
    """Local user profile, mirrored against the identity provider account."""

    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    keycloak_id: Mapped[str | None] = mapped_column(String(64), unique=True, nullable=True)
    email: Mapped[str] = mapped_column(String(320), unique=True, nullable=False)
    password: Mapped[str] = mapped_column(String(256), nullable=False, default="")
    first_name: Mapped[str] = mapped_column(String(128), nullable=False, default="")
    last_name: Mapped[str] = mapped_column(String(128), nullable=False, default="")
    phone_number: Mapped[str] = mapped_column(String(32), nullable=False, default="")
    phone_number_visible: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    country: Mapped[str] = mapped_column(String(64), nullable=False, default="")
    job_function: Mapped[str] = mapped_column(String(128), nullable=False, default="")
    sector: Mapped[str] = mapped_column(String(128), nullable=False, default="")
    biography: Mapped[str] = mapped_column(Text, nullable=False, default="")
    is_blocked: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    profile_photo_url: Mapped[str] = mapped_column(Text, nullable=False, default="")


# ---------------------------------------------------------------------------
# Gamification
# ---------------------------------------------------------------------------


class Badge(Base):
    """Badge catalog entry. Seeded once at startup, read-only afterwards."""

    __tablename__ = "badges"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    key: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(String(500), nullable=False, default="")


class UserBadge(Base):
    """A badge earned by a user. UNIQUE(user_id, badge_key) prevents duplicates.

    ``badge_key`` references ``badges.key`` without a foreign key constraint,
    so a grant for a key missing from the catalog is stored and simply joins
    to no metadata.
    """

    __tablename__ = "user_badges"
    __table_args__ = (UniqueConstraint("user_id", "badge_key", name="uq_user_badges_user_id_badge_key"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False
    )
    badge_key: Mapped[str] = mapped_column(String(100), index=True, nullable=False)
    earned_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    badge: Mapped[Badge | None] = relationship(
        "Badge",
        primaryjoin=lambda: foreign(UserBadge.badge_key) == Badge.key,
        viewonly=True,
        lazy="joined",
    )


# ---------------------------------------------------------------------------
# Password Reset Tokens
# ---------------------------------------------------------------------------


class PasswordResetToken(Base):
    """Single-use reset capability. Only the SHA-256 of the raw token is stored."""

    __tablename__ = "password_reset_tokens"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    email: Mapped[str] = mapped_column(String(320), index=True, nullable=False)
    token_hash: Mapped[str] = mapped_column(String(128), unique=True, nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), index=True, nullable=False)
    used: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


# ---------------------------------------------------------------------------
# Preferences
# ---------------------------------------------------------------------------


class NotificationSettings(Base):
    """Per-user notification channel switches."""

    __tablename__ = "notification_settings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_email: Mapped[str] = mapped_column(String(320), unique=True, nullable=False)
    like_email: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    like_push: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    favorite_email: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    favorite_push: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    chat_email: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    chat_push: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    system_email: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    system_push: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    expo_push_token: Mapped[str] = mapped_column(String(255), nullable=False, default="")


class DiscoveryPreferences(Base):
    """Discovery radius per user."""

    __tablename__ = "discovery_preferences"

    email: Mapped[str] = mapped_column(String(320), primary_key=True)
    radius_km: Mapped[int] = mapped_column(Integer, nullable=False, default=50)


class Interest(Base):
    """Interest catalog entry."""

    __tablename__ = "interests"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    key: Mapped[str] = mapped_column(String(128), unique=True, nullable=False)


class UserInterest(Base):
    """A user's on/off value for one interest."""

    __tablename__ = "user_interests"

    user_email: Mapped[str] = mapped_column(String(320), primary_key=True, index=True)
    interest_id: Mapped[int] = mapped_column(Integer, ForeignKey("interests.id"), primary_key=True)
    value: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    interest: Mapped[Interest] = relationship("Interest")

"""Initial schema.

Creates users, the badge catalog and grants, password reset tokens,
notification settings, discovery preferences and interests.

Revision ID: 001_initial_schema
Revises: None
Create Date: 2026-10-18
"""

from collections.abc import Sequence

from alembic import op

revision: str = "001_initial_schema"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    # --- Users ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS users (
            id UUID PRIMARY KEY,
            keycloak_id VARCHAR(64),
            email VARCHAR(320) NOT NULL,
            password VARCHAR(256) NOT NULL DEFAULT '',
            first_name VARCHAR(128) NOT NULL DEFAULT '',
            last_name VARCHAR(128) NOT NULL DEFAULT '',
            phone_number VARCHAR(32) NOT NULL DEFAULT '',
            phone_number_visible BOOLEAN NOT NULL DEFAULT false,
            country VARCHAR(64) NOT NULL DEFAULT '',
            job_function VARCHAR(128) NOT NULL DEFAULT '',
            sector VARCHAR(128) NOT NULL DEFAULT '',
            biography TEXT NOT NULL DEFAULT '',
            is_blocked BOOLEAN NOT NULL DEFAULT false,
            profile_photo_url TEXT NOT NULL DEFAULT '',
            CONSTRAINT uq_users_keycloak_id UNIQUE (keycloak_id),
            CONSTRAINT uq_users_email UNIQUE (email)
        )
    """)

    # --- Badge catalog ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS badges (
            id SERIAL PRIMARY KEY,
            key VARCHAR(100) NOT NULL,
            name VARCHAR(200) NOT NULL,
            description VARCHAR(500) NOT NULL DEFAULT '',
            CONSTRAINT uq_badges_key UNIQUE (key)
        )
    """)

    # --- User badges (no FK on badge_key: grants may reference keys outside the catalog) ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS user_badges (
            id SERIAL PRIMARY KEY,
            user_id UUID NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            badge_key VARCHAR(100) NOT NULL,
            earned_at TIMESTAMPTZ NOT NULL,
            CONSTRAINT uq_user_badges_user_id_badge_key UNIQUE (user_id, badge_key)
        )
    """)
    op.execute("CREATE INDEX IF NOT EXISTS ix_user_badges_user_id ON user_badges(user_id)")
    op.execute("CREATE INDEX IF NOT EXISTS ix_user_badges_badge_key ON user_badges(badge_key)")

    # --- Password reset tokens ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS password_reset_tokens (
            id SERIAL PRIMARY KEY,
            email VARCHAR(320) NOT NULL,
            token_hash VARCHAR(128) NOT NULL,
            expires_at TIMESTAMPTZ NOT NULL,
            used BOOLEAN NOT NULL DEFAULT false,
            created_at TIMESTAMPTZ NOT NULL,
            CONSTRAINT uq_password_reset_tokens_token_hash UNIQUE (token_hash)
        )
    """)
    op.execute("CREATE INDEX IF NOT EXISTS ix_password_reset_tokens_email ON password_reset_tokens(email)")
    op.execute("CREATE INDEX IF NOT EXISTS ix_password_reset_tokens_expires_at ON password_reset_tokens(expires_at)")

    # --- Notification settings ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS notification_settings (
            id SERIAL PRIMARY KEY,
            user_email VARCHAR(320) NOT NULL,
            like_email BOOLEAN NOT NULL DEFAULT true,
            like_push BOOLEAN NOT NULL DEFAULT true,
            favorite_email BOOLEAN NOT NULL DEFAULT true,
            favorite_push BOOLEAN NOT NULL DEFAULT true,
            chat_email BOOLEAN NOT NULL DEFAULT true,
            chat_push BOOLEAN NOT NULL DEFAULT true,
            system_email BOOLEAN NOT NULL DEFAULT true,
            system_push BOOLEAN NOT NULL DEFAULT false,
            expo_push_token VARCHAR(255) NOT NULL DEFAULT '',
            CONSTRAINT uq_notification_settings_user_email UNIQUE (user_email)
        )
    """)

    # --- Discovery preferences ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS discovery_preferences (
            email VARCHAR(320) PRIMARY KEY,
            radius_km INTEGER NOT NULL DEFAULT 50
        )
    """)

    # --- Interests ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS interests (
            id SERIAL PRIMARY KEY,
            key VARCHAR(128) NOT NULL,
            CONSTRAINT uq_interests_key UNIQUE (key)
        )
    """)
    op.execute("""
        CREATE TABLE IF NOT EXISTS user_interests (
            user_email VARCHAR(320) NOT NULL,
            interest_id INTEGER NOT NULL REFERENCES interests(id),
            value BOOLEAN NOT NULL DEFAULT false,
            PRIMARY KEY (user_email, interest_id)
        )
    """)
    op.execute("CREATE INDEX IF NOT EXISTS ix_user_interests_user_email ON user_interests(user_email)")


def downgrade() -> None:
    for table in [
        "user_interests",
        "interests",
        "discovery_preferences",
        "notification_settings",
        "password_reset_tokens",
        "user_badges",
        "badges",
        "users",
    ]:
        op.execute(f"DROP TABLE IF EXISTS {table} CASCADE")  # noqa: S608

"""Identity tables: users with both identity channels, refresh-token chains.

Revision ID: 001_identity_tables
Revises:
Create Date: 2026-10-17
"""

from collections.abc import Sequence

import sqlalchemy as sa

from alembic import op

revision: str = "001_identity_tables"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """Create users and refresh_tokens."""
    op.create_table(
        "users",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("username", sa.String(64), nullable=False),
        sa.Column("username_normalized", sa.String(64), nullable=False),
        sa.Column("email", sa.String(320), nullable=True),
        sa.Column("email_confirmed", sa.Boolean(), server_default="false", nullable=False),
        sa.Column("password_hash", sa.String(256), server_default="", nullable=False),
        # --- Discord channel ---
        sa.Column("discord_id", sa.String(32), nullable=True),
        sa.Column("global_name", sa.String(64), nullable=True),
        sa.Column("discriminator", sa.String(8), nullable=True),
        sa.Column("avatar_url", sa.Text(), nullable=True),
        sa.Column("nickname", sa.String(64), nullable=True),
        sa.Column("is_bot", sa.Boolean(), nullable=True),
        sa.Column("public_flags", sa.Integer(), nullable=True),
        sa.Column("joined_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("is_boosting", sa.Boolean(), nullable=True),
        # --- Progression / state ---
        sa.Column("experience", sa.Integer(), server_default="0", nullable=False),
        sa.Column("level", sa.Integer(), server_default="1", nullable=False),
        sa.Column("roles", sa.JSON(), nullable=False),
        sa.Column("is_active", sa.Boolean(), server_default="true", nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("last_updated", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_users_username_normalized", "users", ["username_normalized"], unique=True)
    op.create_index("ix_users_email", "users", ["email"], unique=True, postgresql_where=sa.text("email IS NOT NULL"))
    op.create_index(
        "ix_users_discord_id",
        "users",
        ["discord_id"],
        unique=True,
        postgresql_where=sa.text("discord_id IS NOT NULL"),
    )
    op.execute(
        "ALTER TABLE users ADD CONSTRAINT ck_users_identity_channel "
        "CHECK ((email IS NOT NULL AND password_hash <> '') OR discord_id IS NOT NULL)"
    )
    op.execute("ALTER TABLE users ADD CONSTRAINT ck_users_experience CHECK (experience >= 0)")

    op.create_table(
        "refresh_tokens",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("user_id", sa.String(36), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("token", sa.String(128), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("is_revoked", sa.Boolean(), server_default="false", nullable=False),
        sa.Column("revoked_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("replaced_by_token", sa.String(128), nullable=True),
    )
    op.create_index("ix_refresh_tokens_user_id", "refresh_tokens", ["user_id"])
    op.create_index("ix_refresh_tokens_token", "refresh_tokens", ["token"], unique=True)


def downgrade() -> None:
    """Drop identity tables."""
    op.drop_table("refresh_tokens")
    op.drop_table("users")

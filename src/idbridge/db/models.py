"""ORM models for identity records and refresh-token chains.

Portable column types only, so the same models run on PostgreSQL in
production and on SQLite in the test suite.
"""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column

from idbridge.db.base import Base

# Columns owned by the Discord channel. Cleared together on unlink and copied
# together on a stub merge.
DISCORD_FIELDS: tuple[str, ...] = (
    "discord_id",
    "global_name",
    "discriminator",
    "avatar_url",
    "nickname",
    "is_bot",
    "public_flags",
    "joined_at",
    "is_boosting",
)


def _new_id() -> str:
    return str(uuid.uuid4())


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


class User(Base):
    """Canonical identity record, reachable through credentials, Discord, or both."""

    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    username: Mapped[str] = mapped_column(String(64), nullable=False)
    username_normalized: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    email: Mapped[str | None] = mapped_column(String(320), nullable=True, unique=True)
    email_confirmed: Mapped[bool] = mapped_column(Boolean, default=False, server_default="false")
    password_hash: Mapped[str] = mapped_column(String(256), nullable=False, default="", server_default="")

    # --- Discord channel ---
    discord_id: Mapped[str | None] = mapped_column(String(32), nullable=True, unique=True)
    global_name: Mapped[str | None] = mapped_column(String(64), nullable=True)
    discriminator: Mapped[str | None] = mapped_column(String(8), nullable=True)
    avatar_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    nickname: Mapped[str | None] = mapped_column(String(64), nullable=True)
    is_bot: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    public_flags: Mapped[int | None] = mapped_column(Integer, nullable=True)
    joined_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    is_boosting: Mapped[bool | None] = mapped_column(Boolean, nullable=True)

    # --- Progression ---
    experience: Mapped[int] = mapped_column(Integer, default=0, server_default="0")
    level: Mapped[int] = mapped_column(Integer, default=1, server_default="1")

    # --- State ---
    roles: Mapped[list[str]] = mapped_column(JSON, default=list)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, server_default="true")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    last_updated: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    @property
    def has_credentials(self) -> bool:
        """True when the credentials channel carries an email or a password hash."""
        return bool(self.email) or bool(self.password_hash)

    @property
    def is_discord_stub(self) -> bool:
        """Discord-only record: no email and no password hash."""
        return not self.has_credentials

    def __repr__(self) -> str:
        return f"<User id={self.id} username={self.username!r} discord_id={self.discord_id!r}>"


# ---------------------------------------------------------------------------
# Refresh tokens
# ---------------------------------------------------------------------------


class RefreshToken(Base):
    """One link in a refresh-token rotation chain.

    ``token`` and ``replaced_by_token`` hold SHA-256 digests; the raw secret
    only ever exists on the client.
    """

    __tablename__ = "refresh_tokens"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    token: Mapped[str] = mapped_column(String(128), nullable=False, unique=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    is_revoked: Mapped[bool] = mapped_column(Boolean, default=False, server_default="false")
    revoked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    replaced_by_token: Mapped[str | None] = mapped_column(String(128), nullable=True)

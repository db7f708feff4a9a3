"""
User Store: keyed storage for identity records.

The core only depends on the ``UserStore`` protocol. ``SqlUserStore`` is the
SQLAlchemy implementation; it normalizes and validates records on every write
so that the identity invariants hold regardless of the caller:

- username is unique case-insensitively (normalized copy with a unique index),
- email and discord_id are unique when non-empty (empty values are stored as NULL),
- every record has an identity channel (email + password hash, or discord_id),
- roles belong to the Role enumeration.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from typing import TYPE_CHECKING, Protocol, runtime_checkable

import structlog
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from idbridge.db.models import User
from idbridge.users.roles import normalize_roles

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

logger = structlog.get_logger()


class StoreFailure(Exception):
    """Infrastructure fault raised by a store. Never converted into a business outcome."""


class UniqueViolation(StoreFailure):
    """A write collided with a unique username, email, discord_id or token."""


class IdentityChannelError(ValueError):
    """Raised when a record would be persisted without any identity channel."""


@runtime_checkable
class UserStore(Protocol):
    async def find_by_id(self, user_id: str) -> User | None: ...

    async def find_by_username(self, username: str) -> User | None: ...

    async def find_by_email(self, email: str) -> User | None: ...

    async def find_by_discord_id(self, discord_id: str) -> User | None: ...

    async def find_by_identifier(self, identifier: str) -> User | None: ...

    async def insert(self, user: User) -> User: ...

    async def update(self, user: User) -> User: ...

    async def delete(self, user: User) -> None: ...


@contextmanager
def translate_errors() -> Iterator[None]:
    """Re-raise SQLAlchemy errors as store failures."""
    try:
        yield
    except IntegrityError as e:
        raise UniqueViolation(str(e.orig)) from e
    except SQLAlchemyError as e:
        raise StoreFailure(str(e)) from e


def prepare_for_write(user: User) -> User:
    """Normalize identity fields and enforce record invariants in place.

    Raises:
        IdentityChannelError: If the record has neither credentials nor a Discord id.
        InvalidRoleError: If a role tag is unknown.
    """
    user.username = user.username.strip()
    user.username_normalized = user.username.lower()
    user.email = user.email.strip().lower() if user.email and user.email.strip() else None
    user.discord_id = user.discord_id.strip() if user.discord_id and user.discord_id.strip() else None
    user.password_hash = user.password_hash or ""
    user.roles = normalize_roles(user.roles or [])

    has_credentials = bool(user.email) and bool(user.password_hash)
    if not has_credentials and not user.discord_id:
        msg = f"User {user.username!r} has neither credentials nor a Discord id"
        raise IdentityChannelError(msg)
    return user


class SqlUserStore:
    """UserStore over an AsyncSession. Writes are flushed, never committed here."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def _one(self, stmt) -> User | None:  # noqa: ANN001
        with translate_errors():
            result = await self._session.execute(stmt)
            return result.scalar_one_or_none()

    async def find_by_id(self, user_id: str) -> User | None:
        """Fetch a user by ID."""
        with translate_errors():
            return await self._session.get(User, user_id)

    async def find_by_username(self, username: str) -> User | None:
        """Fetch a user by username (case-insensitive)."""
        return await self._one(select(User).where(User.username_normalized == username.strip().lower()))

    async def find_by_email(self, email: str) -> User | None:
        """Fetch a user by email (case-insensitive). Empty email never matches."""
        if not email or not email.strip():
            return None
        return await self._one(select(User).where(func.lower(User.email) == email.strip().lower()))

    async def find_by_discord_id(self, discord_id: str) -> User | None:
        """Fetch the user bound to a Discord id. Empty id never matches."""
        if not discord_id or not discord_id.strip():
            return None
        return await self._one(select(User).where(User.discord_id == discord_id.strip()))

    async def find_by_identifier(self, identifier: str) -> User | None:
        """Fetch a user whose email, or failing that username, equals the identifier."""
        if not identifier or not identifier.strip():
            return None
        user = await self.find_by_email(identifier)
        if user is None:
            user = await self.find_by_username(identifier)
        return user

    async def insert(self, user: User) -> User:
        prepare_for_write(user)
        with translate_errors():
            self._session.add(user)
            await self._session.flush()
        logger.debug("user_inserted", user_id=user.id)
        return user

    async def update(self, user: User) -> User:
        prepare_for_write(user)
        with translate_errors():
            await self._session.flush()
        return user

    async def delete(self, user: User) -> None:
        with translate_errors():
            await self._session.delete(user)
            await self._session.flush()
        logger.debug("user_deleted", user_id=user.id)

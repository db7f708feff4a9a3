"""Refresh Token Ledger: durable rotation chains.

Rows are never deleted. Revocation and rotation are conditional UPDATEs on
``is_revoked = false`` so that, of two concurrent callers presenting the same
token, exactly one observes a changed row.
"""

from __future__ import annotations

import hashlib
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import select, update

from idbridge.db.models import RefreshToken
from idbridge.users.store import translate_errors

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession


def hash_token(raw_token: str) -> str:
    """Digest under which a refresh token is stored and looked up."""
    return hashlib.sha256(raw_token.encode()).hexdigest()


class RefreshTokenLedger:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def add(self, user_id: str, token_digest: str, created_at: datetime, expires_at: datetime) -> RefreshToken:
        """Store a new active link of a chain."""
        record = RefreshToken(
            user_id=user_id,
            token=token_digest,
            created_at=created_at,
            expires_at=expires_at,
            is_revoked=False,
        )
        with translate_errors():
            self._session.add(record)
            await self._session.flush()
        return record

    async def get(self, token_digest: str) -> RefreshToken | None:
        """Look up a refresh token by its digest."""
        with translate_errors():
            result = await self._session.execute(select(RefreshToken).where(RefreshToken.token == token_digest))
            return result.scalar_one_or_none()

    async def mark_rotated(self, token_digest: str, successor_digest: str, now: datetime) -> bool:
        """Revoke an active token and point it at its successor.

        Returns False if the token was no longer active (someone else won).
        """
        stmt = (
            update(RefreshToken)
            .where(RefreshToken.token == token_digest)
            .where(RefreshToken.is_revoked == False)  # noqa: E712
            .values(is_revoked=True, revoked_at=now, replaced_by_token=successor_digest)
        )
        with translate_errors():
            result = await self._session.execute(stmt)
        return result.rowcount == 1  # type: ignore[attr-defined]

    async def revoke(self, token_digest: str, now: datetime) -> bool:
        """Revoke a token if it is still active. Returns True if a row changed."""
        stmt = (
            update(RefreshToken)
            .where(RefreshToken.token == token_digest)
            .where(RefreshToken.is_revoked == False)  # noqa: E712
            .values(is_revoked=True, revoked_at=now)
        )
        with translate_errors():
            result = await self._session.execute(stmt)
        return result.rowcount == 1  # type: ignore[attr-defined]

    async def revoke_all_for_user(self, user_id: str, now: datetime) -> int:
        """Revoke every active token of a user. Returns count revoked."""
        stmt = (
            update(RefreshToken)
            .where(RefreshToken.user_id == user_id)
            .where(RefreshToken.is_revoked == False)  # noqa: E712
            .values(is_revoked=True, revoked_at=now)
        )
        with translate_errors():
            result = await self._session.execute(stmt)
        return result.rowcount  # type: ignore[attr-defined,no-any-return]

    async def chain_for_user(self, user_id: str) -> list[RefreshToken]:
        """All tokens ever issued to a user, oldest first."""
        with translate_errors():
            result = await self._session.execute(
                select(RefreshToken).where(RefreshToken.user_id == user_id).order_by(RefreshToken.created_at)
            )
            return list(result.scalars().all())

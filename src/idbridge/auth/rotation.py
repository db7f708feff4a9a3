"""Refresh Rotation State Machine.

Per-token states::

    active --rotate--> rotated   (terminal, replaced_by_token set)
    active --revoke--> revoked   (terminal)
    active --time----> expired   (terminal, derived from expires_at)

Rotation is single use by construction: the old row is flipped with a
conditional update, so a second attempt with the same value always fails
with ``TOKEN_REVOKED``.
"""

from __future__ import annotations

import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import TYPE_CHECKING

import structlog

from idbridge.auth.ledger import hash_token
from idbridge.auth.outcomes import FailureKind, Outcome

if TYPE_CHECKING:
    from idbridge.auth.ledger import RefreshTokenLedger
    from idbridge.db.models import RefreshToken, User
    from idbridge.users.store import UserStore

logger = structlog.get_logger()


class TokenState(str, Enum):
    ACTIVE = "active"
    ROTATED = "rotated"
    REVOKED = "revoked"
    EXPIRED = "expired"


@dataclass(frozen=True)
class IssuedToken:
    """A freshly minted refresh token. ``value`` is the only copy of the secret."""

    value: str
    expires_at: datetime


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes (SQLite round-trips) as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def state_of(record: RefreshToken, now: datetime) -> TokenState:
    """Derive the state of a ledger row at ``now``."""
    if record.is_revoked:
        return TokenState.ROTATED if record.replaced_by_token else TokenState.REVOKED
    if as_utc(now) >= as_utc(record.expires_at):
        return TokenState.EXPIRED
    return TokenState.ACTIVE


_FAILURE_FOR_STATE = {
    TokenState.ROTATED: FailureKind.TOKEN_REVOKED,
    TokenState.REVOKED: FailureKind.TOKEN_REVOKED,
    TokenState.EXPIRED: FailureKind.TOKEN_EXPIRED,
}


class RefreshRotation:
    def __init__(
        self,
        users: UserStore,
        ledger: RefreshTokenLedger,
        refresh_token_ttl: timedelta,
        *,
        reuse_revokes_chain: bool = False,
    ) -> None:
        self._users = users
        self._ledger = ledger
        self._ttl = refresh_token_ttl
        self._reuse_revokes_chain = reuse_revokes_chain

    async def issue(self, user_id: str) -> IssuedToken:
        """Start (or extend) a chain with a new active token for ``user_id``."""
        now = datetime.now(timezone.utc)
        raw = secrets.token_urlsafe(48)
        expires_at = now + self._ttl
        await self._ledger.add(user_id, hash_token(raw), created_at=now, expires_at=expires_at)
        return IssuedToken(value=raw, expires_at=expires_at)

    async def rotate(self, token: str) -> Outcome[tuple[IssuedToken, User]]:
        """Exchange an active token for its successor and the (re-fetched) owner."""
        now = datetime.now(timezone.utc)
        digest = hash_token(token)
        record = await self._ledger.get(digest)
        if record is None:
            return Outcome.fail(FailureKind.TOKEN_NOT_FOUND)

        state = state_of(record, now)
        if state is TokenState.ROTATED:
            await self._on_reuse(record, now)
        if state is not TokenState.ACTIVE:
            return Outcome.fail(_FAILURE_FOR_STATE[state])

        raw = secrets.token_urlsafe(48)
        successor = hash_token(raw)
        if not await self._ledger.mark_rotated(digest, successor, now):
            # Lost the race against a concurrent rotation or logout.
            return Outcome.fail(FailureKind.TOKEN_REVOKED)

        expires_at = now + self._ttl
        await self._ledger.add(record.user_id, successor, created_at=now, expires_at=expires_at)

        owner = await self._users.find_by_id(record.user_id)
        if owner is None:
            return Outcome.fail(FailureKind.NOT_FOUND)

        logger.info("refresh_rotated", user_id=record.user_id, token_id=record.id)
        return Outcome.success((IssuedToken(value=raw, expires_at=expires_at), owner))

    async def revoke(self, token: str) -> bool:
        """Revoke a token. Absent or already revoked tokens are a no-op.

        Returns True if this call changed a row.
        """
        changed = await self._ledger.revoke(hash_token(token), datetime.now(timezone.utc))
        if changed:
            logger.info("refresh_revoked")
        return changed

    async def revoke_all(self, user_id: str) -> int:
        return await self._ledger.revoke_all_for_user(user_id, datetime.now(timezone.utc))

    async def _on_reuse(self, record: RefreshToken, now: datetime) -> None:
        chain = await self._ledger.chain_for_user(record.user_id)
        logger.warning(
            "refresh_token_reuse_detected",
            user_id=record.user_id,
            token_id=record.id,
            chain_length=len(chain),
            active_tokens=sum(1 for t in chain if state_of(t, now) is TokenState.ACTIVE),
            revoke_chain=self._reuse_revokes_chain,
        )
        if self._reuse_revokes_chain:
            count = await self._ledger.revoke_all_for_user(record.user_id, now)
            logger.warning("refresh_chain_revoked", user_id=record.user_id, revoked_count=count)

"""Unit of work: one transaction per public operation.

Every multi-step check-then-write sequence (uniqueness check + insert, token
lookup + revoke + insert, merge + delete) runs inside one of these, so the
database unique indexes and conditional updates see it as a single
transaction. Work is only persisted by an explicit ``commit()``; leaving the
block without one rolls everything back.
"""

from __future__ import annotations

from types import TracebackType
from typing import TYPE_CHECKING

from idbridge.auth.ledger import RefreshTokenLedger
from idbridge.users.store import SqlUserStore, translate_errors

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker


class UnitOfWork:
    users: SqlUserStore
    refresh_tokens: RefreshTokenLedger

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory
        self._session: AsyncSession | None = None

    @property
    def session(self) -> AsyncSession:
        if self._session is None:
            msg = "Unit of work is not active"
            raise RuntimeError(msg)
        return self._session

    async def __aenter__(self) -> UnitOfWork:
        self._session = self._session_factory()
        self.users = SqlUserStore(self._session)
        self.refresh_tokens = RefreshTokenLedger(self._session)
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        try:
            if self.session.in_transaction():
                await self.rollback()
        finally:
            await self.session.close()
            self._session = None

    async def commit(self) -> None:
        with translate_errors():
            await self.session.commit()

    async def rollback(self) -> None:
        await self.session.rollback()

"""
Identity Linking Engine.

Binds a Discord identity to a credentialed account, absorbing a Discord-only
stub when one already holds the Discord id, and removes a Discord linkage.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import TYPE_CHECKING

import structlog

from idbridge.auth.outcomes import FailureKind, Outcome
from idbridge.db.models import DISCORD_FIELDS, User
from idbridge.db.uow import UnitOfWork
from idbridge.linking.merge import IdentitySnapshot, MergeRejected, apply_fields, decide_merge
from idbridge.users.store import UniqueViolation

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

logger = structlog.get_logger()


class LinkingService:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def link_discord(self, user_id: str, discord_id: str) -> Outcome[User]:
        """
        Link ``discord_id`` to the user ``user_id``.

        Returns:
            Outcome carrying the updated user, or one of INVALID_DISCORD_ID
            (blank id), NOT_FOUND, MERGE_CONFLICT (the Discord id belongs to
            another full account) or DISCORD_ALREADY_LINKED (lost a race on
            the unique index).
        """
        discord_id = discord_id.strip() if discord_id else ""
        if not discord_id:
            return Outcome.fail(FailureKind.INVALID_DISCORD_ID)

        async with UnitOfWork(self._session_factory) as uow:
            user = await uow.users.find_by_id(user_id)
            if user is None:
                return Outcome.fail(FailureKind.NOT_FOUND)

            owner = await uow.users.find_by_discord_id(discord_id)
            now = datetime.now(timezone.utc)

            try:
                if owner is None or owner.id == user.id:
                    user.discord_id = discord_id
                    user.last_updated = now
                    await uow.users.update(user)
                    logger.info("discord_linked", user_id=user.id, discord_id=discord_id)
                else:
                    decision = decide_merge(IdentitySnapshot.of(user), IdentitySnapshot.of(owner))
                    if isinstance(decision, MergeRejected):
                        logger.info(
                            "discord_link_rejected",
                            user_id=user.id,
                            discord_id=discord_id,
                            owner_id=owner.id,
                        )
                        return Outcome.fail(decision.failure)

                    stub_id = owner.id
                    # The stub must leave the unique discord_id index before the target joins it.
                    await uow.users.delete(owner)
                    apply_fields(user, decision.fields)
                    user.last_updated = now
                    await uow.users.update(user)
                    logger.info(
                        "discord_stub_merged",
                        user_id=user.id,
                        stub_id=stub_id,
                        discord_id=discord_id,
                        experience=user.experience,
                        level=user.level,
                    )
            except UniqueViolation:
                return Outcome.fail(FailureKind.DISCORD_ALREADY_LINKED)

            await uow.commit()
            return Outcome.success(user)

    async def unlink_discord(self, user_id: str) -> Outcome[User]:
        """
        Clear every Discord-channel field of a user.

        Credentials and progression are untouched. A second call on the same
        user fails with NOT_LINKED.
        """
        async with UnitOfWork(self._session_factory) as uow:
            user = await uow.users.find_by_id(user_id)
            if user is None:
                return Outcome.fail(FailureKind.NOT_FOUND)
            if not user.discord_id:
                return Outcome.fail(FailureKind.NOT_LINKED)
            if not (user.email and user.password_hash):
                return Outcome.fail(FailureKind.LAST_IDENTITY_CHANNEL)

            discord_id = user.discord_id
            for name in DISCORD_FIELDS:
                setattr(user, name, None)
            user.last_updated = datetime.now(timezone.utc)
            await uow.users.update(user)
            await uow.commit()

            logger.info("discord_unlinked", user_id=user.id, discord_id=discord_id)
            return Outcome.success(user)

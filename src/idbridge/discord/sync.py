"""
Discord guild membership sync.

The bot side calls ``sync_member`` for every guild member it sees. Unknown
members become Discord-only stubs that a later registration or link can
claim; known members get their Discord-channel fields refreshed.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import TYPE_CHECKING

import structlog

from idbridge.db.models import User
from idbridge.db.uow import UnitOfWork
from idbridge.users.roles import Role, parse_role

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from idbridge.users.store import UserStore

logger = structlog.get_logger()


@dataclass(frozen=True)
class GuildMember:
    """The subset of a guild member the identity layer cares about."""

    id: str
    username: str
    global_name: str | None = None
    discriminator: str | None = None
    avatar_url: str | None = None
    nickname: str | None = None
    is_bot: bool = False
    public_flags: int = 0
    joined_at: datetime | None = None
    premium_since: datetime | None = None


def _utc(value: datetime | None) -> datetime:
    if value is None:
        return datetime.now(timezone.utc)
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _apply_member(user: User, member: GuildMember) -> None:
    user.discord_id = member.id
    user.global_name = member.global_name or ""
    user.discriminator = member.discriminator
    user.avatar_url = member.avatar_url
    user.nickname = member.nickname or ""
    user.is_bot = member.is_bot
    user.public_flags = member.public_flags
    user.joined_at = _utc(member.joined_at)
    user.is_boosting = member.premium_since is not None


async def _available_username(users: UserStore, member: GuildMember, owner_id: str | None = None) -> str:
    """Discord username, suffixed with the Discord id if another user already holds it."""
    holder = await users.find_by_username(member.username)
    if holder is None or holder.id == owner_id:
        return member.username
    return f"{member.username}_{member.id}"


class DiscordSyncService:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        default_role: str | Role = Role.STUDENT,
    ) -> None:
        self._session_factory = session_factory
        self._default_role = parse_role(default_role)

    async def sync_member(self, member: GuildMember) -> User:
        """Create a stub for an unknown member or refresh a known one."""
        async with UnitOfWork(self._session_factory) as uow:
            now = datetime.now(timezone.utc)
            user = await uow.users.find_by_discord_id(member.id)

            if user is not None:
                _apply_member(user, member)
                if user.is_discord_stub:
                    # Credentialed users keep the login name they chose.
                    user.username = await _available_username(uow.users, member, owner_id=user.id)
                user.last_updated = now
                await uow.users.update(user)
                created = False
            else:
                user = User(
                    username=await _available_username(uow.users, member),
                    email=None,
                    password_hash="",
                    email_confirmed=False,
                    roles=[self._default_role.value],
                    experience=0,
                    level=1,
                    is_active=True,
                    created_at=now,
                    last_updated=now,
                )
                _apply_member(user, member)
                await uow.users.insert(user)
                created = True

            await uow.commit()

        logger.info("discord_member_synced", user_id=user.id, discord_id=member.id, created=created)
        return user

    async def get_by_discord_id(self, discord_id: str) -> User | None:
        async with UnitOfWork(self._session_factory) as uow:
            user = await uow.users.find_by_discord_id(discord_id)
            if user is not None:
                uow.session.expunge(user)
            return user

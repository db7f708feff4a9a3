"""Tests for Discord guild member sync."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from idbridge.discord.sync import GuildMember
from tests.conftest import PASSWORD, insert_user, load_user


def _member(**kwargs) -> GuildMember:
    defaults = {
        "id": "D1",
        "username": "bee",
        "global_name": "Bee",
        "discriminator": "0001",
        "avatar_url": "https://cdn.example/bee.png",
        "nickname": "b",
        "public_flags": 64,
        "joined_at": datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc),
    }
    defaults.update(kwargs)
    return GuildMember(**defaults)


class TestCreateStub:
    async def test_unknown_member_becomes_stub(self, sync_service, session_factory):
        user = await sync_service.sync_member(_member())
        stored = await load_user(session_factory, user.id)
        assert stored.discord_id == "D1"
        assert stored.username == "bee"
        assert stored.email is None
        assert stored.password_hash == ""
        assert stored.is_discord_stub
        assert stored.roles == ["Student"]
        assert stored.experience == 0
        assert stored.level == 1
        assert stored.is_active is True
        assert stored.is_boosting is False

    async def test_boosting_from_premium_since(self, sync_service):
        user = await sync_service.sync_member(_member(premium_since=datetime.now(timezone.utc)))
        assert user.is_boosting is True

    async def test_missing_joined_at_defaults_to_now(self, sync_service):
        before = datetime.now(timezone.utc) - timedelta(seconds=1)
        user = await sync_service.sync_member(_member(joined_at=None))
        assert user.joined_at >= before

    async def test_naive_joined_at_is_utc(self, sync_service):
        user = await sync_service.sync_member(_member(joined_at=datetime(2024, 1, 1, 8, 0)))
        assert user.joined_at == datetime(2024, 1, 1, 8, 0, tzinfo=timezone.utc)

    async def test_username_collision_gets_suffix(self, sync_service, session_factory, hasher):
        await insert_user(session_factory, username="bee", email="bee@x.com", password_hash=hasher.hash(PASSWORD))
        user = await sync_service.sync_member(_member())
        assert user.username == "bee_D1"


class TestRefreshExisting:
    async def test_resync_updates_fields_without_duplicating(self, sync_service, session_factory):
        first = await sync_service.sync_member(_member())
        second = await sync_service.sync_member(_member(username="bee2", global_name="Bee Two", nickname=None))
        assert second.id == first.id

        stored = await load_user(session_factory, first.id)
        assert stored.username == "bee2"
        assert stored.global_name == "Bee Two"
        assert stored.nickname == ""

    async def test_credentialed_user_keeps_login_name(self, sync_service, session_factory, hasher):
        owner = await insert_user(
            session_factory,
            username="alice",
            email="a@x.com",
            password_hash=hasher.hash(PASSWORD),
            discord_id="D1",
            experience=300,
        )
        await sync_service.sync_member(_member(username="discord_alice", global_name="Alice!"))
        stored = await load_user(session_factory, owner.id)
        assert stored.username == "alice"
        assert stored.global_name == "Alice!"
        assert stored.experience == 300

    async def test_get_by_discord_id(self, sync_service):
        created = await sync_service.sync_member(_member())
        assert (await sync_service.get_by_discord_id("D1")).id == created.id
        assert await sync_service.get_by_discord_id("nope") is None

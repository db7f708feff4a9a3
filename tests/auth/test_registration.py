"""Tests for registration, including promotion of Discord stubs."""

from __future__ import annotations

from sqlalchemy import func, select

from idbridge.auth.outcomes import FailureKind
from idbridge.auth.service import AuthService
from idbridge.db.models import User
from idbridge.db.uow import UnitOfWork
from tests.conftest import PASSWORD, insert_stub, insert_user, load_user, load_user_by_discord_id


async def _count_users(session_factory, **filters) -> int:
    async with UnitOfWork(session_factory) as uow:
        stmt = select(func.count()).select_from(User)
        for name, value in filters.items():
            stmt = stmt.where(getattr(User, name) == value)
        return (await uow.session.execute(stmt)).scalar_one()


class TestRegisterFresh:
    async def test_creates_user_with_defaults(self, auth_service, session_factory, hasher, signer):
        outcome = await auth_service.register("Carol@Example.com", "carol", PASSWORD)
        assert outcome.ok
        session = outcome.unwrap()

        user = await load_user(session_factory, session.user.id)
        assert user.email == "carol@example.com"
        assert user.username == "carol"
        assert user.roles == ["Student"]
        assert user.experience == 0
        assert user.level == 1
        assert user.is_active is True
        assert user.email_confirmed is False
        assert user.discord_id is None
        assert hasher.verify(PASSWORD, user.password_hash)
        assert signer.verify_access(session.access_token)["sub"] == user.id

    async def test_configured_default_role(self, session_factory, hasher, signer):
        service = AuthService(session_factory, hasher, signer, default_role="teacher")
        session = (await service.register("t@example.com", "teach", PASSWORD)).unwrap()
        assert session.user.roles == ["Teacher"]

    async def test_new_discord_id_is_stored(self, auth_service, session_factory):
        session = (await auth_service.register("d@example.com", "dave", PASSWORD, discord_id="D900")).unwrap()
        user = await load_user(session_factory, session.user.id)
        assert user.discord_id == "D900"

    async def test_registered_user_can_login(self, auth_service):
        await auth_service.register("erin@example.com", "erin", PASSWORD)
        assert (await auth_service.login("erin", PASSWORD)).ok


class TestRegisterDuplicates:
    async def test_duplicate_email_creates_nothing(self, auth_service, session_factory):
        await auth_service.register("carol@example.com", "carol", PASSWORD)
        outcome = await auth_service.register("CAROL@example.com", "other", PASSWORD)
        assert outcome.failure is FailureKind.DUPLICATE_IDENTITY
        assert await _count_users(session_factory) == 1

    async def test_duplicate_username_case_insensitive(self, auth_service, session_factory):
        await auth_service.register("carol@example.com", "carol", PASSWORD)
        outcome = await auth_service.register("other@example.com", "CAROL", PASSWORD)
        assert outcome.failure is FailureKind.DUPLICATE_IDENTITY
        assert await _count_users(session_factory) == 1

    async def test_discord_id_of_full_account_rejected(self, auth_service, session_factory):
        await auth_service.register("carol@example.com", "carol", PASSWORD, discord_id="D1")
        outcome = await auth_service.register("other@example.com", "other", PASSWORD, discord_id="D1")
        assert outcome.failure is FailureKind.DISCORD_ALREADY_LINKED
        assert await _count_users(session_factory) == 1

    async def test_duplicate_identity_checked_before_discord_link(self, auth_service, session_factory, hasher):
        await insert_user(
            session_factory,
            username="carol",
            email="carol@example.com",
            password_hash=hasher.hash(PASSWORD),
            discord_id="D1",
        )
        outcome = await auth_service.register("carol@example.com", "x", PASSWORD, discord_id="D1")
        assert outcome.failure is FailureKind.DUPLICATE_IDENTITY


class TestRegisterOverStub:
    async def test_stub_is_promoted_in_place(self, auth_service, session_factory, hasher):
        stub = await insert_stub(session_factory, "D1", experience=75, level=3)

        outcome = await auth_service.register("frank@example.com", "frank", PASSWORD, discord_id="D1")
        assert outcome.ok
        session = outcome.unwrap()

        assert session.user.id == stub.id
        assert await _count_users(session_factory, discord_id="D1") == 1
        assert await _count_users(session_factory) == 1

        promoted = await load_user_by_discord_id(session_factory, "D1")
        assert promoted.id == stub.id
        assert promoted.email == "frank@example.com"
        assert promoted.username == "frank"
        assert hasher.verify(PASSWORD, promoted.password_hash)
        assert promoted.email_confirmed is False
        # Discord and progression fields survive the promotion.
        assert promoted.global_name == "Global D1"
        assert promoted.experience == 75
        assert promoted.level == 3

    async def test_stub_may_keep_its_own_username(self, auth_service, session_factory):
        await insert_stub(session_factory, "D1", username="Frank")
        outcome = await auth_service.register("frank@example.com", "frank", PASSWORD, discord_id="D1")
        assert outcome.ok
        assert await _count_users(session_factory) == 1

    async def test_username_of_another_user_still_rejected(self, auth_service, session_factory, hasher):
        await insert_stub(session_factory, "D1")
        await insert_user(
            session_factory,
            username="taken",
            email="taken@example.com",
            password_hash=hasher.hash(PASSWORD),
        )
        outcome = await auth_service.register("new@example.com", "taken", PASSWORD, discord_id="D1")
        assert outcome.failure is FailureKind.DUPLICATE_IDENTITY

    async def test_promoted_stub_can_login(self, auth_service, session_factory):
        await insert_stub(session_factory, "D1")
        await auth_service.register("frank@example.com", "frank", PASSWORD, discord_id="D1")
        assert (await auth_service.login("frank@example.com", PASSWORD)).ok


class TestPasswordPolicy:
    async def test_short_password_rejected(self, auth_service, session_factory):
        outcome = await auth_service.register("carol@example.com", "carol", "short")
        assert outcome.failure is FailureKind.WEAK_PASSWORD
        assert "at least 8" in outcome.message
        assert await _count_users(session_factory) == 0

    async def test_configured_bounds(self, session_factory, hasher, signer):
        service = AuthService(
            session_factory,
            hasher,
            signer,
            password_min_length=12,
            password_max_length=16,
        )
        assert (await service.register("a@example.com", "alpha", PASSWORD)).failure is FailureKind.WEAK_PASSWORD
        assert (await service.register("a@example.com", "alpha", "x" * 17)).failure is FailureKind.WEAK_PASSWORD
        assert (await service.register("a@example.com", "alpha", "LongEnough12")).ok

    async def test_stub_untouched_by_rejected_promotion(self, auth_service, session_factory):
        stub = await insert_stub(session_factory, "D1")
        outcome = await auth_service.register("s@example.com", "stubby", "   ", discord_id="D1")
        assert outcome.failure is FailureKind.WEAK_PASSWORD
        assert (await load_user(session_factory, stub.id)).is_discord_stub

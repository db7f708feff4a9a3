"""Shared test fixtures."""

from __future__ import annotations

from collections.abc import AsyncGenerator
from datetime import datetime, timezone

import pytest
import pytest_asyncio
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from idbridge.auth.jwt import JwtSigner
from idbridge.auth.password import Argon2Hasher
from idbridge.auth.service import AuthService
from idbridge.db.base import Base
from idbridge.db.models import User
from idbridge.db.uow import UnitOfWork
from idbridge.discord.sync import DiscordSyncService
from idbridge.linking.service import LinkingService

PASSWORD = "SecureP@ss1"


@pytest.fixture(scope="session")
def rsa_keys() -> tuple[str, str]:
    """Generate an RSA key pair once per test session."""
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    private_pem = key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode()
    public_pem = (
        key.public_key()
        .public_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PublicFormat.SubjectPublicKeyInfo,
        )
        .decode()
    )
    return private_pem, public_pem


@pytest.fixture
def signer(rsa_keys: tuple[str, str]) -> JwtSigner:
    private_pem, public_pem = rsa_keys
    return JwtSigner(private_pem, public_pem, issuer="idbridge-test")


@pytest.fixture
def hasher() -> Argon2Hasher:
    """Cheap argon2 parameters so the suite stays fast."""
    return Argon2Hasher(time_cost=1, memory_cost=1024, parallelism=1)


@pytest_asyncio.fixture
async def session_factory() -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """Fresh in-memory SQLite database per test."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()


@pytest.fixture
def auth_service(session_factory, hasher, signer) -> AuthService:
    return AuthService(session_factory, hasher, signer)


@pytest.fixture
def linking_service(session_factory) -> LinkingService:
    return LinkingService(session_factory)


@pytest.fixture
def sync_service(session_factory) -> DiscordSyncService:
    return DiscordSyncService(session_factory)


async def insert_user(session_factory, **fields) -> User:
    """Insert a user straight through the store, bypassing the services."""
    now = datetime.now(timezone.utc)
    fields.setdefault("roles", ["Student"])
    fields.setdefault("experience", 0)
    fields.setdefault("level", 1)
    fields.setdefault("is_active", True)
    fields.setdefault("created_at", now)
    fields.setdefault("last_updated", now)
    async with UnitOfWork(session_factory) as uow:
        user = await uow.users.insert(User(**fields))
        await uow.commit()
    return user


async def insert_stub(session_factory, discord_id: str, username: str | None = None, **fields) -> User:
    """Insert a Discord-only stub (no email, no password hash)."""
    return await insert_user(
        session_factory,
        username=username or f"discord_{discord_id}",
        email=None,
        password_hash="",
        discord_id=discord_id,
        global_name=fields.pop("global_name", f"Global {discord_id}"),
        discriminator=fields.pop("discriminator", "0001"),
        avatar_url=fields.pop("avatar_url", f"https://cdn.example/{discord_id}.png"),
        nickname=fields.pop("nickname", "nick"),
        is_bot=fields.pop("is_bot", False),
        public_flags=fields.pop("public_flags", 64),
        joined_at=fields.pop("joined_at", datetime(2024, 5, 1, tzinfo=timezone.utc)),
        is_boosting=fields.pop("is_boosting", True),
        **fields,
    )


async def load_user(session_factory, user_id: str) -> User | None:
    async with UnitOfWork(session_factory) as uow:
        user = await uow.users.find_by_id(user_id)
        if user is not None:
            uow.session.expunge(user)
        return user


async def load_user_by_discord_id(session_factory, discord_id: str) -> User | None:
    async with UnitOfWork(session_factory) as uow:
        user = await uow.users.find_by_discord_id(discord_id)
        if user is not None:
            uow.session.expunge(user)
        return user

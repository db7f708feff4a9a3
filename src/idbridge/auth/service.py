"""
Session Issuer.

Handles login, registration (including promotion of a Discord stub), refresh
rotation and logout. Each public method is one unit of work.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import TYPE_CHECKING

import structlog

from idbridge.auth.outcomes import FailureKind, Outcome
from idbridge.auth.password import PasswordStrengthError, validate_password_strength
from idbridge.auth.rotation import RefreshRotation
from idbridge.auth.schemas import SessionResponse, UserResponse
from idbridge.db.models import User
from idbridge.db.uow import UnitOfWork
from idbridge.users.roles import Role, parse_role
from idbridge.users.store import UniqueViolation

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from idbridge.auth.jwt import TokenSigner
    from idbridge.auth.password import CredentialHasher

logger = structlog.get_logger()


class AuthService:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        hasher: CredentialHasher,
        signer: TokenSigner,
        *,
        default_role: str | Role = Role.STUDENT,
        reuse_revokes_chain: bool = False,
        password_min_length: int = 8,
        password_max_length: int = 128,
    ) -> None:
        self._session_factory = session_factory
        self._hasher = hasher
        self._signer = signer
        self._default_role = parse_role(default_role)
        self._reuse_revokes_chain = reuse_revokes_chain
        self._password_min_length = password_min_length
        self._password_max_length = password_max_length

    def _rotation(self, uow: UnitOfWork) -> RefreshRotation:
        return RefreshRotation(
            uow.users,
            uow.refresh_tokens,
            self._signer.refresh_token_ttl,
            reuse_revokes_chain=self._reuse_revokes_chain,
        )

    async def _issue_session(self, uow: UnitOfWork, user: User) -> SessionResponse:
        """Mint an access token and start a new refresh chain for ``user``."""
        refresh = await self._rotation(uow).issue(user.id)
        return self._session_response(user, refresh.value)

    def _session_response(self, user: User, refresh_token: str) -> SessionResponse:
        ttl = self._signer.access_token_ttl
        return SessionResponse(
            access_token=self._signer.issue_access(user),
            refresh_token=refresh_token,
            expires_at=datetime.now(timezone.utc) + ttl,
            expires_in=int(ttl.total_seconds()),
            user=UserResponse.model_validate(user),
        )

    # -----------------------------------------------------------------------
    # Login
    # -----------------------------------------------------------------------

    async def login(self, identifier: str, password: str) -> Outcome[SessionResponse]:
        """
        Authenticate with email or username + password.

        The disabled-account check only runs after the password verifies, so a
        wrong-password probe cannot tell a disabled account from any other.
        """
        async with UnitOfWork(self._session_factory) as uow:
            user = await uow.users.find_by_identifier(identifier)
            if user is None or not self._hasher.verify(password, user.password_hash):
                logger.info("login_failed", reason="invalid_credentials")
                return Outcome.fail(FailureKind.INVALID_CREDENTIALS)

            if not user.is_active:
                logger.info("login_failed", user_id=user.id, reason="account_disabled")
                return Outcome.fail(FailureKind.ACCOUNT_DISABLED)

            if self._hasher.needs_rehash(user.password_hash):
                user.password_hash = self._hasher.hash(password)
                user.last_updated = datetime.now(timezone.utc)
                await uow.users.update(user)
                logger.info("password_rehashed", user_id=user.id)

            session = await self._issue_session(uow, user)
            await uow.commit()

        logger.info("login_succeeded", user_id=user.id)
        return Outcome.success(session)

    # -----------------------------------------------------------------------
    # Registration
    # -----------------------------------------------------------------------

    async def register(
        self,
        email: str,
        username: str,
        password: str,
        discord_id: str | None = None,
    ) -> Outcome[SessionResponse]:
        """
        Register a credentialed account.

        When ``discord_id`` names a Discord-only stub, the stub is promoted in
        place instead of creating a second record for the same person.
        A password outside the configured length bounds is WEAK_PASSWORD.
        """
        email = email.strip().lower()
        username = username.strip()
        discord_id = discord_id.strip() if discord_id and discord_id.strip() else None

        try:
            validate_password_strength(password, self._password_min_length, self._password_max_length)
        except PasswordStrengthError as e:
            logger.info("registration_rejected", reason="weak_password")
            return Outcome.fail(FailureKind.WEAK_PASSWORD, str(e))

        async with UnitOfWork(self._session_factory) as uow:
            discord_owner = await uow.users.find_by_discord_id(discord_id) if discord_id else None
            stub = discord_owner if discord_owner is not None and discord_owner.is_discord_stub else None

            for existing in (await uow.users.find_by_email(email), await uow.users.find_by_username(username)):
                if existing is not None and (stub is None or existing.id != stub.id):
                    logger.info("registration_rejected", reason="duplicate_identity")
                    return Outcome.fail(FailureKind.DUPLICATE_IDENTITY)

            if discord_owner is not None and stub is None:
                logger.info("registration_rejected", reason="discord_already_linked", discord_id=discord_id)
                return Outcome.fail(FailureKind.DISCORD_ALREADY_LINKED)

            password_hash = self._hasher.hash(password)
            now = datetime.now(timezone.utc)

            try:
                if stub is not None:
                    stub.email = email
                    stub.username = username
                    stub.password_hash = password_hash
                    stub.email_confirmed = False
                    stub.last_updated = now
                    user = await uow.users.update(stub)
                    logger.info("stub_promoted", user_id=user.id, discord_id=discord_id)
                else:
                    user = await uow.users.insert(
                        User(
                            email=email,
                            username=username,
                            password_hash=password_hash,
                            discord_id=discord_id,
                            email_confirmed=False,
                            roles=[self._default_role.value],
                            experience=0,
                            level=1,
                            is_active=True,
                            created_at=now,
                            last_updated=now,
                        )
                    )
                    logger.info("user_registered", user_id=user.id)
            except UniqueViolation:
                # A concurrent registration won the unique index.
                return Outcome.fail(FailureKind.DUPLICATE_IDENTITY)

            session = await self._issue_session(uow, user)
            await uow.commit()

        return Outcome.success(session)

    # -----------------------------------------------------------------------
    # Refresh / logout
    # -----------------------------------------------------------------------

    async def refresh(self, refresh_token: str) -> Outcome[SessionResponse]:
        """Rotate a refresh token and issue a fresh access token for its owner."""
        async with UnitOfWork(self._session_factory) as uow:
            rotated = await self._rotation(uow).rotate(refresh_token)
            if not rotated.ok:
                # Commit anyway: a reuse may have revoked the rest of the chain.
                await uow.commit()
                return Outcome.fail(rotated.failure, rotated.message)  # type: ignore[arg-type]

            issued, user = rotated.unwrap()
            if not user.is_active:
                # The successor is never handed out.
                await self._rotation(uow).revoke(issued.value)
                await uow.commit()
                logger.info("refresh_rejected", user_id=user.id, reason="account_disabled")
                return Outcome.fail(FailureKind.ACCOUNT_DISABLED)

            session = self._session_response(user, issued.value)
            await uow.commit()

        return Outcome.success(session)

    async def logout(self, refresh_token: str) -> Outcome[None]:
        """Revoke a refresh token. Safe to call any number of times."""
        async with UnitOfWork(self._session_factory) as uow:
            await self._rotation(uow).revoke(refresh_token)
            await uow.commit()
        return Outcome.success(None)

    async def logout_all(self, user_id: str) -> Outcome[int]:
        """Revoke every active refresh token of a user."""
        async with UnitOfWork(self._session_factory) as uow:
            count = await self._rotation(uow).revoke_all(user_id)
            await uow.commit()
        logger.info("all_sessions_revoked", user_id=user_id, revoked_count=count)
        return Outcome.success(count)

    async def get_user(self, user_id: str) -> User | None:
        async with UnitOfWork(self._session_factory) as uow:
            user = await uow.users.find_by_id(user_id)
            if user is not None:
                uow.session.expunge(user)
            return user

"""FastAPI dependencies: service wiring and bearer authentication."""

from __future__ import annotations

from functools import lru_cache

import jwt
from fastapi import Depends, HTTPException, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from idbridge.auth.jwt import get_signer
from idbridge.auth.password import Argon2Hasher
from idbridge.auth.service import AuthService
from idbridge.config import get_settings
from idbridge.database import get_session_factory
from idbridge.db.models import User
from idbridge.discord.sync import DiscordSyncService
from idbridge.linking.service import LinkingService
from idbridge.users.roles import Role

_bearer = HTTPBearer()


@lru_cache
def get_hasher() -> Argon2Hasher:
    return Argon2Hasher()


def get_auth_service() -> AuthService:
    settings = get_settings()
    return AuthService(
        get_session_factory(),
        get_hasher(),
        get_signer(),
        default_role=settings.default_role,
        reuse_revokes_chain=settings.refresh_reuse_revokes_chain,
        password_min_length=settings.password_min_length,
        password_max_length=settings.password_max_length,
    )


def get_linking_service() -> LinkingService:
    return LinkingService(get_session_factory())


def get_discord_sync_service() -> DiscordSyncService:
    return DiscordSyncService(get_session_factory(), default_role=get_settings().default_role)


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Security(_bearer),
    service: AuthService = Depends(get_auth_service),
) -> User:
    """
    Extract and verify the access JWT, return the User.

    Raises 401 on a bad token or unknown user, 403 on a disabled account.
    """
    try:
        payload = get_signer().verify_access(credentials.credentials)
    except jwt.InvalidTokenError as e:
        raise HTTPException(status_code=401, detail=str(e)) from e

    user = await service.get_user(str(payload["sub"]))
    if user is None:
        raise HTTPException(status_code=401, detail="User not found")
    if not user.is_active:
        raise HTTPException(status_code=403, detail="Account is disabled")
    return user


def ensure_self_or_admin(current: User, user_id: str) -> None:
    """Only the account owner or an Admin may change an account's linkage."""
    if current.id != user_id and Role.ADMIN.value not in (current.roles or []):
        raise HTTPException(status_code=403, detail="Not allowed to modify another user")

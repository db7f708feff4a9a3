"""Authentication and identity-linking HTTP endpoints."""

from __future__ import annotations

from typing import NoReturn

from fastapi import APIRouter, Depends, HTTPException

from idbridge.auth.dependencies import (
    ensure_self_or_admin,
    get_auth_service,
    get_current_user,
    get_linking_service,
)
from idbridge.auth.outcomes import FailureKind, Outcome
from idbridge.auth.schemas import (
    LinkRequest,
    LoginRequest,
    LogoutRequest,
    RefreshRequest,
    RegisterRequest,
    SessionResponse,
    UnlinkRequest,
    UserResponse,
)
from idbridge.auth.service import AuthService
from idbridge.db.models import User
from idbridge.linking.service import LinkingService

router = APIRouter(prefix="/api/v1/auth", tags=["Authentication"])

_STATUS_FOR_FAILURE: dict[FailureKind, int] = {
    FailureKind.INVALID_CREDENTIALS: 401,
    FailureKind.ACCOUNT_DISABLED: 403,
    FailureKind.DUPLICATE_IDENTITY: 409,
    FailureKind.DISCORD_ALREADY_LINKED: 409,
    FailureKind.MERGE_CONFLICT: 409,
    FailureKind.TOKEN_NOT_FOUND: 401,
    FailureKind.TOKEN_EXPIRED: 401,
    FailureKind.TOKEN_REVOKED: 401,
    FailureKind.NOT_FOUND: 404,
    FailureKind.NOT_LINKED: 400,
    FailureKind.LAST_IDENTITY_CHANNEL: 400,
    FailureKind.INVALID_DISCORD_ID: 400,
    FailureKind.WEAK_PASSWORD: 400,
}


def _raise_failure(outcome: Outcome) -> NoReturn:
    assert outcome.failure is not None
    raise HTTPException(
        status_code=_STATUS_FOR_FAILURE[outcome.failure],
        detail=outcome.message,
        headers={"X-Failure-Kind": outcome.failure.value},
    )


# ---------------------------------------------------------------------------
# Credentials
# ---------------------------------------------------------------------------


@router.post("/register", response_model=SessionResponse, status_code=201)
async def register(
    body: RegisterRequest,
    service: AuthService = Depends(get_auth_service),
) -> SessionResponse:
    """Register with email + username + password, optionally claiming a Discord stub."""
    outcome = await service.register(body.email, body.username, body.password, body.discord_id)
    if not outcome.ok:
        _raise_failure(outcome)
    return outcome.unwrap()


@router.post("/login", response_model=SessionResponse)
async def login(
    body: LoginRequest,
    service: AuthService = Depends(get_auth_service),
) -> SessionResponse:
    """Login with email or username + password."""
    outcome = await service.login(body.identifier, body.password)
    if not outcome.ok:
        _raise_failure(outcome)
    return outcome.unwrap()


@router.get("/me", response_model=UserResponse)
async def me(user: User = Depends(get_current_user)) -> UserResponse:
    return UserResponse.model_validate(user)


# ---------------------------------------------------------------------------
# Token management
# ---------------------------------------------------------------------------


@router.post("/refresh", response_model=SessionResponse)
async def refresh(
    body: RefreshRequest,
    service: AuthService = Depends(get_auth_service),
) -> SessionResponse:
    """Rotate refresh token. Any failure means the client must log in again."""
    outcome = await service.refresh(body.refresh_token)
    if not outcome.ok:
        _raise_failure(outcome)
    return outcome.unwrap()


@router.post("/logout")
async def logout(
    body: LogoutRequest,
    service: AuthService = Depends(get_auth_service),
) -> dict[str, str]:
    """Revoke a refresh token."""
    await service.logout(body.refresh_token)
    return {"status": "logged_out"}


@router.post("/logout-all")
async def logout_all(
    user: User = Depends(get_current_user),
    service: AuthService = Depends(get_auth_service),
) -> dict[str, str]:
    """Revoke all refresh tokens for the current user."""
    outcome = await service.logout_all(user.id)
    return {"status": "all_sessions_revoked", "revoked_count": str(outcome.unwrap())}


# ---------------------------------------------------------------------------
# Discord linking
# ---------------------------------------------------------------------------


@router.post("/link-discord", response_model=UserResponse)
async def link_discord(
    body: LinkRequest,
    current: User = Depends(get_current_user),
    service: LinkingService = Depends(get_linking_service),
) -> UserResponse:
    ensure_self_or_admin(current, body.user_id)
    outcome = await service.link_discord(body.user_id, body.discord_id)
    if not outcome.ok:
        _raise_failure(outcome)
    return UserResponse.model_validate(outcome.unwrap())


@router.post("/unlink-discord", response_model=UserResponse)
async def unlink_discord(
    body: UnlinkRequest,
    current: User = Depends(get_current_user),
    service: LinkingService = Depends(get_linking_service),
) -> UserResponse:
    ensure_self_or_admin(current, body.user_id)
    outcome = await service.unlink_discord(body.user_id)
    if not outcome.ok:
        _raise_failure(outcome)
    return UserResponse.model_validate(outcome.unwrap())

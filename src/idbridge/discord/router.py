"""Bot-facing endpoint for pushing guild members into the identity store."""

from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from idbridge.auth.dependencies import get_current_user, get_discord_sync_service
from idbridge.auth.schemas import UserResponse
from idbridge.db.models import User
from idbridge.discord.sync import DiscordSyncService, GuildMember
from idbridge.users.roles import Role

router = APIRouter(prefix="/api/v1/discord", tags=["Discord"])


class GuildMemberPayload(BaseModel):
    id: str = Field(..., min_length=1, max_length=32)
    username: str = Field(..., min_length=1, max_length=64)
    global_name: str | None = None
    discriminator: str | None = Field(None, max_length=8)
    avatar_url: str | None = None
    nickname: str | None = None
    is_bot: bool = False
    public_flags: int = 0
    joined_at: datetime | None = None
    premium_since: datetime | None = None


@router.post("/members", response_model=UserResponse)
async def sync_member(
    body: GuildMemberPayload,
    current: User = Depends(get_current_user),
    service: DiscordSyncService = Depends(get_discord_sync_service),
) -> UserResponse:
    """Create or refresh the identity record of a guild member (Admin only)."""
    if Role.ADMIN.value not in (current.roles or []):
        raise HTTPException(status_code=403, detail="Admin role required")
    user = await service.sync_member(GuildMember(**body.model_dump()))
    return UserResponse.model_validate(user)

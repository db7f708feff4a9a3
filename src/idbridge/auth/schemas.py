"""Request/response schemas for authentication and linking."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, EmailStr, Field, field_validator


# ---------------------------------------------------------------------------
# Credentials
# ---------------------------------------------------------------------------


class RegisterRequest(BaseModel):
    """Email registration request. ``discord_id`` claims an existing Discord stub."""

    email: EmailStr
    username: str = Field(..., min_length=3, max_length=64)
    password: str = Field(..., min_length=1, max_length=1024)
    discord_id: str | None = Field(None, min_length=1, max_length=32)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        """Normalize email to lowercase."""
        return v.lower().strip()

    @field_validator("username")
    @classmethod
    def strip_username(cls, v: str) -> str:
        return v.strip()


class LoginRequest(BaseModel):
    """Login with email or username + password."""

    identifier: str = Field(..., min_length=1, max_length=320)
    password: str = Field(..., min_length=1, max_length=128)


# ---------------------------------------------------------------------------
# Tokens
# ---------------------------------------------------------------------------


class RefreshRequest(BaseModel):
    """Refresh token rotation request."""

    refresh_token: str


class LogoutRequest(BaseModel):
    """Logout (revoke refresh token)."""

    refresh_token: str


# ---------------------------------------------------------------------------
# Linking
# ---------------------------------------------------------------------------


class LinkRequest(BaseModel):
    model_config = {"str_strip_whitespace": True}

    user_id: str
    discord_id: str = Field(..., min_length=1, max_length=32)


class UnlinkRequest(BaseModel):
    user_id: str


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------


class UserResponse(BaseModel):
    """Sanitized user projection. Never carries the password hash."""

    id: str
    email: str | None = None
    username: str
    discord_id: str | None = None
    global_name: str | None = None
    avatar_url: str | None = None
    experience: int = 0
    level: int = 1
    roles: list[str] = Field(default_factory=list)
    is_active: bool = True
    created_at: datetime | None = None

    model_config = {"from_attributes": True}


class SessionResponse(BaseModel):
    """Token pair returned after login, registration or refresh."""

    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_at: datetime
    expires_in: int = 3600
    user: UserResponse

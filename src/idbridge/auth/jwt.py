"""
RS256 JWT access credentials.

Access tokens carry the user id (``sub``) and the user's role tags. Refresh
tokens are not JWTs: they are opaque secrets tracked by the refresh ledger,
but their lifetime is owned here so that both credentials are configured in
one place.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

import jwt

from idbridge.config import Settings, get_settings

if TYPE_CHECKING:
    from idbridge.db.models import User


@runtime_checkable
class TokenSigner(Protocol):
    """Issues and verifies short-lived signed access credentials."""

    access_token_ttl: timedelta
    refresh_token_ttl: timedelta

    def issue_access(self, user: User) -> str: ...

    def verify_access(self, token: str) -> dict[str, Any]: ...


class JwtSigner:
    """TokenSigner backed by PyJWT."""

    def __init__(
        self,
        private_key: str,
        public_key: str,
        *,
        algorithm: str = "RS256",
        issuer: str = "idbridge",
        access_token_ttl: timedelta = timedelta(minutes=60),
        refresh_token_ttl: timedelta = timedelta(days=7),
    ) -> None:
        self._private_key = private_key
        self._public_key = public_key
        self.algorithm = algorithm
        self.issuer = issuer
        self.access_token_ttl = access_token_ttl
        self.refresh_token_ttl = refresh_token_ttl

    @classmethod
    def from_settings(cls, settings: Settings) -> JwtSigner:
        """Build a signer from key files named in the settings."""
        return cls(
            Path(settings.jwt_private_key_path).read_text(),
            Path(settings.jwt_public_key_path).read_text(),
            algorithm=settings.jwt_algorithm,
            issuer=settings.jwt_issuer,
            access_token_ttl=timedelta(minutes=settings.jwt_access_token_expire_minutes),
            refresh_token_ttl=timedelta(days=settings.jwt_refresh_token_expire_days),
        )

    def issue_access(self, user: User) -> str:
        """
        Create a short-lived access token.

        Args:
            user: The authenticated user. Its id and roles are embedded.

        Returns:
            Encoded JWT string.
        """
        now = datetime.now(timezone.utc)
        payload: dict[str, Any] = {
            "sub": str(user.id),
            "roles": list(user.roles or []),
            "iat": now,
            "exp": now + self.access_token_ttl,
            "iss": self.issuer,
            "type": "access",
        }
        return jwt.encode(payload, self._private_key, algorithm=self.algorithm)

    def verify_access(self, token: str) -> dict[str, Any]:
        """
        Verify and decode an access token.

        Raises:
            jwt.InvalidTokenError: If the token is invalid, expired, or not an access token.
        """
        try:
            payload: dict[str, Any] = jwt.decode(
                token,
                self._public_key,
                algorithms=[self.algorithm],
                issuer=self.issuer,
            )
        except jwt.ExpiredSignatureError:
            msg = "Token has expired"
            raise jwt.InvalidTokenError(msg) from None

        if payload.get("type") != "access":
            msg = f"Expected token type 'access', got '{payload.get('type')}'"
            raise jwt.InvalidTokenError(msg)

        return payload


_signer: JwtSigner | None = None


def get_signer() -> JwtSigner:
    """Get the process-wide signer (keys loaded from disk on first call)."""
    global _signer  # noqa: PLW0603
    if _signer is None:
        _signer = JwtSigner.from_settings(get_settings())
    return _signer


def set_signer(signer: JwtSigner | None) -> None:
    """Replace the cached signer (useful for testing)."""
    global _signer  # noqa: PLW0603
    _signer = signer

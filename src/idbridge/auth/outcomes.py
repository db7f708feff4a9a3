"""Single result type for every business failure path.

Login, registration, rotation and linking all return an ``Outcome``. Callers
branch on ``outcome.ok`` / ``outcome.failure`` instead of mixing ``None``
returns with raised exceptions. Infrastructure faults are not outcomes; they
propagate as exceptions.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Generic, TypeVar

T = TypeVar("T")


class FailureKind(str, Enum):
    INVALID_CREDENTIALS = "invalid_credentials"
    ACCOUNT_DISABLED = "account_disabled"
    DUPLICATE_IDENTITY = "duplicate_identity"
    DISCORD_ALREADY_LINKED = "discord_already_linked"
    MERGE_CONFLICT = "merge_conflict"
    TOKEN_NOT_FOUND = "token_not_found"
    TOKEN_EXPIRED = "token_expired"
    TOKEN_REVOKED = "token_revoked"
    NOT_FOUND = "not_found"
    NOT_LINKED = "not_linked"
    LAST_IDENTITY_CHANNEL = "last_identity_channel"
    INVALID_DISCORD_ID = "invalid_discord_id"
    WEAK_PASSWORD = "weak_password"


_DEFAULT_MESSAGES: dict[FailureKind, str] = {
    FailureKind.INVALID_CREDENTIALS: "Invalid username/email or password",
    FailureKind.ACCOUNT_DISABLED: "Account is disabled",
    FailureKind.DUPLICATE_IDENTITY: "Email or username is already in use",
    FailureKind.DISCORD_ALREADY_LINKED: "Discord account is already linked to another user",
    FailureKind.MERGE_CONFLICT: "Discord account belongs to another full account",
    FailureKind.TOKEN_NOT_FOUND: "Refresh token not found",
    FailureKind.TOKEN_EXPIRED: "Refresh token has expired",
    FailureKind.TOKEN_REVOKED: "Refresh token has been revoked",
    FailureKind.NOT_FOUND: "User not found",
    FailureKind.NOT_LINKED: "User has no linked Discord account",
    FailureKind.LAST_IDENTITY_CHANNEL: "Discord is the only identity channel of this user",
    FailureKind.INVALID_DISCORD_ID: "Discord id must not be blank",
    FailureKind.WEAK_PASSWORD: "Password does not meet the length policy",
}


class OutcomeError(Exception):
    """Raised by ``Outcome.unwrap`` on a failed outcome."""

    def __init__(self, failure: FailureKind, message: str) -> None:
        super().__init__(message)
        self.failure = failure


@dataclass(frozen=True)
class Outcome(Generic[T]):
    value: T | None = None
    failure: FailureKind | None = None
    message: str = ""

    @property
    def ok(self) -> bool:
        return self.failure is None

    @classmethod
    def success(cls, value: T | None = None) -> Outcome[T]:
        return cls(value=value)

    @classmethod
    def fail(cls, failure: FailureKind, message: str | None = None) -> Outcome[T]:
        return cls(failure=failure, message=message or _DEFAULT_MESSAGES[failure])

    def unwrap(self) -> T:
        """Return the value, raising ``OutcomeError`` if this outcome failed."""
        if self.failure is not None:
            raise OutcomeError(self.failure, self.message)
        return self.value  # type: ignore[return-value]

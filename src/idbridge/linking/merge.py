"""Pure merge policy between a credentialed identity and a Discord identity.

``decide_merge`` takes two snapshots and returns the field values the target
should end up with, or a rejection. No store I/O happens here.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any

from idbridge.auth.outcomes import FailureKind
from idbridge.db.models import DISCORD_FIELDS

if TYPE_CHECKING:
    from idbridge.db.models import User


@dataclass(frozen=True)
class IdentitySnapshot:
    id: str
    email: str | None = None
    password_hash: str = ""
    discord_id: str | None = None
    global_name: str | None = None
    discriminator: str | None = None
    avatar_url: str | None = None
    nickname: str | None = None
    is_bot: bool | None = None
    public_flags: int | None = None
    joined_at: datetime | None = None
    is_boosting: bool | None = None
    experience: int = 0
    level: int = 1

    @classmethod
    def of(cls, user: User) -> IdentitySnapshot:
        return cls(
            id=user.id,
            email=user.email,
            password_hash=user.password_hash or "",
            experience=user.experience or 0,
            level=user.level or 0,
            **{name: getattr(user, name) for name in DISCORD_FIELDS},
        )

    @property
    def is_stub(self) -> bool:
        return not self.email and not self.password_hash


@dataclass(frozen=True)
class MergeAllowed:
    fields: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class MergeRejected:
    failure: FailureKind = FailureKind.MERGE_CONFLICT


MergeDecision = MergeAllowed | MergeRejected


def decide_merge(target: IdentitySnapshot, other: IdentitySnapshot) -> MergeDecision:
    """Decide whether ``other``'s Discord identity may be absorbed into ``target``.

    Only a Discord-only stub can be absorbed. Its Discord-channel fields move
    over wholesale; progression is the pointwise maximum, so neither side ever
    loses experience or levels and nothing is granted twice.
    """
    if not other.is_stub:
        return MergeRejected()

    fields: dict[str, Any] = {name: getattr(other, name) for name in DISCORD_FIELDS}
    fields["experience"] = max(target.experience, other.experience)
    fields["level"] = max(target.level, other.level)
    return MergeAllowed(fields=fields)


def apply_fields(user: User, fields: dict[str, Any]) -> None:
    for name, value in fields.items():
        setattr(user, name, value)

"""Closed role enumeration and validation at the store boundary."""

from __future__ import annotations

from collections.abc import Iterable
from enum import Enum


class Role(str, Enum):
    ADMIN = "Admin"
    TEACHER = "Teacher"
    STUDENT = "Student"


class InvalidRoleError(ValueError):
    """Raised when a role tag is not part of the Role enumeration."""


def parse_role(value: str | Role) -> Role:
    """Resolve a role tag (case-insensitive) to a Role member."""
    if isinstance(value, Role):
        return value
    for role in Role:
        if role.value.lower() == str(value).strip().lower():
            return role
    msg = f"Unknown role: {value!r}"
    raise InvalidRoleError(msg)


def normalize_roles(values: Iterable[str | Role]) -> list[str]:
    """Validate role tags and return them as an ordered, de-duplicated list of tags.

    Raises:
        InvalidRoleError: If any tag is unknown.
    """
    seen: list[str] = []
    for value in values:
        tag = parse_role(value).value
        if tag not in seen:
            seen.append(tag)
    return seen

"""
Password hashing and validation using argon2id.

Argon2id is the winner of the Password Hashing Competition and is resistant
to both GPU-based and side-channel attacks.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

import argon2


class PasswordStrengthError(ValueError):
    """Raised when a password does not meet the configured policy."""


@runtime_checkable
class CredentialHasher(Protocol):
    """One-way password hashing contract consumed by the session issuer."""

    def hash(self, password: str) -> str: ...

    def verify(self, password: str, password_hash: str) -> bool: ...

    def needs_rehash(self, password_hash: str) -> bool: ...


class Argon2Hasher:
    """CredentialHasher backed by argon2-cffi."""

    def __init__(
        self,
        time_cost: int = 2,
        memory_cost: int = 65536,  # 64 MB
        parallelism: int = 1,
    ) -> None:
        self._hasher = argon2.PasswordHasher(
            time_cost=time_cost,
            memory_cost=memory_cost,
            parallelism=parallelism,
            hash_len=32,
            salt_len=16,
            type=argon2.Type.ID,  # argon2id
        )

    def hash(self, password: str) -> str:
        """Hash a password using argon2id. Returns the full hash string."""
        return self._hasher.hash(password)

    def verify(self, password: str, password_hash: str) -> bool:
        """
        Verify a password against its argon2id hash.

        Returns True if the password matches. Never raises on mismatch, and an
        empty hash (Discord-only account) never verifies.
        """
        if not password_hash:
            return False
        try:
            return self._hasher.verify(password_hash, password)
        except argon2.exceptions.VerifyMismatchError:
            return False
        except argon2.exceptions.InvalidHashError:
            return False

    def needs_rehash(self, password_hash: str) -> bool:
        """Check if the hash needs to be updated (parameters changed)."""
        return self._hasher.check_needs_rehash(password_hash)



def validate_password_strength(password: str, min_length: int = 8, max_length: int = 128) -> None:
    """
    Validate a password against the length policy.

    Raises PasswordStrengthError if the password is blank, shorter than
    ``min_length`` or longer than ``max_length`` (huge inputs make hashing a DoS vector).
    """
    if not password or not password.strip():
        msg = "Password cannot be empty"
        raise PasswordStrengthError(msg)
    if len(password) < min_length:
        msg = f"Password must be at least {min_length} characters"
        raise PasswordStrengthError(msg)
    if len(password) > max_length:
        msg = f"Password must not exceed {max_length} characters"
        raise PasswordStrengthError(msg)

"""Password hashing (argon2id) and strength rules for local credentials."""

from __future__ import annotations

import argon2

from hikemeet.config import get_settings
from hikemeet.errors import ValidationError

_hasher = argon2.PasswordHasher(
    time_cost=2,
    memory_cost=64 * 1024,
    parallelism=1,
    hash_len=32,
    salt_len=16,
    type=argon2.Type.ID,
)


class PasswordStrengthError(ValidationError):
    """The password breaks one of the strength rules."""


def hash_password(password: str) -> str:
    return _hasher.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    """True on a match. A mismatch or a corrupt hash is False, never an exception."""
    try:
        return _hasher.verify(password_hash, password)
    except (argon2.exceptions.VerifyMismatchError, argon2.exceptions.InvalidHashError):
        return False


def needs_rehash(password_hash: str) -> bool:
    """True when the hash was made with older cost parameters."""
    return _hasher.check_needs_rehash(password_hash)


def validate_password_strength(password: str) -> None:
    """Raise PasswordStrengthError naming the first rule the password breaks.

    Rules: not blank, within the configured length bounds, at least one
    letter and at least one digit.
    """
    settings = get_settings()
    rules = (
        (bool(password and password.strip()), "Password cannot be empty"),
        (len(password) >= settings.password_min_length,
         f"Password must be at least {settings.password_min_length} characters"),
        (len(password) <= settings.password_max_length,
         f"Password must not exceed {settings.password_max_length} characters"),
        (any(c.isalpha() for c in password), "Password must contain at least one letter"),
        (any(c.isdigit() for c in password), "Password must contain at least one digit"),
    )
    for ok, message in rules:
        if not ok:
            raise PasswordStrengthError(message)

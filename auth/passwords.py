"""
auth/passwords.py -- Password hashing and password/username policy.

Passwords: bcrypt used directly (no passlib wrapper). The hash is opaque to the
rest of the package -- only hash_password() and verify_password() look inside.
bcrypt.checkpw compares digests in constant time.

Policy: PasswordPolicy mirrors the usual identity-framework defaults (digit,
lower, upper, non-alphanumeric) with a configurable minimum length. bcrypt
only reads the first 72 bytes, and newer releases reject longer input, so the
policy refuses anything above that rather than truncating silently.

Layer rule: no imports from api/ or client/. Import from core/ is allowed.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

import bcrypt

from auth.errors import ValidationError
from core.config import Settings

_BCRYPT_MAX_BYTES = 72
_USERNAME_RE = re.compile(r"^[A-Za-z0-9._@+\-]{1,255}$")


def hash_password(plain: str) -> str:
    """Return a bcrypt hash of the given plaintext password."""
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash."""
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except (ValueError, TypeError):
        return False


# Timing equalization dummy hash. Login paths verify against it when the
# username does not exist so both failure modes cost one bcrypt round.
DUMMY_HASH: str = hash_password("identity_timing_dummy")


@dataclass(frozen=True)
class PasswordPolicy:
    min_length: int = 5
    require_digit: bool = True
    require_lowercase: bool = True
    require_uppercase: bool = True
    require_non_alphanumeric: bool = True

    @classmethod
    def from_settings(cls, settings: Settings) -> "PasswordPolicy":
        return cls(
            min_length=settings.password_min_length,
            require_digit=settings.password_require_digit,
            require_lowercase=settings.password_require_lowercase,
            require_uppercase=settings.password_require_uppercase,
            require_non_alphanumeric=settings.password_require_non_alphanumeric,
        )

    def violations(self, password: str) -> list[str]:
        """Return human-readable policy violations; empty when the password passes."""
        problems: list[str] = []
        if len(password) < self.min_length:
            problems.append(f"must be at least {self.min_length} characters")
        if len(password.encode("utf-8")) > _BCRYPT_MAX_BYTES:
            problems.append(f"must be at most {_BCRYPT_MAX_BYTES} bytes")
        if self.require_digit and not any(c.isdigit() for c in password):
            problems.append("must contain a digit")
        if self.require_lowercase and not any(c.islower() for c in password):
            problems.append("must contain a lower-case letter")
        if self.require_uppercase and not any(c.isupper() for c in password):
            problems.append("must contain an upper-case letter")
        if self.require_non_alphanumeric and all(c.isalnum() for c in password):
            problems.append("must contain a non-alphanumeric character")
        return problems

    def check(self, password: str) -> None:
        """Raise ValidationError listing every violation."""
        problems = self.violations(password)
        if problems:
            raise ValidationError("Password " + "; ".join(problems) + ".")


def check_username(username: str) -> None:
    if not _USERNAME_RE.match(username):
        raise ValidationError("Username must be 1-255 characters of letters, digits, or ._@+-")

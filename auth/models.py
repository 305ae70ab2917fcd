"""
auth/models.py -- Domain dataclasses for identity entities.

Pattern: Data class (pure data container, zero logic). Dataclasses own the
domain shape; the store and the issuer do the work.

Layer rule: no imports from api/, client/, or core/.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime


@dataclass
class RefreshToken:
    """A long-lived opaque credential exchanged for a new session.

    `token` holds the raw string only on the instance returned by
    TokenIssuer.issue() -- the store persists an HMAC digest and never hands
    the raw value back. Tokens loaded from the store carry token="".
    """

    user_id: str
    issued_at: datetime
    expires_at: datetime
    token: str = ""
    token_hash: str = ""

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at


@dataclass
class User:
    """A registered identity and the aggregate root for its roles and tokens.

    username keeps the caller's casing for display; lookups go through the
    normalized (upper-case) twin column in the store, so "Alice" and "alice"
    are the same user.

    refresh_tokens is ordered by issue time, oldest first.
    """

    username: str
    first_name: str = ""
    last_name: str = ""
    id: str | None = None
    hashed_password: str | None = None
    roles: set[str] = field(default_factory=set)
    refresh_tokens: list[RefreshToken] = field(default_factory=list)
    created_at: str | None = None


@dataclass(frozen=True)
class Role:
    """A named capability tag. Immutable once created."""

    name: str
    created_at: str | None = None

"""
auth/tokens.py -- Access-token JWTs and refresh-token material.

Security design decisions:
  JWT: python-jose with HS256. Access tokens are short-lived, signed with
       SECRET_KEY, and carry user_id, username (sub), roles, and expiry.
       Verification returns None on any failure -- the route layer turns that
       into a 401.

  Refresh tokens: secrets.token_urlsafe(48) gives 384 bits of entropy. Only
       HMAC-SHA256(SECRET_KEY, raw_token) is persisted, so a leaked database
       does not yield usable tokens, and the deterministic digest keeps lookup
       O(1) through a UNIQUE index. bcrypt's slowness is unnecessary for
       high-entropy secrets.

  SECRET_KEY: sourced from core.config.get_settings(). The Settings class
       validates the key at startup.

Layer rule: no imports from api/ or client/. Import from core/ is allowed.
"""

from __future__ import annotations

import hashlib
import hmac
import secrets
from collections.abc import Iterable
from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt

from core.config import get_settings

_settings = get_settings()

_ALGORITHM = "HS256"


# ---------------------------------------------------------------------------
# JWT encode / decode
# ---------------------------------------------------------------------------


def create_access_token(
    user_id: str, username: str, roles: Iterable[str], expire_seconds: int = 0
) -> tuple[str, datetime]:
    """Encode a signed JWT and return it together with its expiry.

    Args:
        user_id:        User UUID stored in the DB.
        username:       Username stored as the JWT subject claim.
        roles:          Role names granted at issue time.
        expire_seconds: Lifetime in seconds. If 0 (default), uses
                        Settings.access_token_expire_seconds.
    """
    duration = expire_seconds if expire_seconds > 0 else _settings.access_token_expire_seconds
    expire = datetime.now(timezone.utc).replace(microsecond=0) + timedelta(seconds=duration)
    payload = {
        "sub": username,
        "user_id": user_id,
        "roles": sorted(roles),
        "exp": expire,
    }
    return jwt.encode(payload, _settings.secret_key, algorithm=_ALGORITHM), expire


def decode_access_token(token: str) -> dict | None:
    """Decode and verify a JWT. Returns the payload dict or None on any failure."""
    try:
        payload = jwt.decode(token, _settings.secret_key, algorithms=[_ALGORITHM])
        if "user_id" not in payload or "roles" not in payload:
            return None
        return payload
    except JWTError:
        return None


# ---------------------------------------------------------------------------
# Refresh-token material
# ---------------------------------------------------------------------------


def generate_refresh_token() -> str:
    return secrets.token_urlsafe(48)


def hash_refresh_token(secret_key: str, raw_token: str) -> str:
    """Return HMAC-SHA256(secret_key, raw_token) as a hex string."""
    return hmac.new(secret_key.encode(), raw_token.encode(), hashlib.sha256).hexdigest()

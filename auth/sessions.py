"""
auth/sessions.py -- Login, refresh, and logout flows.

A session is a short-lived signed access token plus a long-lived refresh
token. The flows compose the CredentialStore, the TokenIssuer, and the JWT
helpers; the store and issuer are explicit arguments, never module globals.

Username enumeration: login() raises the same InvalidCredentials for an
unknown username and for a wrong password, and both paths cost one bcrypt
round (the store verifies against a dummy hash for unknown users).

Layer rule: no imports from api/ or client/.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

from auth.errors import InvalidCredentials, TokenNotFound
from auth.issuer import TokenIssuer
from auth.models import RefreshToken, User
from auth.store import CredentialStore
from auth.tokens import create_access_token

logger = logging.getLogger("identity.sessions")


@dataclass
class Session:
    """Credentials handed to a client after login or refresh.

    expiry is the access token's expiry; the refresh token carries its own.
    """

    user_id: str
    access_token: str
    refresh_token: str
    expiry: datetime


def _open_session(user: User, refresh: RefreshToken) -> Session:
    access_token, expiry = create_access_token(user.id, user.username, user.roles)
    return Session(user_id=user.id, access_token=access_token, refresh_token=refresh.token, expiry=expiry)


def authenticate_user(
    store: CredentialStore, username: str, password: str, timeout: float | None = None
) -> User | None:
    """Return the User if username/password verify, else None.

    Always runs bcrypt whether or not the user exists. Do NOT short-circuit on
    an unknown username -- that reintroduces the timing side channel.
    """
    user = store.find_by_username(username, timeout=timeout)
    verified = store.verify_password(user.id if user is not None else "", password, timeout=timeout)
    if user is None or not verified:
        return None
    return user


def login(
    store: CredentialStore, issuer: TokenIssuer, username: str, password: str, timeout: float | None = None
) -> Session:
    """Authenticate and open a session. Raises InvalidCredentials."""
    user = authenticate_user(store, username, password, timeout=timeout)
    if user is None:
        logger.warning("Failed login for username %r", username)
        raise InvalidCredentials("Invalid username or password.")
    refresh = issuer.issue(user.id, timeout=timeout)
    logger.info("User %s logged in", user.id)
    return _open_session(user, refresh)


def refresh(
    store: CredentialStore, issuer: TokenIssuer, refresh_token: str, timeout: float | None = None
) -> Session:
    """Rotate refresh_token and open a new session.

    The presented token is revoked as part of the rotation. Raises TokenError
    subclasses when the token is unknown, revoked, or expired.
    """
    user_id, new_refresh = issuer.rotate(refresh_token, timeout=timeout)
    user = store.get_by_id(user_id, timeout=timeout)
    if user is None:
        raise TokenNotFound("Refresh token not found.")
    return _open_session(user, new_refresh)


def logout(issuer: TokenIssuer, refresh_token: str, timeout: float | None = None) -> None:
    """Revoke refresh_token. Unknown, expired, or already revoked tokens are a no-op."""
    owner = issuer.owner_of(refresh_token, timeout=timeout)
    if owner is None:
        return
    issuer.revoke(owner, refresh_token, timeout=timeout)
    logger.info("User %s logged out", owner)

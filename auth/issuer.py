"""
auth/issuer.py -- Refresh-token lifecycle: issue, validate, revoke, rotate.

Per-token state machine:

    Active --(expiry passes)--> expired --(next validate)--> Removed
    Active --(revoke / rotate / password change / user delete)--> Removed

Removed is terminal. The store keeps a digest tombstone for every removed
token, and issue() refuses digests that are live or tombstoned, so a token
string is never handed out twice and never validates again.

The issuer owns policy (randomness, digest key, lifetime, expiry checks); the
CredentialStore owns persistence and the per-user locks. Every method takes an
optional `timeout` that is handed to the store unchanged.

Layer rule: no imports from api/ or client/.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timedelta, timezone

from auth.errors import PersistenceError, TokenExpired, TokenNotFound, TokenRevoked
from auth.models import RefreshToken
from auth.store import CredentialStore
from auth.tokens import generate_refresh_token, hash_refresh_token

logger = logging.getLogger("identity.issuer")

# A fresh 384-bit token colliding even once is not expected to happen; a loop
# that keeps failing means the generator is broken.
_MAX_ISSUE_ATTEMPTS = 3


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TokenIssuer:
    """Mints and checks refresh tokens bound to users in a CredentialStore.

    Args:
        store:      The credential store that persists token digests.
        secret_key: HMAC key for token digests. Changing it orphans every
                    stored token.
        lifetime:   How long an issued token stays valid.
        clock:      Returns the current aware UTC datetime. Tests inject a
                    fixed clock to exercise expiry.
    """

    def __init__(
        self,
        store: CredentialStore,
        secret_key: str,
        lifetime: timedelta = timedelta(days=7),
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.store = store
        self._secret_key = secret_key
        self.lifetime = lifetime
        self._clock = clock

    def _digest(self, raw_token: str) -> str:
        return hash_refresh_token(self._secret_key, raw_token)

    def _mint(self, user_id: str) -> RefreshToken:
        raw = generate_refresh_token()
        issued_at = self._clock()
        return RefreshToken(
            user_id=user_id,
            token=raw,
            token_hash=self._digest(raw),
            issued_at=issued_at,
            expires_at=issued_at + self.lifetime,
        )

    def issue(self, user_id: str, timeout: float | None = None) -> RefreshToken:
        """Generate, persist, and return a new refresh token for user_id.

        Raises UserNotFound if the user does not exist.
        """
        for _ in range(_MAX_ISSUE_ATTEMPTS):
            token = self._mint(user_id)
            if self.store.add_refresh_token(token, timeout=timeout):
                logger.info("Refresh token issued for user %s (expires %s)", user_id, token.expires_at.isoformat())
                return token
        raise PersistenceError("Could not generate a unique refresh token.")

    def validate(self, token: str, timeout: float | None = None) -> str:
        """Return the id of the user owning token.

        Raises TokenRevoked (a TokenNotFound) for removed tokens, TokenNotFound
        for tokens never issued, and TokenExpired when past expiry -- the
        expired token is removed on the way out.
        """
        digest = self._digest(token)
        stored = self.store.find_refresh_token(digest, timeout=timeout)
        if stored is None:
            if self.store.is_revoked(digest, timeout=timeout):
                raise TokenRevoked("Refresh token has been revoked.")
            raise TokenNotFound("Refresh token not found.")
        if stored.is_expired(self._clock()):
            self.store.remove_refresh_token(stored.user_id, digest, timeout=timeout)
            logger.info("Expired refresh token removed for user %s", stored.user_id)
            raise TokenExpired("Refresh token has expired.")
        return stored.user_id

    def owner_of(self, token: str, timeout: float | None = None) -> str | None:
        """Return the owning user id of a live token (expired or not), else None."""
        stored = self.store.find_refresh_token(self._digest(token), timeout=timeout)
        return stored.user_id if stored is not None else None

    def revoke(self, user_id: str, token: str, timeout: float | None = None) -> None:
        """Remove token from user_id's token set. Absent tokens are a no-op."""
        if self.store.remove_refresh_token(user_id, self._digest(token), timeout=timeout):
            logger.info("Refresh token revoked for user %s", user_id)

    def revoke_all_for_user(self, user_id: str, timeout: float | None = None) -> None:
        removed = self.store.remove_all_refresh_tokens(user_id, timeout=timeout)
        logger.info("Revoked %d refresh token(s) for user %s", removed, user_id)

    def rotate(self, token: str, timeout: float | None = None) -> tuple[str, RefreshToken]:
        """Exchange token for a new one: validate, revoke, and issue atomically.

        The swap happens in one transaction under the owner's lock, so two
        concurrent rotations of the same token cannot both succeed: the loser
        sees TokenRevoked. Raises the same errors as validate().
        """
        user_id = self.validate(token, timeout=timeout)
        old_digest = self._digest(token)
        for _ in range(_MAX_ISSUE_ATTEMPTS):
            new_token = self._mint(user_id)
            if self.store.replace_refresh_token(user_id, old_digest, new_token, timeout=timeout):
                logger.info("Refresh token rotated for user %s", user_id)
                return user_id, new_token
        raise PersistenceError("Could not generate a unique refresh token.")

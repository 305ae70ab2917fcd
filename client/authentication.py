"""
client/authentication.py -- HTTP client for the three authentication endpoints.

A direct mapping of REST calls to methods, for services and scripts that need
a session from the identity server:

    client = AuthenticationClient("http://localhost:4000/api/v1")
    pair = client.login("alice", "P@ss1")
    pair = client.refresh(pair.refresh_token)
    client.logout(pair.refresh_token)

Failures are raised, not logged and dropped: a caller holding stale
credentials has to know.
AuthenticationClientError carries the HTTP status (None for transport errors)
and the server's error code when the body has the standard envelope.

Layer rule: client/ imports only stdlib and requests. It does NOT import from
api/, auth/, or core/ -- it talks to the server over HTTP only.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional

import requests

logger = logging.getLogger("identity.client")

DEFAULT_BASE_URL = "http://localhost:4000/api/v1"


class AuthenticationClientError(Exception):
    def __init__(self, message: str, status_code: Optional[int] = None, code: Optional[str] = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.code = code


@dataclass(frozen=True)
class TokenPair:
    """Parsed {accessToken, refreshToken, expiry} response."""

    access_token: str
    refresh_token: str
    expiry: datetime

    @classmethod
    def from_json(cls, data: dict[str, Any]) -> "TokenPair":
        try:
            return cls(
                access_token=data["accessToken"],
                refresh_token=data["refreshToken"],
                expiry=datetime.fromisoformat(data["expiry"].replace("Z", "+00:00")),
            )
        except (KeyError, TypeError, AttributeError, ValueError) as exc:
            raise AuthenticationClientError(f"Malformed token response: {exc}") from exc


class AuthenticationClient:
    """Thin wrapper around POST /Authentication/{Login,Logout,Refresh}.

    Args:
        base_url: API root including the version prefix.
        timeout:  Per-request timeout in seconds.
        session:  Optional requests.Session to share a connection pool.
    """

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 10.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.url = f"{base_url.rstrip('/')}/Authentication"
        self.timeout = timeout
        self._session = session or requests.Session()
        # Known endpoints; 3 hops is generous and limits redirect-based SSRF.
        self._session.max_redirects = 3

    def _post(self, endpoint: str, body: dict[str, str]) -> requests.Response:
        try:
            resp = self._session.post(f"{self.url}/{endpoint}", json=body, timeout=self.timeout)
        except requests.RequestException as e:
            logger.warning("%s request failed: %s", endpoint, e)
            raise AuthenticationClientError(f"{endpoint} request failed: {e}") from e
        if resp.status_code >= 400:
            code, message = _error_fields(resp)
            logger.warning("%s rejected with %d (%s)", endpoint, resp.status_code, code)
            raise AuthenticationClientError(message, status_code=resp.status_code, code=code)
        return resp

    def login(self, username: str, password: str) -> TokenPair:
        resp = self._post("Login", {"username": username, "password": password})
        return TokenPair.from_json(resp.json())

    def logout(self, refresh_token: str) -> None:
        self._post("Logout", {"refreshToken": refresh_token})

    def refresh(self, refresh_token: str) -> TokenPair:
        resp = self._post("Refresh", {"refreshToken": refresh_token})
        return TokenPair.from_json(resp.json())

    def close(self) -> None:
        self._session.close()


def _error_fields(resp: requests.Response) -> tuple[Optional[str], str]:
    """Pull (code, message) out of the server's error envelope, if present."""
    try:
        error = resp.json().get("error", {})
        return error.get("code"), error.get("message") or f"HTTP {resp.status_code}"
    except (ValueError, AttributeError):
        return None, f"HTTP {resp.status_code}"

"""Unit tests for client/authentication.py -- AuthenticationClient.

The requests.Session is a MagicMock; no HTTP leaves the process. Tests focus on:
- URL, JSON body, and timeout of each call
- camelCase response parsing into TokenPair
- error envelope mapping and transport failures
"""

from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest
import requests

from client import AuthenticationClient, AuthenticationClientError, TokenPair

# ---------------------------------------------------------------------------
# Shared test data
# ---------------------------------------------------------------------------

_BASE = "http://identity.test/api/v1"

_PAIR_JSON = {
    "accessToken": "access-jwt",
    "refreshToken": "refresh-raw",
    "expiry": "2026-01-01T12:00:00Z",
}


def _response(status_code: int, body=None) -> MagicMock:
    resp = MagicMock()
    resp.status_code = status_code
    if body is None:
        resp.json.side_effect = ValueError("no JSON")
    else:
        resp.json.return_value = body
    return resp


def _client(resp: MagicMock) -> tuple[AuthenticationClient, MagicMock]:
    session = MagicMock()
    session.post.return_value = resp
    return AuthenticationClient(_BASE, timeout=5.0, session=session), session


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------


class TestRequests:
    def test_login_posts_credentials(self):
        client, session = _client(_response(200, _PAIR_JSON))
        pair = client.login("alice", "P@ss1")
        session.post.assert_called_once_with(
            f"{_BASE}/Authentication/Login",
            json={"username": "alice", "password": "P@ss1"},
            timeout=5.0,
        )
        assert pair == TokenPair(
            access_token="access-jwt",
            refresh_token="refresh-raw",
            expiry=datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc),
        )

    def test_refresh_posts_camel_case_token(self):
        client, session = _client(_response(200, _PAIR_JSON))
        client.refresh("refresh-raw")
        session.post.assert_called_once_with(
            f"{_BASE}/Authentication/Refresh", json={"refreshToken": "refresh-raw"}, timeout=5.0
        )

    def test_logout_ignores_empty_body(self):
        client, session = _client(_response(200))
        assert client.logout("refresh-raw") is None
        assert session.post.call_args.args[0] == f"{_BASE}/Authentication/Logout"

    def test_trailing_slash_in_base_url(self):
        client = AuthenticationClient(_BASE + "/", session=MagicMock())
        assert client.url == f"{_BASE}/Authentication"

    def test_redirects_are_capped(self):
        session = MagicMock()
        AuthenticationClient(_BASE, session=session)
        assert session.max_redirects == 3


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class TestErrors:
    def test_error_envelope_is_parsed(self):
        body = {"error": {"code": "invalid_credentials", "message": "Invalid username or password."}}
        client, _ = _client(_response(401, body))
        with pytest.raises(AuthenticationClientError) as exc_info:
            client.login("alice", "wrong")
        assert exc_info.value.status_code == 401
        assert exc_info.value.code == "invalid_credentials"
        assert str(exc_info.value) == "Invalid username or password."

    def test_non_json_error_body(self):
        client, _ = _client(_response(502))
        with pytest.raises(AuthenticationClientError) as exc_info:
            client.refresh("refresh-raw")
        assert exc_info.value.status_code == 502
        assert exc_info.value.code is None
        assert str(exc_info.value) == "HTTP 502"

    def test_transport_error(self):
        session = MagicMock()
        session.post.side_effect = requests.ConnectionError("connection refused")
        client = AuthenticationClient(_BASE, session=session)
        with pytest.raises(AuthenticationClientError) as exc_info:
            client.login("alice", "P@ss1")
        assert exc_info.value.status_code is None
        assert isinstance(exc_info.value.__cause__, requests.ConnectionError)

    def test_malformed_success_body(self):
        client, _ = _client(_response(200, {"accessToken": "only-this"}))
        with pytest.raises(AuthenticationClientError, match="Malformed"):
            client.login("alice", "P@ss1")

    def test_bad_expiry(self):
        client, _ = _client(_response(200, {**_PAIR_JSON, "expiry": "tomorrow"}))
        with pytest.raises(AuthenticationClientError):
            client.refresh("refresh-raw")

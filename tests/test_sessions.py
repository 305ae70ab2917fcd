"""Unit tests for auth/sessions.py -- login, refresh, and logout flows.

Covers:
- the full session lifecycle for a registered Patient
- one InvalidCredentials for unknown usernames and wrong passwords
- refresh rotates: the presented token stops working
- logout is idempotent and only touches the presented token
"""

from datetime import datetime, timezone

import pytest

from auth import sessions
from auth.errors import InvalidCredentials, TokenError, TokenNotFound
from auth.tokens import decode_access_token


class TestLifecycle:
    def test_login_refresh_logout(self, store, issuer, alice):
        first = sessions.login(store, issuer, "alice", "P@ss1")
        assert first.user_id == alice

        second = sessions.refresh(store, issuer, first.refresh_token)
        assert second.refresh_token != first.refresh_token
        with pytest.raises(TokenNotFound):
            issuer.validate(first.refresh_token)

        sessions.logout(issuer, second.refresh_token)
        with pytest.raises(TokenNotFound):
            issuer.validate(second.refresh_token)
        with pytest.raises(TokenError):
            sessions.refresh(store, issuer, second.refresh_token)

    def test_access_token_carries_identity(self, store, issuer, alice):
        session = sessions.login(store, issuer, "alice", "P@ss1")
        payload = decode_access_token(session.access_token)
        assert payload["user_id"] == alice
        assert payload["sub"] == "alice"
        assert payload["roles"] == ["Patient"]

    def test_expiry_is_in_the_future(self, store, issuer, alice):
        session = sessions.login(store, issuer, "alice", "P@ss1")
        assert session.expiry > datetime.now(timezone.utc)

    def test_login_ignores_username_case(self, store, issuer, alice):
        assert sessions.login(store, issuer, "ALICE", "P@ss1").user_id == alice

    def test_each_login_opens_a_separate_session(self, store, issuer, alice):
        a = sessions.login(store, issuer, "alice", "P@ss1")
        b = sessions.login(store, issuer, "alice", "P@ss1")
        sessions.logout(issuer, a.refresh_token)
        assert issuer.validate(b.refresh_token) == alice

    def test_refresh_picks_up_new_roles(self, store, issuer, alice):
        session = sessions.login(store, issuer, "alice", "P@ss1")
        store.assign_role(alice, "Doctor")
        renewed = sessions.refresh(store, issuer, session.refresh_token)
        assert decode_access_token(renewed.access_token)["roles"] == ["Doctor", "Patient"]


class TestLoginFailures:
    def test_wrong_password(self, store, issuer, alice):
        with pytest.raises(InvalidCredentials) as exc_info:
            sessions.login(store, issuer, "alice", "wrong")
        assert exc_info.value.code == "invalid_credentials"

    def test_unknown_username_looks_the_same(self, store, issuer, alice):
        with pytest.raises(InvalidCredentials) as wrong_password:
            sessions.login(store, issuer, "alice", "wrong")
        with pytest.raises(InvalidCredentials) as unknown_user:
            sessions.login(store, issuer, "mallory", "P@ss1")
        assert unknown_user.value.message == wrong_password.value.message

    def test_failed_login_issues_no_token(self, store, issuer, alice):
        with pytest.raises(InvalidCredentials):
            sessions.login(store, issuer, "alice", "wrong")
        assert store.get_by_id(alice).refresh_tokens == []

    def test_authenticate_user(self, store, alice):
        assert sessions.authenticate_user(store, "alice", "P@ss1").id == alice
        assert sessions.authenticate_user(store, "alice", "nope") is None
        assert sessions.authenticate_user(store, "nobody", "P@ss1") is None


class TestLogout:
    def test_unknown_token_is_a_noop(self, issuer, alice):
        sessions.logout(issuer, "never-issued")

    def test_logout_twice(self, store, issuer, alice):
        session = sessions.login(store, issuer, "alice", "P@ss1")
        sessions.logout(issuer, session.refresh_token)
        sessions.logout(issuer, session.refresh_token)
        assert store.get_by_id(alice).refresh_tokens == []

    def test_refresh_after_user_deleted(self, store, issuer, alice):
        session = sessions.login(store, issuer, "alice", "P@ss1")
        store.delete_user(alice)
        with pytest.raises(TokenNotFound):
            sessions.refresh(store, issuer, session.refresh_token)

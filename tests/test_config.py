"""Unit tests for core/config.py -- Settings validation.

Settings is instantiated directly with keyword arguments so the tests do not
depend on (or disturb) the cached get_settings() singleton.
"""

import pytest
from pydantic import ValidationError

from core.config import Settings

_KEY = "k" * 32


class TestSecretKey:
    def test_debug_generates_key(self):
        s = Settings(debug=True, secret_key="")
        assert len(s.secret_key) >= 32

    def test_production_requires_key(self):
        with pytest.raises(ValidationError, match="SECRET_KEY is required"):
            Settings(debug=False, secret_key="")

    def test_short_key_rejected(self):
        with pytest.raises(ValidationError, match="at least 32"):
            Settings(debug=True, secret_key="short")

    def test_explicit_key_kept(self):
        assert Settings(secret_key=_KEY).secret_key == _KEY


class TestRoles:
    def test_defaults(self):
        s = Settings(secret_key=_KEY)
        assert s.default_roles == ["Administrator", "Doctor", "Patient"]
        assert s.default_user_role == "Patient"
        assert s.admin_role == "Administrator"

    def test_default_user_role_must_be_seeded(self):
        with pytest.raises(ValidationError, match="DEFAULT_USER_ROLE"):
            Settings(secret_key=_KEY, default_user_role="Guest")

    def test_admin_role_must_be_seeded(self):
        with pytest.raises(ValidationError, match="ADMIN_ROLE"):
            Settings(secret_key=_KEY, default_roles=["Patient"])


def test_list_fields_read_as_json(monkeypatch):
    monkeypatch.setenv("SECRET_KEY", _KEY)
    monkeypatch.setenv("DEFAULT_ROLES", '["Administrator", "Nurse", "Patient"]')
    assert Settings().default_roles == ["Administrator", "Nurse", "Patient"]


def test_password_policy_defaults():
    s = Settings(secret_key=_KEY)
    assert s.password_min_length == 5
    assert s.password_require_digit and s.password_require_non_alphanumeric

"""Unit tests for auth/passwords.py -- pure logic, bcrypt is the only dependency."""

import pytest

from auth.errors import ValidationError
from auth.passwords import (
    DUMMY_HASH,
    PasswordPolicy,
    check_username,
    hash_password,
    verify_password,
)
from core.config import Settings


class TestHashing:
    def test_hash_verifies(self):
        hashed = hash_password("P@ss1")
        assert verify_password("P@ss1", hashed)
        assert not verify_password("P@ss2", hashed)

    def test_hash_is_salted(self):
        assert hash_password("P@ss1") != hash_password("P@ss1")

    def test_malformed_hash_is_false(self):
        assert verify_password("P@ss1", "not-a-bcrypt-hash") is False

    def test_dummy_hash_is_a_real_hash(self):
        assert DUMMY_HASH.startswith("$2")
        assert not verify_password("P@ss1", DUMMY_HASH)


class TestPasswordPolicy:
    def test_default_policy_accepts_short_complex_password(self):
        PasswordPolicy().check("P@ss1")

    def test_every_violation_is_listed(self):
        problems = PasswordPolicy().violations("abc")
        assert problems == [
            "must be at least 5 characters",
            "must contain a digit",
            "must contain an upper-case letter",
            "must contain a non-alphanumeric character",
        ]

    def test_check_message(self):
        with pytest.raises(ValidationError, match=r"^Password must contain a digit\.$"):
            PasswordPolicy().check("P@sss")

    def test_bcrypt_byte_limit_counts_bytes(self):
        # 4 ASCII bytes + 22 three-byte characters + 2 = 72 bytes; one more goes over.
        assert PasswordPolicy().violations("Aa@1" + "€" * 22 + "bb") == []
        assert "must be at most 72 bytes" in PasswordPolicy().violations("Aa@1" + "€" * 22 + "bbb")

    def test_relaxed_policy(self):
        policy = PasswordPolicy(
            min_length=3,
            require_digit=False,
            require_uppercase=False,
            require_non_alphanumeric=False,
        )
        policy.check("abc")

    def test_from_settings(self):
        settings = Settings(secret_key="k" * 32, password_min_length=12, password_require_uppercase=False)
        policy = PasswordPolicy.from_settings(settings)
        assert policy.min_length == 12
        assert policy.require_uppercase is False
        assert policy.require_digit is True


class TestUsername:
    @pytest.mark.parametrize("username", ["alice", "dr.who", "a_b-c", "alice@clinic.org", "x+1"])
    def test_valid(self, username):
        check_username(username)

    @pytest.mark.parametrize("username", ["", "bob smith", "tab\tname", "a" * 256, "semi;colon"])
    def test_invalid(self, username):
        with pytest.raises(ValidationError):
            check_username(username)

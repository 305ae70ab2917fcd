"""
tests/conftest.py -- Shared test fixtures for the identity server.

This module provides:
  - store / issuer: a file-backed CredentialStore in tmp_path with the default
    roles seeded, plus a TokenIssuer over it (unit tests)
  - api_client: TestClient with an administrator JWT (integration tests)

Design: the API fixture uses a named shared-memory SQLite URI (not plain
:memory:) because both TestClient's thread pool and the store's worker pool
open their own connections. Plain :memory: DBs are per-connection and would
present a blank schema to each thread. Unit tests use a real file in tmp_path
so concurrent writers get SQLite's normal locking.

Environment variables must be set before any auth/core import so
get_settings() auto-generates SECRET_KEY (DEBUG=true), accepts TestClient's
Host header, and does not rate-limit the suite.
"""

from __future__ import annotations

import os
import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager
from datetime import timedelta

# CRITICAL: set before any auth/core import.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("ALLOWED_HOSTS", '["testserver", "localhost"]')
os.environ.setdefault("LOGIN_RATE_LIMIT", "1000/minute")

import pytest
from fastapi.testclient import TestClient

from api.main import app, seed_identity
from auth.issuer import TokenIssuer
from auth.models import User
from auth.store import CredentialStore
from auth.tokens import create_access_token
from core.config import get_settings

TEST_SECRET = "test-secret-key-that-is-at-least-32-characters"
ADMIN_USERNAME = "testadmin"
ADMIN_PASSWORD = "Adm1n!pass"
DEFAULT_ROLES = ["Administrator", "Doctor", "Patient"]


# ---------------------------------------------------------------------------
# Unit-test fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def store(tmp_path) -> Generator[CredentialStore, None, None]:
    """CredentialStore on a fresh SQLite file with the default roles created."""
    s = CredentialStore(f"sqlite:///{tmp_path / 'identity.db'}", timeout=10.0, workers=4)
    s.ensure_roles(DEFAULT_ROLES)
    yield s
    s.close()


@pytest.fixture
def issuer(store: CredentialStore) -> TokenIssuer:
    return TokenIssuer(store, TEST_SECRET, lifetime=timedelta(days=7))


@pytest.fixture
def alice(store: CredentialStore) -> str:
    """Id of a registered Patient named Alice Smith with password P@ss1."""
    return store.create_user(
        User(username="alice", first_name="Alice", last_name="Smith", roles={"Patient"}),
        "P@ss1",
    )


# ---------------------------------------------------------------------------
# Integration fixtures
# ---------------------------------------------------------------------------


def _make_test_store(db_suffix: str) -> CredentialStore:
    """Named shared-memory store, unique per test module."""
    url = f"sqlite:///file:test_identity_{db_suffix}_{uuid.uuid4().hex}?mode=memory&cache=shared&uri=true"
    store = CredentialStore(url, timeout=10.0, workers=4)
    seed_identity(store, get_settings())
    return store


def _patch_lifespan(store: CredentialStore):
    """Return a lifespan that wires the test store and issuer into app.state."""

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.store = store
        app.state.issuer = TokenIssuer(store, get_settings().secret_key)
        yield

    return test_lifespan


@pytest.fixture(scope="module")
def api_client() -> Generator[tuple[TestClient, str, str], None, None]:
    """Yield (client, admin_token, admin_id) for API integration tests.

    The administrator is created before the client starts and a JWT is minted
    directly, so tests that are not about login do not depend on it.
    """
    store = _make_test_store("api")
    admin_id = store.create_user(User(username=ADMIN_USERNAME, roles={"Administrator"}), ADMIN_PASSWORD)
    token, _ = create_access_token(admin_id, ADMIN_USERNAME, ["Administrator"], expire_seconds=3600)

    app.router.lifespan_context = _patch_lifespan(store)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield client, token, admin_id

    store.close()

"""
tests/conftest.py -- Shared test fixtures for Keyhole.

This module provides:
  - make_settings(): a Settings object pointing at an isolated in-memory DB
  - client: TestClient over the full app (API + web), follow_redirects=False
  - store / hasher: unit-level collaborators with no HTTP in between
  - register(): helper that creates an account through the public API

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
for the app fixtures because TestClient runs sync route handlers in a thread
pool. Plain :memory: DBs are per-connection and would present a blank
schema to each worker thread. The named URI format
(file:name?mode=memory&cache=shared&uri=true) shares one in-memory instance
across all connections in the same process.

The DEBUG env var must be set before asgi is imported: asgi builds its
module-level app from the environment, and without SECRET_KEY that only
succeeds in dev mode.
"""

from __future__ import annotations

import os
import uuid
from collections.abc import Generator

# CRITICAL: Set DEBUG before any asgi import so get_settings() can
# auto-generate SECRET_KEY in dev mode instead of raising ValueError.
os.environ.setdefault("DEBUG", "true")

import pytest
from fastapi.testclient import TestClient

from asgi import build_app
from auth.passwords import PasswordHasher
from auth.store import UserStore
from core.config import Settings

TEST_SECRET = "test-secret-key-0123456789abcdef0123456789"

# bcrypt's minimum cost keeps the suite fast; production uses 10.
TEST_ROUNDS = 4


def make_settings(db_name: str, **overrides) -> Settings:
    values = {
        "secret_key": TEST_SECRET,
        "database_url": f"sqlite:///file:{db_name}?mode=memory&cache=shared&uri=true",
        "allowed_hosts": ["testserver"],
        "rate_limit_enabled": False,
        "bcrypt_rounds": TEST_ROUNDS,
    }
    values.update(overrides)
    return Settings(**values)


def unique_email(prefix: str = "user") -> str:
    return f"{prefix}-{uuid.uuid4().hex[:10]}@example.com"


# ---------------------------------------------------------------------------
# Unit-level fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def store() -> Generator[UserStore, None, None]:
    s = UserStore("sqlite:///:memory:")
    yield s
    s.close()


@pytest.fixture
def hasher() -> PasswordHasher:
    return PasswordHasher(rounds=TEST_ROUNDS)


# ---------------------------------------------------------------------------
# App fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def client() -> Generator[TestClient, None, None]:
    """Yield a TestClient over a freshly built app with its own empty DB.

    Function-scoped: the client's cookie jar picks up the session cookie on
    login, so sharing one client across tests would leak sign-ins between
    them. follow_redirects=False lets tests assert on redirect Locations.
    """
    settings = make_settings(f"test_keyhole_{uuid.uuid4().hex}")
    app = build_app(settings)
    with TestClient(app, follow_redirects=False, raise_server_exceptions=True) as c:
        yield c


def register(client: TestClient, **fields) -> dict:
    """Create an account via POST /api/auth/register and return the JSON body
    plus the plaintext password under "password"."""
    body = {
        "email": unique_email(),
        "password": "correct-horse",
        "firstName": "Ada",
        "lastName": "Lovelace",
        "inviteCode": "WELCOME",
    }
    body.update(fields)
    resp = client.post("/api/auth/register", json=body)
    assert resp.status_code == 201, resp.text
    data = resp.json()
    data["password"] = body["password"]
    return data


@pytest.fixture
def account(client: TestClient) -> dict:
    return register(client)

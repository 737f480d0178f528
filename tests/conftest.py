"""
tests/conftest.py -- Shared test fixtures for RoboFleet tests.

This module provides:
  - shared_memory_url(): a fresh named in-memory SQLite URL
  - _make_test_stores(): UserStore + FleetStore on one isolated in-memory DB
  - _patch_lifespan(): wires test stores into app.state, bypassing real startup
  - stores:        (user_store, fleet_store) for store and service tests
  - api_client:    TestClient plus a JWT for a pre-created user
  - register_user: factory that registers a new user through the API

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs route handlers in a thread pool, and because the user
store and the fleet store open separate engines on the same database. Plain
:memory: DBs are per-connection and would present a blank schema to each.

The DEBUG env var must be set before any auth module import so get_settings()
auto-generates SECRET_KEY in dev mode rather than raising ValueError.
"""

from __future__ import annotations

import os
import uuid
from collections.abc import Callable, Generator
from contextlib import asynccontextmanager

# CRITICAL: Set DEBUG before any auth/core import so get_settings() can
# auto-generate SECRET_KEY in dev mode instead of raising ValueError.
os.environ.setdefault("DEBUG", "true")

import pytest
from fastapi.testclient import TestClient

from api.main import app
from auth.models import User
from auth.store import UserStore
from auth.tokens import create_access_token, hash_password
from fleet.service import FleetService
from fleet.store import FleetStore

# The app only trusts the hosts in Settings.allowed_hosts; TestClient's default
# "testserver" host is not one of them.
TEST_BASE_URL = "http://localhost"

# ---------------------------------------------------------------------------
# Store helpers
# ---------------------------------------------------------------------------


def shared_memory_url(prefix: str) -> str:
    return f"sqlite:///file:test_{prefix}_{uuid.uuid4().hex}?mode=memory&cache=shared&uri=true"


def _make_test_stores(db_prefix: str) -> tuple[UserStore, FleetStore]:
    """Create a UserStore and a FleetStore sharing one named in-memory DB.

    Args:
        db_prefix: Readable prefix for the DB name; a random suffix keeps
                   test modules from sharing state.
    """
    url = shared_memory_url(db_prefix)
    return UserStore(db_url=url), FleetStore(db_url=url)


def _patch_lifespan(user_store: UserStore, fleet_store: FleetStore, membership_implies_usage: bool = False):
    """Return an async context manager that replaces the real lifespan.

    Wires pre-created test stores into app.state so TestClient routes see
    isolated test DBs rather than the configured DATABASE_URL.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.user_store = user_store
        app.state.fleet_store = fleet_store
        app.state.fleet = FleetService(fleet_store, user_store, membership_implies_usage=membership_implies_usage)
        yield

    return test_lifespan


def make_user(user_store: UserStore, name: str, email: str | None = None) -> int:
    """Insert a user directly through the store. Returns the user ID."""
    email = email or f"{name.lower()}-{uuid.uuid4().hex[:8]}@example.com"
    return user_store.create_user(User(name=name, email=email, hashed_password=hash_password("secret-pass")))


# ---------------------------------------------------------------------------
# Function-scoped fixtures -- store and service tests
# ---------------------------------------------------------------------------


@pytest.fixture
def stores() -> Generator[tuple[UserStore, FleetStore], None, None]:
    user_store, fleet_store = _make_test_stores("unit")
    yield user_store, fleet_store
    fleet_store.close()
    user_store.close()


@pytest.fixture
def add_user(stores) -> Callable[[str], int]:
    """Return a factory that inserts a user into the `stores` DB and returns its ID."""
    user_store, _ = stores
    return lambda name: make_user(user_store, name)


# ---------------------------------------------------------------------------
# Module-scoped fixtures -- one TestClient per test module for speed
# ---------------------------------------------------------------------------


@pytest.fixture(scope="module")
def api_client() -> Generator[tuple[TestClient, str, int], None, None]:
    """Yield (client, token, user_id) for API integration tests.

    The TestClient uses the real FastAPI app with a patched lifespan so
    tests hit real route handlers but use an isolated in-memory DB.
    """
    user_store, fleet_store = _make_test_stores("api")

    uid = user_store.create_user(
        User(name="Test Operator", email="operator@example.com", hashed_password=hash_password("testpass123"))
    )
    token = create_access_token(user_id=uid, email="operator@example.com", expire_seconds=3600)

    app.router.lifespan_context = _patch_lifespan(user_store, fleet_store)

    with TestClient(app, base_url=TEST_BASE_URL, raise_server_exceptions=True) as client:
        yield client, token, uid

    fleet_store.close()
    user_store.close()


@pytest.fixture(scope="module")
def register_user(api_client) -> Callable[[str], tuple[dict[str, str], int, str]]:
    """Return a factory that registers a user via the API.

    The factory returns (auth_headers, user_id, email). Emails carry a random
    suffix so repeated names within one module never collide.
    """
    client, _token, _uid = api_client

    def _register(name: str) -> tuple[dict[str, str], int, str]:
        email = f"{name.lower()}-{uuid.uuid4().hex[:8]}@example.com"
        resp = client.post(
            "/api/v1/auth/register",
            json={"name": name, "email": email, "password": "correct-horse"},
        )
        assert resp.status_code == 201, f"Register failed: {resp.status_code} {resp.text}"
        data = resp.json()
        return {"Authorization": f"Bearer {data['token']}"}, data["user"]["id"], email

    return _register

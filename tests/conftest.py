"""
tests/conftest.py -- Shared test fixtures for the admin panel test suite.

This module provides:
  - _make_test_stores(): isolated in-memory DB with the users and activity_logs tables
  - _patch_lifespan(): wires test stores into app.state, bypassing real startup
  - stores: (UserStore, ActivityLogStore, SessionManager) for unit-level tests
  - api_client: (TestClient, UserStore, ActivityLogStore) for integration tests
  - make_account: factory creating a user with a live session (tests/helpers.py)

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs route handlers in a thread pool. Plain :memory: DBs
are per-connection and would present a blank schema to each worker thread.
The named URI format (file:name?mode=memory&cache=shared&uri=true) shares
one in-memory instance across all connections in the same process.

Environment variables must be set before any core/auth import:
  DEBUG=true           -- get_settings() generates both token secrets
  BCRYPT_ROUNDS=4      -- keeps hashing fast; the cost factor is not under test
  LOGIN_RATE_LIMIT     -- high enough that the suite never trips the limiter
"""

from __future__ import annotations

import os
import uuid
from collections.abc import Callable, Generator
from contextlib import asynccontextmanager

# CRITICAL: Set these before any auth/core import so get_settings() sees them.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("LOGIN_RATE_LIMIT", "1000/minute")

import pytest
from fastapi.testclient import TestClient

from api.main import app
from audit.recorder import ActivityRecorder
from audit.store import ActivityLogStore
from auth.models import Role
from auth.sessions import SessionManager
from auth.store import UserStore
from helpers import DEFAULT_PASSWORD, Account, create_account


# ---------------------------------------------------------------------------
# Store helpers
# ---------------------------------------------------------------------------


def _make_test_stores(db_suffix: str) -> tuple[UserStore, ActivityLogStore]:
    """Create stores on one named shared-memory SQLite database.

    Args:
        db_suffix: Unique string appended to the DB name so test modules
                   don't share state (e.g. 'auth_routes', 'sessions').
    """
    url = f"sqlite:///file:test_{db_suffix}_{uuid.uuid4().hex[:8]}?mode=memory&cache=shared&uri=true"
    return UserStore(db_url=url), ActivityLogStore(db_url=url)


def _patch_lifespan(user_store: UserStore, log_store: ActivityLogStore):
    """Return an async context manager that replaces the real lifespan.

    Wires pre-created test stores into app.state so TestClient routes see
    isolated test DBs rather than DATABASE_URL.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.user_store = user_store
        app.state.log_store = log_store
        app.state.recorder = ActivityRecorder(log_store)
        app.state.sessions = SessionManager(user_store, app.state.recorder)
        yield

    return test_lifespan


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def stores() -> Generator[tuple[UserStore, ActivityLogStore, SessionManager], None, None]:
    """Fresh stores and a session manager per test, no HTTP involved."""
    user_store, log_store = _make_test_stores("unit")
    sessions = SessionManager(user_store, ActivityRecorder(log_store))
    yield user_store, log_store, sessions
    user_store.close()
    log_store.close()


@pytest.fixture(scope="module")
def api_client(request) -> Generator[tuple[TestClient, UserStore, ActivityLogStore], None, None]:
    """Yield (client, user_store, log_store) for API integration tests.

    The TestClient uses the real FastAPI app with a patched lifespan so
    tests hit real route handlers but use isolated in-memory stores. One
    database per test module; tests inside a module must use unique emails.
    """
    user_store, log_store = _make_test_stores(request.module.__name__.rsplit(".", 1)[-1])

    app.router.lifespan_context = _patch_lifespan(user_store, log_store)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield client, user_store, log_store

    user_store.close()
    log_store.close()


@pytest.fixture
def make_account(api_client) -> Callable[..., Account]:
    """Factory: make_account(role="user") -> Account with a live session in the api_client DB."""
    _client, user_store, _log_store = api_client

    def _make(role: Role | str = Role.user, password: str = DEFAULT_PASSWORD, name: str = "Test User") -> Account:
        return create_account(user_store, role, password, name)

    return _make

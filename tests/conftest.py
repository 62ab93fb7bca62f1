"""
tests/conftest.py -- Shared test fixtures for UserGate integration tests.

This module provides:
  - _make_test_stores(): an isolated in-memory user DB plus a fakeredis session store
  - _patch_lifespan(): wires test stores and services into app.state, bypassing real startup
  - api_client: module-scoped TestClient with a seeded ROOT user
  - client: the same TestClient with an empty cookie jar and a fresh rate-limit window
  - login(): helper that logs a client in and asserts success

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs sync route handlers in a thread pool. Plain :memory:
DBs are per-connection and would present a blank schema to each worker thread.

DEBUG must be set before any auth/core import so get_settings() auto-generates
SECRET_KEY instead of raising. Argon2 costs are lowered to keep login tests fast.
"""

from __future__ import annotations

import os
import time
import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager

# CRITICAL: Set before any auth/core import; get_settings() is cached on first call.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("ARGON2_TIME_COST", "1")
os.environ.setdefault("ARGON2_MEMORY_COST", "1024")

import fakeredis
import pytest
from fastapi.testclient import TestClient

from api.limiter import limiter
from api.main import app
from auth.service import AuthService
from auth.sessions import RedisSessionStore
from users.service import UserService
from users.store import UserStore

ROOT_EMAIL = "root@example.com"
ROOT_PASSWORD = "rootpass123"
ACCOUNT_ID = str(uuid.uuid4())


# ---------------------------------------------------------------------------
# Store helpers
# ---------------------------------------------------------------------------


def _make_test_stores(db_suffix: str) -> tuple[UserStore, RedisSessionStore]:
    """Create an isolated named shared-memory user DB and a fakeredis-backed session store.

    Args:
        db_suffix: Unique string appended to the DB name so test modules
                   don't share state.
    """
    db_url = f"sqlite:///file:test_users_{db_suffix}?mode=memory&cache=shared&uri=true"
    user_store = UserStore(db_url)
    session_store = RedisSessionStore(fakeredis.FakeRedis(), key_prefix=f"test:{db_suffix}:")
    return user_store, session_store


def _patch_lifespan(user_store: UserStore, session_store: RedisSessionStore):
    """Return an async context manager that replaces the real lifespan.

    No Redis connection or database file is opened; routes see the stores
    created by the fixture.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        user_service = UserService(user_store)
        app.state.started_at = time.monotonic()
        app.state.user_store = user_store
        app.state.session_store = session_store
        app.state.user_service = user_service
        app.state.auth_service = AuthService(user_store, on_rehash=user_service.rehash_password)
        yield

    return test_lifespan


def login(client: TestClient, email: str, password: str) -> dict:
    """POST /auth/login and return the identity view from the response."""
    resp = client.post("/auth/login", json={"email": email, "password": password})
    assert resp.status_code == 200, f"Login failed for {email}: {resp.status_code} {resp.text}"
    return resp.json()["user"]


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture(scope="module")
def api_client(request) -> Generator[TestClient, None, None]:
    """Yield a TestClient over the real app with a patched lifespan.

    A ROOT user (ROOT_EMAIL / ROOT_PASSWORD) is created before the client
    starts so user-management routes can be exercised.
    """
    user_store, session_store = _make_test_stores(request.module.__name__.rsplit(".", 1)[-1])
    UserService(user_store).create(
        account_id=ACCOUNT_ID,
        email=ROOT_EMAIL,
        password=ROOT_PASSWORD,
        role="ROOT",
        name="Root",
    )

    app.router.lifespan_context = _patch_lifespan(user_store, session_store)

    with TestClient(app, raise_server_exceptions=True) as c:
        yield c

    user_store.close()


@pytest.fixture
def client(api_client: TestClient) -> TestClient:
    """The module client with no session cookie and a fresh rate-limit window."""
    api_client.cookies.clear()
    limiter.reset()
    return api_client

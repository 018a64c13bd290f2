"""
tests/conftest.py -- Shared test fixtures for MovieFlix gateway integration tests.

This module provides:
  - make_test_store(): isolated named shared-memory SQLite user store
  - make_client(): TestClient over create_app() with the lifespan patched
  - api_client: (client, token, user_id) with a registered user and its JWT

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs sync route handlers in a thread pool. Plain :memory:
DBs are per-connection and would present a blank schema to each worker thread.

DEBUG must be set before any auth/core import so get_settings() auto-generates
SECRET_KEY instead of raising ValueError. LOGIN_RATE_LIMIT is raised so the
shared in-memory limiter never trips across test modules.
"""

from __future__ import annotations

import os
from collections.abc import Generator
from contextlib import asynccontextmanager

os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("LOGIN_RATE_LIMIT", "1000/minute")

import pytest
from fastapi.testclient import TestClient

from api.main import create_app
from auth.models import User
from auth.store import UserStore
from auth.tokens import create_access_token, hash_password
from core.config import Settings

TEST_ORIGINS = "http://localhost:3000, https://*.movieflix.app"
TEST_EMAIL = "viewer@movieflix.app"
TEST_PASSWORD = "popcorn123"


def make_test_store(db_suffix: str) -> UserStore:
    """Create an isolated named shared-memory SQLite store.

    Args:
        db_suffix: Unique string appended to the DB name so test modules
                   don't share state.
    """
    return UserStore(db_url=f"sqlite:///file:test_auth_{db_suffix}?mode=memory&cache=shared&uri=true")


def _patch_lifespan(user_store: UserStore):
    """Return a lifespan that wires the pre-created store into app.state."""

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.user_store = user_store
        yield

    return test_lifespan


def make_client(user_store: UserStore, cors_allowed_origins: str = TEST_ORIGINS) -> TestClient:
    """Build an app from explicit Settings and return an (unstarted) TestClient."""
    settings = Settings(cors_allowed_origins=cors_allowed_origins)
    app = create_app(settings)
    app.router.lifespan_context = _patch_lifespan(user_store)
    return TestClient(app, raise_server_exceptions=True)


@pytest.fixture(scope="module")
def api_client(request) -> Generator[tuple[TestClient, str, int], None, None]:
    """Yield (client, token, user_id) for integration tests.

    The user is created before the client starts and the JWT is generated
    for use in Authorization headers. Each test module gets its own DB.
    """
    user_store = make_test_store(f"api_{request.module.__name__}")
    uid = user_store.create_user(
        User(email=TEST_EMAIL, hashed_password=hash_password(TEST_PASSWORD), display_name="Viewer")
    )
    token = create_access_token(user_id=uid, email=TEST_EMAIL, expire_seconds=3600)

    with make_client(user_store) as client:
        yield client, token, uid

    user_store.close()


@pytest.fixture
def app_client_factory():
    """Return a builder for one-off clients with their own CORS configuration.

    Stores created through the builder are closed when the test ends.
    """
    stores: list[UserStore] = []

    def _build(cors_allowed_origins: str = TEST_ORIGINS, db_suffix: str = "factory") -> TestClient:
        store = make_test_store(db_suffix)
        stores.append(store)
        return make_client(store, cors_allowed_origins=cors_allowed_origins)

    yield _build

    for store in stores:
        store.close()

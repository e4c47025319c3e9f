"""
tests/conftest.py -- Shared test fixtures for TokenGate tests.

This module provides:
  - make_test_stores(): isolated in-memory DBs for users, refresh tokens, articles
  - _patch_lifespan(): wires test stores into app.state, bypassing real startup
  - api_client: TestClient for JSON API integration tests
  - web_client: TestClient with follow_redirects=False for OAuth redirect tests
  - login(): create a user and issue a stored access/refresh pair

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs route handlers in a thread pool. Plain :memory: DBs
are per-connection and would present a blank schema to each worker thread.

Environment variables must be set before any api/auth/core import so
get_settings() sees them on its first (cached) call.
"""

from __future__ import annotations

import os
import uuid
from collections.abc import Callable, Generator
from contextlib import asynccontextmanager
from unittest.mock import MagicMock

# CRITICAL: set before any core/auth import -- get_settings() is lru_cached.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("SECRET_KEY", "test-secret-key-0123456789abcdef-0123456789")
os.environ.setdefault("ALLOWED_HOSTS", '["testserver", "localhost"]')
os.environ.setdefault("TOKEN_RATE_LIMIT", "1000/minute")
os.environ.setdefault("GOOGLE_CLIENT_ID", "test-google-client")
os.environ.setdefault("GOOGLE_CLIENT_SECRET", "test-google-secret")

import pytest
from fastapi.testclient import TestClient

from api.main import wire_state
from articles.store import ArticleStore
from asgi import app
from auth.models import User
from auth.service import IssuedTokens
from auth.store import RefreshTokenStore, UserStore
from core.config import get_settings

# ---------------------------------------------------------------------------
# Store helpers
# ---------------------------------------------------------------------------


def make_test_stores(db_suffix: str) -> tuple[UserStore, RefreshTokenStore, ArticleStore]:
    """Create named shared-memory SQLite stores for test isolation.

    All three stores point at the same in-memory database, like production
    where they share DATABASE_URL.

    Args:
        db_suffix: Unique string appended to the DB name so test modules
                   don't share state.
    """
    url = f"sqlite:///file:test_tokengate_{db_suffix}?mode=memory&cache=shared&uri=true"
    return UserStore(db_url=url), RefreshTokenStore(db_url=url), ArticleStore(db_url=url)


def unique_email(prefix: str = "user") -> str:
    return f"{prefix}-{uuid.uuid4().hex[:8]}@example.com"


def _patch_lifespan(user_store: UserStore, refresh_store: RefreshTokenStore, article_store: ArticleStore):
    """Return an async context manager that replaces the real lifespan.

    The OAuth registry is a MagicMock so no test can reach a real provider;
    OAuth tests configure create_client.return_value themselves.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        wire_state(app, get_settings(), user_store, refresh_store, article_store, oauth=MagicMock())
        yield

    return test_lifespan


def _client(db_suffix: str, **client_kwargs) -> Generator[TestClient, None, None]:
    user_store, refresh_store, article_store = make_test_stores(db_suffix)
    app.router.lifespan_context = _patch_lifespan(user_store, refresh_store, article_store)
    with TestClient(app, raise_server_exceptions=True, **client_kwargs) as client:
        yield client
    article_store.close()
    refresh_store.close()
    user_store.close()


# ---------------------------------------------------------------------------
# Module-scoped fixtures -- one TestClient per test module for speed
# ---------------------------------------------------------------------------


@pytest.fixture(scope="module")
def api_client(request) -> Generator[TestClient, None, None]:
    """Yield a TestClient running the real app against isolated stores.

    Stores and services are reachable through client.app.state.
    """
    yield from _client(f"api_{request.module.__name__}")


@pytest.fixture(scope="module")
def web_client(request) -> Generator[TestClient, None, None]:
    """Yield a TestClient that does not follow redirects.

    OAuth tests assert on redirect Location headers and Set-Cookie values,
    which are invisible once the client follows the redirect.
    """
    yield from _client(f"web_{request.module.__name__}", follow_redirects=False)


@pytest.fixture
def login(api_client: TestClient) -> Callable[..., tuple[User, IssuedTokens]]:
    """Return a helper that creates (or reuses) a user and runs the login token issuance."""

    def _login(email: str | None = None, display_name: str = "Test User") -> tuple[User, IssuedTokens]:
        state = api_client.app.state
        user = state.user_store.upsert_oauth_user(email or unique_email(), display_name)
        return user, state.token_service.issue_for_login(user)

    return _login

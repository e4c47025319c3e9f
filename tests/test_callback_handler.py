"""
tests/test_callback_handler.py -- Unit tests for OAuthCallbackHandler.

Covers:
  - 302 to the landing path with the access token as ?token=
  - refresh_token cookie set with path "/" and max-age equal to the refresh TTL
  - oauth2_auth_request cookie cleared in the same response
  - repeat logins reuse the identity and keep only the latest refresh token
"""

from __future__ import annotations

import uuid
from datetime import timedelta
from urllib.parse import parse_qs, urlparse

import pytest

from auth.callback import OAuthCallbackHandler, landing_url
from auth.models import ProfileFields
from auth.service import TokenService
from auth.tokens import REFRESH_TOKEN_COOKIE, TokenAuthority, TokenCodec
from auth.transient import OAUTH2_AUTH_REQUEST_COOKIE, TransientRequestStore
from conftest import make_test_stores

_KEY = "callback-test-signing-key-0123456789abcd"


@pytest.fixture
def handler():
    user_store, refresh_store, article_store = make_test_stores(f"cb_{uuid.uuid4().hex}")
    authority = TokenAuthority(
        TokenCodec(_KEY, issuer="tokengate"),
        access_ttl=timedelta(hours=2),
        refresh_ttl=timedelta(days=14),
    )
    service = TokenService(authority, user_store, refresh_store)
    yield OAuthCallbackHandler(user_store, service, TransientRequestStore(_KEY))
    article_store.close()
    refresh_store.close()
    user_store.close()


def _cookies(response) -> dict[str, str]:
    """Map cookie name -> full Set-Cookie header for each cookie in the response."""
    out = {}
    for key, value in response.raw_headers:
        if key == b"set-cookie":
            header = value.decode()
            out[header.split("=", 1)[0]] = header
    return out


def _refresh_token_value(response) -> str:
    header = _cookies(response)[REFRESH_TOKEN_COOKIE]
    return header.split(";", 1)[0].split("=", 1)[1]


def test_redirects_to_landing_with_access_token(handler: OAuthCallbackHandler) -> None:
    resp = handler.on_authentication_success(ProfileFields(email="ada@example.com", display_name="Ada"))

    assert resp.status_code == 302
    location = urlparse(resp.headers["location"])
    assert location.path == "/articles"
    token = parse_qs(location.query)["token"][0]

    user = handler.user_store.get_by_email("ada@example.com")
    assert handler.token_service.authority.resolve_identity_id(token) == user.id
    assert resp.headers["cache-control"] == "no-store"


def test_sets_refresh_cookie_and_clears_request_cookie(handler: OAuthCallbackHandler) -> None:
    resp = handler.on_authentication_success(ProfileFields(email="ada@example.com", display_name="Ada"))
    cookies = _cookies(resp)

    refresh = cookies[REFRESH_TOKEN_COOKIE]
    assert "Path=/" in refresh
    assert "HttpOnly" in refresh
    assert f"Max-Age={14 * 24 * 60 * 60}" in refresh

    stored = handler.token_service.refresh_store.find_by_user_id(
        handler.user_store.get_by_email("ada@example.com").id
    )
    assert refresh.startswith(f"{REFRESH_TOKEN_COOKIE}={stored.token};")

    assert "Max-Age=0" in cookies[OAUTH2_AUTH_REQUEST_COOKIE]


def test_repeat_login_keeps_one_identity_and_one_token(handler: OAuthCallbackHandler) -> None:
    first = handler.on_authentication_success(ProfileFields(email="ada@example.com", display_name="Ada"))
    second = handler.on_authentication_success(ProfileFields(email="ada@example.com", display_name="Ada Lovelace"))
    first_token = _refresh_token_value(first)
    second_token = _refresh_token_value(second)

    user = handler.user_store.get_by_email("ada@example.com")
    assert user.display_name == "Ada Lovelace"
    assert handler.token_service.refresh_store.count_for_user(user.id) == 1
    assert first_token != second_token
    assert handler.token_service.refresh_store.find_by_user_id(user.id).token == second_token


def test_landing_url_appends_to_existing_query() -> None:
    assert landing_url("/articles", "abc") == "/articles?token=abc"
    assert landing_url("/app?tab=1", "abc") == "/app?tab=1&token=abc"

"""
tests/test_middleware.py -- Tests for bearer token authentication and ownership checks.

The middleware is exercised on a minimal FastAPI app whose only route echoes
request.state.auth, so the assertions see exactly what downstream handlers see.

Covers:
  - no header, other schemes, and bad tokens pass through with no context
  - a valid bearer token yields a context with subject and user id
  - the middleware never rejects a request on its own
  - assert_owner allows the owner and refuses everyone else
"""

from __future__ import annotations

from datetime import timedelta

import pytest
from fastapi import FastAPI, Request
from fastapi.testclient import TestClient

from auth.dependencies import assert_owner
from auth.errors import NotAuthorized
from auth.middleware import extract_bearer_token, token_authentication
from auth.models import AuthorizationContext, AuthPrincipal, User
from auth.tokens import TokenAuthority, TokenCodec

_AUTHORITY = TokenAuthority(
    TokenCodec("middleware-test-signing-key-0123456789ab", issuer="tokengate"),
    access_ttl=timedelta(hours=2),
    refresh_ttl=timedelta(days=14),
)
_USER = User(email="ada@example.com", id=7)


@pytest.fixture(scope="module")
def echo_client():
    app = FastAPI()
    app.state.token_authority = _AUTHORITY
    app.middleware("http")(token_authentication)

    @app.get("/echo")
    def echo(request: Request) -> dict:
        ctx = request.state.auth
        if ctx is None:
            return {"authenticated": False}
        return {"authenticated": True, "subject": ctx.subject, "user_id": ctx.principal.user_id}

    with TestClient(app) as client:
        yield client


class TestExtractBearerToken:
    @pytest.mark.parametrize(
        "header,expected",
        [
            ("Bearer abc.def.ghi", "abc.def.ghi"),
            ("Bearer   abc ", "abc"),
            (None, None),
            ("", None),
            ("Bearer ", None),
            ("Basic dXNlcjpwYXNz", None),
            ("bearer abc", None),
            ("abc.def.ghi", None),
        ],
    )
    def test_extract(self, header, expected) -> None:
        assert extract_bearer_token(header) == expected


class TestTokenAuthentication:
    def test_no_header_reaches_handler_unauthenticated(self, echo_client: TestClient) -> None:
        resp = echo_client.get("/echo")
        assert resp.status_code == 200
        assert resp.json() == {"authenticated": False}

    def test_valid_token_populates_context(self, echo_client: TestClient) -> None:
        token = _AUTHORITY.issue_access_token(_USER)
        resp = echo_client.get("/echo", headers={"Authorization": f"Bearer {token}"})
        assert resp.json() == {"authenticated": True, "subject": "ada@example.com", "user_id": 7}

    def test_other_scheme_is_ignored(self, echo_client: TestClient) -> None:
        token = _AUTHORITY.issue_access_token(_USER)
        resp = echo_client.get("/echo", headers={"Authorization": f"Token {token}"})
        assert resp.json() == {"authenticated": False}

    def test_expired_token_passes_through_unauthenticated(self, echo_client: TestClient) -> None:
        token = _AUTHORITY.issue_access_token(_USER, ttl=timedelta(seconds=-1))
        resp = echo_client.get("/echo", headers={"Authorization": f"Bearer {token}"})
        assert resp.status_code == 200
        assert resp.json() == {"authenticated": False}

    def test_garbage_token_passes_through_unauthenticated(self, echo_client: TestClient) -> None:
        resp = echo_client.get("/echo", headers={"Authorization": "Bearer not.a.jwt"})
        assert resp.status_code == 200
        assert resp.json() == {"authenticated": False}

    def test_context_does_not_leak_between_requests(self, echo_client: TestClient) -> None:
        token = _AUTHORITY.issue_access_token(_USER)
        echo_client.get("/echo", headers={"Authorization": f"Bearer {token}"})
        assert echo_client.get("/echo").json() == {"authenticated": False}


class TestAssertOwner:
    def _ctx(self, subject: str) -> AuthorizationContext:
        return AuthorizationContext(principal=AuthPrincipal(subject=subject, user_id=1), raw_token="t")

    def test_owner_passes(self) -> None:
        assert_owner("ada@example.com", self._ctx("ada@example.com"))

    def test_other_subject_refused(self) -> None:
        with pytest.raises(NotAuthorized):
            assert_owner("ada@example.com", self._ctx("bob@example.com"))

    def test_match_is_exact(self) -> None:
        with pytest.raises(NotAuthorized):
            assert_owner("ada@example.com", self._ctx("ADA@example.com"))

    def test_missing_context_refused(self) -> None:
        with pytest.raises(NotAuthorized):
            assert_owner("ada@example.com", None)

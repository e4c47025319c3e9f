"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Stores and routes do
the work; these only own the shape.

Layer rule: no imports from api/, core/, or articles/.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class User:
    """The identity TokenGate authenticates.

    email doubles as the token subject: access and refresh tokens carry it as
    the "sub" claim and article ownership is recorded against it.

    display_name is refreshed from the provider profile on every OAuth login.
    """

    email: str
    display_name: str = ""
    id: int | None = None
    created_at: str | None = None


@dataclass
class RefreshToken:
    """The single persisted refresh token of one user.

    user_id is UNIQUE in storage -- a new login overwrites token rather than
    adding a row, which is what invalidates the previously issued token.
    """

    user_id: int
    token: str
    id: int | None = None
    updated_at: str | None = None


@dataclass(frozen=True)
class AuthPrincipal:
    """Lightweight principal rebuilt from token claims (no store lookup)."""

    subject: str
    user_id: int


@dataclass(frozen=True)
class AuthorizationContext:
    """Per-request identity derived from a verified bearer token.

    Built by the authentication middleware and stored on request.state.
    Never cached or shared between requests.
    """

    principal: AuthPrincipal
    raw_token: str

    @property
    def subject(self) -> str:
        return self.principal.subject


@dataclass(frozen=True)
class TransientAuthRequest:
    """OAuth authorization request state kept in a cookie during the redirect.

    Only these fields are ever written to or read from the cookie.
    """

    provider: str
    state: str
    redirect_uri: str
    nonce: str | None = None
    code_verifier: str | None = None


@dataclass(frozen=True)
class ProfileFields:
    """The provider-neutral profile a login needs: who the user is and what to call them."""

    email: str
    display_name: str

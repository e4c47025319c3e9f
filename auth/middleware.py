"""
auth/middleware.py -- Per-request bearer token authentication.

token_authentication is registered with @app.middleware("http") ahead of
route dispatch. It never rejects a request. A verified bearer token becomes
an AuthorizationContext on request.state.auth; anything else (no header, a
different scheme, a bad signature, an expired token) leaves
request.state.auth as None. Route-level dependencies in auth/dependencies.py
turn "no context" into 401 where a route requires authentication.

request.state is created fresh for every request by Starlette, so the context
cannot leak between concurrent requests.

Layer rule: no imports from api/ or articles/.
"""

from __future__ import annotations

from starlette.requests import Request

from auth.models import AuthorizationContext
from auth.tokens import TokenAuthority

TOKEN_PREFIX = "Bearer "


def extract_bearer_token(authorization: str | None) -> str | None:
    """Return the raw token from an Authorization header value, or None.

    Only the "Bearer " scheme is recognized. "Basic ...", a bare token, or
    "Bearer " with nothing after it all yield None.
    """
    if not authorization or not authorization.startswith(TOKEN_PREFIX):
        return None
    token = authorization[len(TOKEN_PREFIX) :].strip()
    return token or None


def build_context(authority: TokenAuthority, token: str | None) -> AuthorizationContext | None:
    if token is None or not authority.validate(token):
        return None
    principal = authority.authenticated_identity(token)
    if principal is None:
        return None
    return AuthorizationContext(principal=principal, raw_token=token)


async def token_authentication(request: Request, call_next):
    """Populate request.state.auth from the Authorization header, then continue."""
    authority: TokenAuthority = request.app.state.token_authority
    token = extract_bearer_token(request.headers.get("Authorization"))
    request.state.auth = build_context(authority, token)
    return await call_next(request)

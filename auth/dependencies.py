"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication and ownership.

The middleware (auth/middleware.py) has already turned the bearer token into
request.state.auth. These helpers only read that value:

  get_auth_context()  -- soft variant, returns None when unauthenticated.
  require_auth()      -- raises HTTP 401 when unauthenticated.
  assert_owner()      -- raises NotAuthorized when the caller is not the
                         recorded owner of a resource. Used on mutating
                         routes only; reads are not owner-restricted.

Layer rule: no imports from api/ or articles/.
  auth/dependencies.py may import from fastapi (for HTTPException/Request)
  because this module is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

from fastapi import HTTPException, Request

from auth.errors import NotAuthorized
from auth.models import AuthorizationContext


def get_auth_context(request: Request) -> AuthorizationContext | None:
    """Return the request's AuthorizationContext, or None if unauthenticated.

    Never raises -- callers that need a hard 401 should use require_auth().
    """
    return getattr(request.state, "auth", None)


def require_auth(request: Request) -> AuthorizationContext:
    """Require authentication. Raises HTTP 401 if the request is not authenticated.

    Use as a FastAPI dependency:
        @router.post("/protected")
        async def route(ctx: AuthorizationContext = Depends(require_auth)): ...
    """
    ctx = get_auth_context(request)
    if ctx is None:
        raise HTTPException(
            status_code=401,
            detail={"code": "unauthorized", "message": "Authentication required."},
            headers={"WWW-Authenticate": "Bearer"},
        )
    return ctx


def assert_owner(owner: str, context: AuthorizationContext | None) -> None:
    """Raise NotAuthorized unless ``context`` belongs to ``owner`` (exact string match)."""
    if context is None or context.subject != owner:
        raise NotAuthorized()

"""
api/routes/auth.py -- Identity endpoints for bearer-token clients.

Routes:
  GET  /api/auth/me         -- current identity (requires auth)
  POST /api/auth/logout     -- revoke the stored refresh token, clear cookie
  GET  /api/auth/providers  -- list enabled OAuth providers (public)

Auth policy:
  /me reads the AuthorizationContext placed on request.state by the
  middleware; require_auth turns a missing context into 401.

  /logout is public so a client holding only the refresh_token cookie can
  still end its session. The refresh token row is revoked for the bearer
  identity, or for the owner of the cookie's refresh token when there is no
  bearer token.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.models import MeResponse, OAuthProviderInfo
from auth.dependencies import get_auth_context, require_auth
from auth.models import AuthorizationContext
from auth.oauth import get_enabled_providers
from auth.service import TokenService
from auth.store import UserStore
from auth.tokens import REFRESH_TOKEN_COOKIE, clear_refresh_cookie
from core.config import get_settings

logger = logging.getLogger("tokengate.api.auth")

router = APIRouter()


@router.get("/auth/me", response_model=MeResponse)
def me(request: Request, ctx: AuthorizationContext = Depends(require_auth)) -> MeResponse:
    """Return identity information for the currently authenticated caller.

    The token is the source of truth for id and email; the display name is
    looked up and omitted if the user record is gone.
    """
    user_store: UserStore = request.app.state.user_store
    user = user_store.get_by_id(ctx.principal.user_id)
    return MeResponse(
        user_id=ctx.principal.user_id,
        email=ctx.subject,
        display_name=user.display_name if user is not None else None,
    )


@router.post("/auth/logout")
def logout(request: Request) -> JSONResponse:
    """Revoke the caller's refresh token and clear the refresh_token cookie."""
    service: TokenService = request.app.state.token_service
    ctx = get_auth_context(request)

    user_id: int | None = ctx.principal.user_id if ctx is not None else None
    if user_id is None:
        cookie_token = request.cookies.get(REFRESH_TOKEN_COOKIE)
        if cookie_token:
            stored = service.refresh_store.find_by_token(cookie_token)
            user_id = stored.user_id if stored is not None else None

    if user_id is not None and service.revoke(user_id):
        logger.info("Refresh token revoked on logout (user_id=%d)", user_id)

    resp = JSONResponse(content={"message": "Logged out."})
    clear_refresh_cookie(resp)
    resp.headers["Cache-Control"] = "no-store"
    return resp


@router.get("/auth/providers", response_model=list[OAuthProviderInfo])
async def list_providers() -> list[OAuthProviderInfo]:
    """Return the list of configured OAuth providers.

    Public endpoint -- the login page calls this to decide which provider
    buttons to render. Returns an empty list if no OAuth env vars are set.
    """
    return [OAuthProviderInfo(**p) for p in get_enabled_providers(get_settings())]

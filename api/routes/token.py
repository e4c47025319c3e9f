"""
api/routes/token.py -- Refresh-to-access token exchange.

Routes:
  POST /api/token  -- body {"refreshToken": "..."} -> 201 {"accessToken": "..."}

The refresh token must be validly signed, unexpired, AND the value currently
stored for its user. A token superseded by a later login is rejected even
though its signature is still good. Failures raise AuthError subclasses;
api/main.py maps them to 401 with a generic message.

Security:
  [H2] Rate-limited per client IP (TOKEN_RATE_LIMIT).
  [M5] Cache-Control: no-store on every token response.
"""

from __future__ import annotations

from fastapi import APIRouter, Request, Response

from api.limiter import limiter, token_rate_limit
from api.models import CreateAccessTokenRequest, CreateAccessTokenResponse
from auth.service import TokenService
from auth.tokens import set_refresh_cookie
from core.config import get_settings

router = APIRouter()


@limiter.limit(token_rate_limit)  # [H2] must be ABOVE @router to preserve FastAPI introspection
@router.post(
    "/token",
    response_model=CreateAccessTokenResponse,
    response_model_exclude_none=True,
    status_code=201,
)
def create_access_token(
    request: Request,
    response: Response,
    body: CreateAccessTokenRequest,
) -> CreateAccessTokenResponse:
    """Exchange a stored refresh token for a new access token.

    When refresh token rotation is enabled the response also carries the
    replacement refresh token, and the refresh_token cookie is rewritten.
    """
    service: TokenService = request.app.state.token_service
    issued = service.exchange(body.refresh_token)

    if issued.refresh_token is not None:
        set_refresh_cookie(
            response,
            issued.refresh_token,
            max_age=int(service.authority.refresh_ttl.total_seconds()),
            secure=get_settings().secure_cookies,
        )
    response.headers["Cache-Control"] = "no-store"  # [M5]
    return CreateAccessTokenResponse(access_token=issued.access_token, refresh_token=issued.refresh_token)

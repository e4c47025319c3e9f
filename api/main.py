"""
api/main.py -- FastAPI application entry point for TokenGate.

Run with:      uvicorn asgi:app --reload

Middleware stack (outermost to innermost):
  1. TrustedHostMiddleware -- 400 for Host headers outside ALLOWED_HOSTS
  2. CORSMiddleware        -- browser origins from CORS_ORIGINS
  3. SlowAPIMiddleware     -- TOKEN_RATE_LIMIT on POST /api/token
  4. log_requests          -- method, path, status, latency
  5. token_authentication  -- bearer token -> request.state.auth (never rejects)

Lifespan builds the stores, the TokenAuthority, the OAuth registry, and the
services that combine them, and places them on app.state. Route handlers read
them from request.app.state so tests can swap in isolated instances.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from api.limiter import limiter
from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.articles import router as articles_router
from api.routes.auth import router as auth_router
from api.routes.token import router as token_router
from articles.store import ArticleStore
from auth.callback import OAuthCallbackHandler
from auth.errors import AuthError
from auth.middleware import token_authentication
from auth.oauth import build_oauth_registry
from auth.service import TokenService
from auth.store import RefreshTokenStore, UserStore
from auth.tokens import TokenAuthority
from auth.transient import TransientRequestStore
from core.config import Settings, get_settings

_VERSION = "0.1.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("tokengate.api")

_settings = get_settings()


# ---------------------------------------------------------------------------
# Wiring
# ---------------------------------------------------------------------------


def wire_state(
    app: FastAPI,
    settings: Settings,
    user_store: UserStore,
    refresh_store: RefreshTokenStore,
    article_store: ArticleStore,
    oauth=None,
) -> None:
    """Place stores and the services built from them on app.state.

    Shared by the real lifespan and the test lifespan so both assemble the
    object graph the same way.
    """
    authority = TokenAuthority.from_settings(settings)
    token_service = TokenService(
        authority,
        user_store,
        refresh_store,
        rotate_refresh_tokens=settings.rotate_refresh_tokens,
    )
    transient_store = TransientRequestStore(
        settings.secret_key,
        max_age=settings.oauth_request_cookie_max_age,
        secure=settings.secure_cookies,
    )
    app.state.user_store = user_store
    app.state.refresh_store = refresh_store
    app.state.article_store = article_store
    app.state.token_authority = authority
    app.state.token_service = token_service
    app.state.transient_store = transient_store
    app.state.oauth = oauth if oauth is not None else build_oauth_registry(settings)
    app.state.oauth_callback_handler = OAuthCallbackHandler(
        user_store,
        token_service,
        transient_store,
        landing_path=settings.oauth_landing_path,
        secure_cookies=settings.secure_cookies,
    )


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Open the stores on startup and dispose of their engines on shutdown."""
    settings = get_settings()
    logger.info("TokenGate API starting up")
    wire_state(
        app,
        settings,
        user_store=UserStore(settings.database_url),
        refresh_store=RefreshTokenStore(settings.database_url),
        article_store=ArticleStore(settings.database_url),
    )
    logger.info(
        "Auth initialized (issuer=%s, access_ttl=%ds, refresh_ttl=%ds, rotation=%s)",
        settings.jwt_issuer,
        settings.access_token_expire_seconds,
        settings.refresh_token_expire_seconds,
        settings.rotate_refresh_tokens,
    )

    yield

    app.state.article_store.close()
    app.state.refresh_store.close()
    app.state.user_store.close()
    logger.info("TokenGate API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="TokenGate API",
    description="Stateless JWT authentication with OAuth2 login and refresh token exchange.",
    version=_VERSION,
    lifespan=lifespan,
)

# ---------------------------------------------------------------------------
# Middleware stack
#
# Starlette makes the LAST middleware added the OUTERMOST, so registration
# below runs innermost-first: token_authentication, log_requests, SlowAPI,
# CORS, TrustedHost.
# ---------------------------------------------------------------------------

# Authentication runs closest to the routes: every handler sees request.state.auth.
app.middleware("http")(token_authentication)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    ms = (time.perf_counter() - start) * 1000
    logger.info(
        "%s %s %d %.1fms %s",
        request.method,
        request.url.path,
        response.status_code,
        ms,
        request.client.host if request.client else "unknown",
    )
    return response


app.add_middleware(SlowAPIMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_settings.cors_origins,
    allow_methods=["GET", "POST", "PUT", "DELETE"],
    allow_headers=["Content-Type", "Authorization"],
    allow_credentials=True,
    max_age=3600,
)

app.add_middleware(
    TrustedHostMiddleware,
    allowed_hosts=_settings.allowed_hosts,
)

# SlowAPIMiddleware reads the limiter from app.state.limiter.
app.state.limiter = limiter

# ---------------------------------------------------------------------------
# Router registration
# ---------------------------------------------------------------------------

app.include_router(token_router, prefix="/api", tags=["Token"])
app.include_router(auth_router, prefix="/api", tags=["Auth"])
app.include_router(articles_router, prefix="/api", tags=["Articles"])
# Browser OAuth routes are mounted by asgi.py, not here.


# ---------------------------------------------------------------------------
# Exception handlers
#
# Every error body is {"error": {"code", "message"[, "detail"]}}.
# ---------------------------------------------------------------------------


@app.exception_handler(AuthError)
async def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
    """Map token and ownership failures to 401/403 with a generic message.

    Only the class-level code and message are sent. The exception's own
    string and any token or claim content stay server-side.
    """
    headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == 401 else None
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(error=ErrorDetail(code=exc.code, message=exc.message)).model_dump(
            exclude_none=True
        ),
        headers=headers,
    )


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Return 429 with a structured error when a rate limit is exceeded."""
    retry_after = int(getattr(exc, "retry_after", 60))
    response = JSONResponse(
        status_code=429,
        content=ErrorResponse(
            error=ErrorDetail(
                code="rate_limited",
                message="Too many requests.",
                detail=str(exc),
            )
        ).model_dump(),
    )
    response.headers["Retry-After"] = str(retry_after)
    return response


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """422 for malformed request bodies, e.g. a missing refreshToken."""
    return JSONResponse(
        status_code=422,
        content=ErrorResponse(
            error=ErrorDetail(
                code="validation_error",
                message="Request validation failed.",
                detail=str(exc.errors()),
            )
        ).model_dump(),
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Wrap HTTPException detail in the error envelope.

    require_auth and the article routes pass a {"code", "message"} dict,
    which is used as-is. Framework-raised exceptions carry a plain string.
    """
    if isinstance(exc.detail, dict):
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.detail},
            headers=exc.headers,
        )
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(
            error=ErrorDetail(
                code=f"http_{exc.status_code}",
                message=str(exc.detail),
            )
        ).model_dump(),
        headers=exc.headers,
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """500 for anything unhandled; the traceback goes to the log only."""
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content=ErrorResponse(
            error=ErrorDetail(
                code="internal_error",
                message="An unexpected error occurred.",
            )
        ).model_dump(),
    )


# ---------------------------------------------------------------------------
# Health endpoint
#
# Not rate limited and not authenticated.
# ---------------------------------------------------------------------------


@app.get("/api/health", tags=["Health"])
def health(request: Request) -> HealthResponse:
    """Return API liveness, version, and a database round-trip check."""
    components = {"app": "ok"}
    try:
        request.app.state.user_store.get_by_id(0)
        components["database"] = "ok"
    except Exception:
        logger.exception("Health check database query failed")
        components["database"] = "error"
    return HealthResponse(version=_VERSION, components=components)

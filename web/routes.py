"""
web/routes.py -- Browser-facing OAuth2 login routes.

These routes are navigated to by the browser, not called by API clients, so
every outcome is a redirect rather than JSON.

Routes:
  GET /oauth2/authorization/{provider}  -- start login, redirect to provider
  GET /login/oauth2/code/{provider}     -- provider callback; issue tokens

Flow:
  1. /oauth2/authorization/{provider} asks authlib for the authorization URL,
     stores the request state in the signed oauth2_auth_request cookie, and
     302s to the provider.
  2. The provider redirects back with ?code=&state=. The callback loads the
     cookie, checks state, exchanges the code, and extracts a verified profile.
  3. OAuthCallbackHandler upserts the user, issues tokens, sets the
     refresh_token cookie, clears the transient cookie, and 302s to
     OAUTH_LANDING_PATH?token=<access token>.

Any provider failure (denied consent, state mismatch, code exchange error,
unverified email) redirects to /login?error=oauth_failed with the transient
cookie cleared. Storage failures propagate to the generic 500 handler.
"""

import logging

from authlib.integrations.starlette_client import OAuthError
from authlib.jose.errors import JoseError
from fastapi import APIRouter, Request
from fastapi.responses import RedirectResponse
from httpx import HTTPError

from auth.callback import OAuthCallbackHandler
from auth.oauth import (
    OAuthStateMismatch,
    begin_authorization,
    complete_authorization,
    get_enabled_providers,
    get_profile_exchanger,
)
from auth.transient import TransientRequestStore
from core.config import get_settings

logger = logging.getLogger("tokengate.web")

router = APIRouter()

_FAILURE_URL = "/login?error=oauth_failed"


def _fail(transient_store: TransientRequestStore) -> RedirectResponse:
    resp = RedirectResponse(_FAILURE_URL, status_code=302)
    transient_store.clear(resp)
    return resp


def _provider_enabled(provider: str) -> bool:
    return provider in {p["name"] for p in get_enabled_providers(get_settings())}


@router.get("/oauth2/authorization/{provider}")
async def oauth_authorize(request: Request, provider: str) -> RedirectResponse:
    """Redirect the browser to the OAuth provider's authorization page.

    Validates the provider name against the enabled provider list before
    redirecting. This prevents an attacker from crafting a redirect to an
    arbitrary URL via a spoofed provider name.
    """
    transient_store: TransientRequestStore = request.app.state.transient_store
    if not _provider_enabled(provider):
        return _fail(transient_store)

    client = request.app.state.oauth.create_client(provider)
    redirect_uri = str(request.url_for("oauth_callback", provider=provider))
    try:
        url, pending = await begin_authorization(client, provider, redirect_uri)
    except (OAuthError, JoseError, HTTPError):
        logger.exception("Could not build authorization URL for provider %r", provider)
        return _fail(transient_store)

    resp = RedirectResponse(url, status_code=302)
    transient_store.save(resp, pending)
    return resp


@router.get("/login/oauth2/code/{provider}", name="oauth_callback")
async def oauth_callback(request: Request, provider: str) -> RedirectResponse:
    """Handle the OAuth provider callback and hand the profile to OAuthCallbackHandler."""
    transient_store: TransientRequestStore = request.app.state.transient_store
    if not _provider_enabled(provider):
        return _fail(transient_store)

    pending = transient_store.load(request)
    if pending is None or pending.provider != provider:
        logger.warning("OAuth callback for %r without a matching pending request", provider)
        return _fail(transient_store)

    if "error" in request.query_params:
        logger.info("OAuth provider %r returned error=%s", provider, request.query_params.get("error"))
        return _fail(transient_store)

    code = request.query_params.get("code", "")
    state = request.query_params.get("state", "")
    if not code:
        return _fail(transient_store)

    client = request.app.state.oauth.create_client(provider)

    # Step 1: Exchange code for token (state checked against the cookie first)
    try:
        token = await complete_authorization(client, pending, code=code, state=state)
    except OAuthStateMismatch:
        logger.warning("OAuth callback rejected for %r: state mismatch", provider)
        return _fail(transient_store)
    except (OAuthError, JoseError, HTTPError):
        logger.exception("OAuth token exchange failed for provider %r", provider)
        return _fail(transient_store)

    # Step 2: Extract a verified profile [H1]
    try:
        profile = await get_profile_exchanger(provider).exchange_profile(client, token)
    except (ValueError, HTTPError):
        logger.warning("OAuth login rejected: unverified or missing email from %r", provider)
        return _fail(transient_store)

    # Step 3: Upsert identity, issue tokens, set cookie, redirect
    handler: OAuthCallbackHandler = request.app.state.oauth_callback_handler
    return handler.on_authentication_success(profile)

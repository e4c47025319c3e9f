"""
auth/oauth.py -- Authlib OAuth provider registry and profile exchange.

build_oauth_registry() registers every provider whose client ID and secret
are configured. The browser routes (web/routes.py) look the client up by
provider name and drive the authorization code flow through
begin_authorization() / complete_authorization().

Transient state:
  authlib's usual authorize_redirect() / authorize_access_token() pair keeps
  the OAuth state in a server-side session. TokenGate is stateless, so the
  lower-level create_authorization_url() / fetch_access_token() calls are used
  instead and the state travels in the signed oauth2_auth_request cookie
  (auth/transient.py). The callback compares the returned state with the
  cookie before exchanging the code.

Profile exchange:
  Each provider returns profile data in its own shape. A ProfileExchanger
  turns a provider token response into ProfileFields(email, display_name).
  The exchanger is selected by provider name from PROFILE_EXCHANGERS.

  [H1] Email verification is mandatory. Exchangers raise ValueError when the
       provider does not confirm the email is verified -- an unverified
       address could belong to someone else.

Layer rule: no imports from api/ or articles/. Import from core/ is allowed.
"""

from __future__ import annotations

import hmac
import logging
from typing import Protocol

from authlib.integrations.starlette_client import OAuth

from auth.models import ProfileFields, TransientAuthRequest
from core.config import Settings

logger = logging.getLogger("tokengate.auth.oauth")


class OAuthStateMismatch(ValueError):
    """The callback's state parameter does not match the pending request cookie."""


# ---------------------------------------------------------------------------
# Authlib OAuth registry
# ---------------------------------------------------------------------------


def build_oauth_registry(settings: Settings) -> OAuth:
    """Return an authlib OAuth registry holding every configured provider."""
    oauth = OAuth()

    # Google -- OIDC discovery
    if settings.google_client_id and settings.google_client_secret:
        oauth.register(
            name="google",
            client_id=settings.google_client_id,
            client_secret=settings.google_client_secret,
            server_metadata_url="https://accounts.google.com/.well-known/openid-configuration",
            client_kwargs={"scope": "openid email profile"},
        )
        logger.info("Google OAuth provider registered")

    # GitHub -- static endpoints (no OIDC discovery document)
    if settings.github_client_id and settings.github_client_secret:
        oauth.register(
            name="github",
            client_id=settings.github_client_id,
            client_secret=settings.github_client_secret,
            access_token_url="https://github.com/login/oauth/access_token",  # noqa: S106 -- URL, not a password
            authorize_url="https://github.com/login/oauth/authorize",
            api_base_url="https://api.github.com/",
            client_kwargs={"scope": "read:user user:email"},
        )
        logger.info("GitHub OAuth provider registered")

    return oauth


def get_enabled_providers(settings: Settings) -> list[dict]:
    """Return {"name", "label"} for every provider with credentials configured."""
    providers: list[dict] = []
    if settings.google_client_id and settings.google_client_secret:
        providers.append({"name": "google", "label": "Google"})
    if settings.github_client_id and settings.github_client_secret:
        providers.append({"name": "github", "label": "GitHub"})
    return providers


# ---------------------------------------------------------------------------
# Authorization code flow
# ---------------------------------------------------------------------------


async def begin_authorization(client, provider: str, redirect_uri: str) -> tuple[str, TransientAuthRequest]:
    """Build the provider authorization URL and the request state to remember.

    authlib generates the state (and, for OIDC scopes, a nonce) and returns
    them alongside the URL. The caller persists the TransientAuthRequest via
    TransientRequestStore and redirects the browser to the URL.
    """
    rv = await client.create_authorization_url(redirect_uri)
    pending = TransientAuthRequest(
        provider=provider,
        state=rv["state"],
        redirect_uri=redirect_uri,
        nonce=rv.get("nonce"),
        code_verifier=rv.get("code_verifier"),
    )
    return rv["url"], pending


async def complete_authorization(client, pending: TransientAuthRequest, code: str, state: str) -> dict:
    """Exchange the authorization code for a provider token response.

    Raises OAuthStateMismatch if ``state`` is not the one issued for this
    browser. For OIDC providers the id_token is validated against the stored
    nonce and its claims are attached as token["userinfo"].
    """
    if not state or not hmac.compare_digest(state, pending.state):
        raise OAuthStateMismatch("OAuth state does not match the pending authorization request")

    params = {"code": code, "state": state, "redirect_uri": pending.redirect_uri}
    if pending.code_verifier:
        params["code_verifier"] = pending.code_verifier
    token = await client.fetch_access_token(**params)

    if "id_token" in token and pending.nonce:
        token["userinfo"] = await client.parse_id_token(token, nonce=pending.nonce)
    return token


# ---------------------------------------------------------------------------
# Profile exchange -- provider-specific normalization [H1]
# ---------------------------------------------------------------------------


class ProfileExchanger(Protocol):
    async def exchange_profile(self, client, token: dict) -> ProfileFields: ...


class GoogleProfileExchanger:
    """Read email and name from the validated id_token claims (or the userinfo endpoint)."""

    async def exchange_profile(self, client, token: dict) -> ProfileFields:
        userinfo = token.get("userinfo")
        if not userinfo:
            userinfo = await client.userinfo(token=token)
        if not userinfo:
            raise ValueError("google OAuth: no userinfo in token response")

        if not userinfo.get("email_verified", False):
            raise ValueError(
                "google OAuth: email is not verified. "
                "The provider must confirm email ownership before login is allowed."
            )
        email = userinfo.get("email")
        if not email:
            raise ValueError("google OAuth: missing email claim in userinfo")
        return ProfileFields(email=email, display_name=userinfo.get("name") or email)


class GitHubProfileExchanger:
    """GitHub does not put the email in the token; two API calls are required.

      1. GET /user        -- display name (falls back to login).
      2. GET /user/emails -- the entry with both primary=true and verified=true.
    """

    async def exchange_profile(self, client, token: dict) -> ProfileFields:
        resp = await client.get("user", token=token)
        resp.raise_for_status()
        profile = resp.json()

        emails_resp = await client.get("user/emails", token=token)
        emails_resp.raise_for_status()

        email: str | None = None
        for entry in emails_resp.json():
            if entry.get("primary") and entry.get("verified"):
                email = entry["email"]
                break

        if not email:
            raise ValueError(
                "GitHub OAuth: no primary verified email found. "
                "The user must verify their email address on GitHub before logging in."
            )
        return ProfileFields(email=email, display_name=profile.get("name") or profile.get("login") or email)


PROFILE_EXCHANGERS: dict[str, ProfileExchanger] = {
    "google": GoogleProfileExchanger(),
    "github": GitHubProfileExchanger(),
}


def get_profile_exchanger(provider: str) -> ProfileExchanger:
    try:
        return PROFILE_EXCHANGERS[provider]
    except KeyError:
        raise ValueError(f"Unknown OAuth provider: {provider!r}") from None

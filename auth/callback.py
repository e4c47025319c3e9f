"""
auth/callback.py -- What happens after a provider says "this is who the user is".

OAuthCallbackHandler.on_authentication_success() runs the post-login
sequence for a verified provider profile:

  1. Upsert the identity (update display name if the email exists, else create).
  2. Issue a refresh token and store it as the user's only refresh token.
  3. Set it in the refresh_token cookie (path "/", max_age = refresh TTL).
  4. Issue an access token and append it as ?token= to the landing path.
  5. Clear the oauth2_auth_request cookie.

The result is a 302 to the landing page. Storage failures propagate to the
caller; there is no partial-success path.

Layer rule: no imports from api/ or articles/.
"""

from __future__ import annotations

import logging
from urllib.parse import urlencode

from starlette.responses import RedirectResponse

from auth.models import ProfileFields
from auth.service import TokenService
from auth.store import UserStore
from auth.tokens import set_refresh_cookie
from auth.transient import TransientRequestStore

logger = logging.getLogger("tokengate.auth.callback")


def landing_url(path: str, access_token: str) -> str:
    separator = "&" if "?" in path else "?"
    return f"{path}{separator}{urlencode({'token': access_token})}"


class OAuthCallbackHandler:
    def __init__(
        self,
        user_store: UserStore,
        token_service: TokenService,
        transient_store: TransientRequestStore,
        landing_path: str = "/articles",
        secure_cookies: bool = False,
    ) -> None:
        self.user_store = user_store
        self.token_service = token_service
        self.transient_store = transient_store
        self.landing_path = landing_path
        self.secure_cookies = secure_cookies

    def on_authentication_success(self, profile: ProfileFields) -> RedirectResponse:
        user = self.user_store.upsert_oauth_user(profile.email, profile.display_name)
        tokens = self.token_service.issue_for_login(user)

        resp = RedirectResponse(landing_url(self.landing_path, tokens.access_token), status_code=302)
        refresh_ttl = int(self.token_service.authority.refresh_ttl.total_seconds())
        set_refresh_cookie(resp, tokens.refresh_token, max_age=refresh_ttl, secure=self.secure_cookies)
        self.transient_store.clear(resp)
        resp.headers["Cache-Control"] = "no-store"  # [M5]
        logger.info("OAuth login complete (user_id=%d)", user.id)
        return resp

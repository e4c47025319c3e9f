"""
auth/service.py -- Token lifecycle operations that touch storage.

TokenService ties TokenAuthority (stateless signing) to UserStore and
RefreshTokenStore (persistent state). It implements the two places a
refresh token changes hands:

  issue_for_login()          -- a completed login: mint both tokens and make
                                the new refresh token the user's only one.
  create_new_access_token()  -- POST /api/token: trade a refresh token for a
                                fresh access token.

Refresh token rotation on exchange is controlled by rotate_refresh_tokens.
With rotation off (the default) the presented refresh token stays valid until
it expires or a later login supersedes it. With rotation on, each exchange
also replaces the stored refresh token through a compare-and-set on the
presented value, so the presented one can be used exactly once, even by
concurrent callers.

Layer rule: no imports from api/ or articles/.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from auth.errors import IdentityNotFound, InvalidToken, TokenNotRecognized
from auth.models import User
from auth.store import RefreshTokenStore, UserStore
from auth.tokens import TokenAuthority

logger = logging.getLogger("tokengate.auth.service")


@dataclass(frozen=True)
class IssuedTokens:
    access_token: str
    # None when an exchange did not rotate the refresh token.
    refresh_token: str | None = None


class TokenService:
    def __init__(
        self,
        authority: TokenAuthority,
        user_store: UserStore,
        refresh_store: RefreshTokenStore,
        rotate_refresh_tokens: bool = False,
    ) -> None:
        self.authority = authority
        self.user_store = user_store
        self.refresh_store = refresh_store
        self.rotate_refresh_tokens = rotate_refresh_tokens

    def issue_for_login(self, user: User) -> IssuedTokens:
        """Mint an access/refresh pair and persist the refresh token for ``user``.

        Any refresh token previously stored for the user is overwritten and
        stops being accepted by create_new_access_token().
        """
        refresh_token = self.authority.issue_refresh_token(user)
        self.refresh_store.upsert(user.id, refresh_token)
        access_token = self.authority.issue_access_token(user)
        return IssuedTokens(access_token=access_token, refresh_token=refresh_token)

    def exchange(self, refresh_token: str) -> IssuedTokens:
        """Validate a refresh token against signature, storage, and identity.

        Raises:
            InvalidToken:       bad signature, malformed, or expired.
            TokenNotRecognized: well-signed but not the user's current token.
            IdentityNotFound:   the stored row points at a user that no longer exists.
        """
        if not self.authority.validate(refresh_token):
            raise InvalidToken()

        stored = self.refresh_store.find_by_token(refresh_token)
        if stored is None:
            logger.info("Refresh token exchange rejected: token not recognized")
            raise TokenNotRecognized()

        user = self.user_store.get_by_id(stored.user_id)
        if user is None:
            logger.warning("Refresh token exchange rejected: user %d no longer exists", stored.user_id)
            raise IdentityNotFound()

        access_token = self.authority.issue_access_token(user)
        if not self.rotate_refresh_tokens:
            return IssuedTokens(access_token=access_token)

        new_refresh = self.authority.issue_refresh_token(user)
        if not self.refresh_store.replace(user.id, refresh_token, new_refresh):
            # Another exchange (or a login) replaced the token since find_by_token.
            logger.info("Refresh token rotation rejected: token already replaced (user_id=%d)", user.id)
            raise TokenNotRecognized()
        return IssuedTokens(access_token=access_token, refresh_token=new_refresh)

    def create_new_access_token(self, refresh_token: str) -> str:
        return self.exchange(refresh_token).access_token

    def revoke(self, user_id: int) -> bool:
        """Drop the user's stored refresh token (logout)."""
        return self.refresh_store.delete_by_user_id(user_id)

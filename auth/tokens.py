"""
auth/tokens.py -- JWT signing/verification and access/refresh token issuance.

Security design decisions:
  JWT: python-jose with HS256. Tokens carry the registered claims iss, iat and
       exp plus sub (user email) and id (user id). Refresh tokens also carry a
       random jti, so no two refresh tokens are ever equal. Verification returns False
       or raises InvalidToken on any failure -- bad signature, malformed
       segments, wrong issuer, and expiry are deliberately indistinguishable
       to the caller.

  TokenCodec owns the key and algorithm; TokenAuthority owns the token
       vocabulary (what an access or refresh token contains and how long it
       lives). Both are immutable after construction and safe to share across
       concurrent requests without locking.

  Signatures must be canonical base64url. The last character of an HS256
       signature carries two unused bits, and a lenient decoder would accept
       four spellings of the same signature.

  SECRET_KEY: passed in from Settings (TokenAuthority.from_settings). The
       Settings class validates the key at startup [M6].

Layer rule: no imports from api/ or articles/. Import from core/ is allowed --
core/ is the kernel and has no reverse dependencies.
"""

from __future__ import annotations

import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import Any

from jose import JWTError, jwt
from jose.utils import base64url_decode, base64url_encode

from auth.errors import InvalidToken
from auth.models import AuthPrincipal, User
from core.config import Settings

logger = logging.getLogger("tokengate.auth")

_ALGORITHM = "HS256"

REFRESH_TOKEN_COOKIE = "refresh_token"

# Registered claims are always set by the codec; callers cannot override them.
_REGISTERED_CLAIMS = ("iss", "iat", "exp")


# ---------------------------------------------------------------------------
# Codec -- sign / verify compact JWTs
# ---------------------------------------------------------------------------


class TokenCodec:
    """Signs and verifies compact HS256 JWTs.

    Usage:
        codec = TokenCodec(secret_key, issuer="tokengate")
        token = codec.issue({"sub": "a@example.com", "id": 1}, timedelta(hours=2))
        codec.verify(token)          # True
        codec.extract_claims(token)  # {"iss": ..., "sub": ..., "id": 1, ...}
    """

    def __init__(self, secret_key: str, issuer: str) -> None:
        if not secret_key:
            raise ValueError("TokenCodec requires a non-empty secret key")
        self._secret_key = secret_key
        self._issuer = issuer

    @property
    def issuer(self) -> str:
        return self._issuer

    def issue(self, claims: dict[str, Any], expiry: timedelta) -> str:
        """Encode claims into a signed token that expires ``expiry`` from now.

        A negative expiry produces an already-expired token; tests use this
        to exercise the expiry path with a correct signature.
        """
        now = datetime.now(timezone.utc)
        payload = {k: v for k, v in claims.items() if k not in _REGISTERED_CLAIMS}
        payload["iss"] = self._issuer
        payload["iat"] = now
        payload["exp"] = now + expiry
        return jwt.encode(payload, self._secret_key, algorithm=_ALGORITHM)

    def extract_claims(self, token: str) -> dict[str, Any]:
        """Verify the token and return its claim set. Raises InvalidToken on any failure."""
        if not token or not _has_canonical_signature(token):
            raise InvalidToken()
        try:
            return jwt.decode(
                token,
                self._secret_key,
                algorithms=[_ALGORITHM],
                issuer=self._issuer,
                options={"require_exp": True, "require_iat": True},
            )
        except (JWTError, ValueError, TypeError) as exc:
            # Exception detail stays in the debug log; callers only learn "invalid".
            logger.debug("Token rejected: %s", type(exc).__name__)
            raise InvalidToken() from exc

    def verify(self, token: str) -> bool:
        """Return True only if the signature, issuer, and expiry all check out."""
        try:
            self.extract_claims(token)
        except InvalidToken:
            return False
        return True


def _has_canonical_signature(token: str) -> bool:
    parts = token.split(".")
    if len(parts) != 3 or not parts[2]:
        return False
    try:
        signature = parts[2].encode("ascii")
        return base64url_encode(base64url_decode(signature)) == signature
    except ValueError:
        return False


# ---------------------------------------------------------------------------
# Authority -- access / refresh token vocabulary
# ---------------------------------------------------------------------------


class TokenAuthority:
    """Issues and interprets the two token kinds TokenGate hands out.

    Access tokens are short-lived and never stored. Refresh tokens are
    long-lived; the caller is responsible for persisting them through
    RefreshTokenStore. Both carry sub and id; refresh tokens add a
    random jti and live longer.
    """

    def __init__(self, codec: TokenCodec, access_ttl: timedelta, refresh_ttl: timedelta) -> None:
        self.codec = codec
        self.access_ttl = access_ttl
        self.refresh_ttl = refresh_ttl

    @classmethod
    def from_settings(cls, settings: Settings) -> "TokenAuthority":
        return cls(
            TokenCodec(settings.secret_key, issuer=settings.jwt_issuer),
            access_ttl=timedelta(seconds=settings.access_token_expire_seconds),
            refresh_ttl=timedelta(seconds=settings.refresh_token_expire_seconds),
        )

    def _issue(self, user: User, ttl: timedelta, **extra: Any) -> str:
        if user.id is None:
            raise ValueError("Cannot issue a token for a user that has not been stored")
        return self.codec.issue({"sub": user.email, "id": user.id, **extra}, ttl)

    def issue_access_token(self, user: User, ttl: timedelta | None = None) -> str:
        return self._issue(user, ttl if ttl is not None else self.access_ttl)

    def issue_refresh_token(self, user: User, ttl: timedelta | None = None) -> str:
        # jti makes every refresh token unique, even two issued in the same second.
        return self._issue(user, ttl if ttl is not None else self.refresh_ttl, jti=secrets.token_urlsafe(16))

    def validate(self, token: str) -> bool:
        return self.codec.verify(token)

    def authenticated_identity(self, token: str) -> AuthPrincipal | None:
        """Build a principal from the token's claims, or None if the token is invalid.

        The user record is not re-fetched: a principal is only as fresh as
        the token it came from.
        """
        try:
            claims = self.codec.extract_claims(token)
        except InvalidToken:
            return None
        return _principal_from_claims(claims)

    def resolve_identity_id(self, token: str) -> int | None:
        principal = self.authenticated_identity(token)
        return principal.user_id if principal is not None else None


def _principal_from_claims(claims: dict[str, Any]) -> AuthPrincipal | None:
    subject = claims.get("sub")
    user_id = claims.get("id")
    # bool is an int subclass; a token claiming "id": true is not an identity.
    if not isinstance(subject, str) or not subject or not isinstance(user_id, int) or isinstance(user_id, bool):
        return None
    return AuthPrincipal(subject=subject, user_id=user_id)


# ---------------------------------------------------------------------------
# Cookie helpers
# ---------------------------------------------------------------------------


def set_refresh_cookie(response, token: str, max_age: int, secure: bool = False) -> None:
    """Write the refresh token as an httpOnly cookie, replacing any earlier one.

    httponly=True: JS cannot read the cookie (XSS mitigation).
    samesite="lax": not sent on cross-site POST -- CSRF mitigation.
    max_age: matches the refresh token lifetime so both expire together.
    """
    response.set_cookie(
        REFRESH_TOKEN_COOKIE,
        value=token,
        max_age=max_age,
        path="/",
        httponly=True,
        samesite="lax",
        secure=secure,
    )


def clear_refresh_cookie(response) -> None:
    response.delete_cookie(REFRESH_TOKEN_COOKIE, path="/")

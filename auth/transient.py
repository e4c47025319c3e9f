"""
auth/transient.py -- Cookie-backed holding area for in-flight OAuth requests.

Between the redirect to the provider and the provider's callback, TokenGate
keeps no server-side session. The authorization request state (provider,
state, redirect_uri, and the nonce / PKCE verifier when present) travels in
the oauth2_auth_request cookie instead.

Security:
  The cookie is written with itsdangerous.URLSafeTimedSerializer: a
  base64url JSON payload plus an HMAC signature and timestamp. Tampered or
  older-than-max_age cookies fail to load. Only a flat dict of known string
  fields is encoded and decoded -- no arbitrary object deserialization of
  client-controlled data.

  The cookie lives only from "authorization requested" to "callback received";
  the callback clears it on success and on failure.

Layer rule: no imports from api/ or articles/.
"""

from __future__ import annotations

import logging

from itsdangerous import BadSignature, URLSafeTimedSerializer
from starlette.requests import Request

from auth.models import TransientAuthRequest

logger = logging.getLogger("tokengate.auth.transient")

OAUTH2_AUTH_REQUEST_COOKIE = "oauth2_auth_request"
DEFAULT_MAX_AGE = 18000

_SALT = "oauth2-auth-request"
_REQUIRED = ("provider", "state", "redirect_uri")
_OPTIONAL = ("nonce", "code_verifier")


class TransientRequestStore:
    """Signed-cookie store for TransientAuthRequest records.

    Usage:
        store = TransientRequestStore(secret_key)
        store.save(response, TransientAuthRequest(provider="google", state=..., redirect_uri=...))
        pending = store.load(request)   # None if missing, tampered, or expired
        store.clear(response)
    """

    def __init__(self, secret_key: str, max_age: int = DEFAULT_MAX_AGE, secure: bool = False) -> None:
        self._serializer = URLSafeTimedSerializer(secret_key, salt=_SALT)
        self.max_age = max_age
        self.secure = secure

    def encode(self, auth_request: TransientAuthRequest) -> str:
        data = {name: getattr(auth_request, name) for name in _REQUIRED}
        for name in _OPTIONAL:
            value = getattr(auth_request, name)
            if value is not None:
                data[name] = value
        return self._serializer.dumps(data)

    def decode(self, value: str) -> TransientAuthRequest | None:
        try:
            data = self._serializer.loads(value, max_age=self.max_age)
        except BadSignature:
            # SignatureExpired is a BadSignature subclass.
            logger.info("Discarding invalid or expired OAuth request cookie")
            return None
        if not isinstance(data, dict):
            return None
        fields: dict[str, str | None] = {}
        for name in _REQUIRED:
            if not isinstance(data.get(name), str) or not data[name]:
                return None
            fields[name] = data[name]
        for name in _OPTIONAL:
            value = data.get(name)
            fields[name] = value if isinstance(value, str) else None
        return TransientAuthRequest(**fields)

    def save(self, response, auth_request: TransientAuthRequest) -> None:
        response.set_cookie(
            OAUTH2_AUTH_REQUEST_COOKIE,
            value=self.encode(auth_request),
            max_age=self.max_age,
            path="/",
            httponly=True,
            samesite="lax",
            secure=self.secure,
        )

    def load(self, request: Request) -> TransientAuthRequest | None:
        value = request.cookies.get(OAUTH2_AUTH_REQUEST_COOKIE)
        if not value:
            return None
        return self.decode(value)

    def clear(self, response) -> None:
        response.delete_cookie(OAUTH2_AUTH_REQUEST_COOKIE, path="/")

"""
auth/errors.py -- Authentication and authorization failures.

Each error carries a machine-readable code, an HTTP status, and a generic
message. The message is what clients see: it never includes token contents,
claims, or the reason a signature check failed. api/main.py maps AuthError
to the standard error envelope.

Token verification failures inside the middleware never raise -- they leave
the request unauthenticated. These exceptions come from explicit operations
(POST /api/token, ownership checks, route guards).
"""

from __future__ import annotations


class AuthError(Exception):
    """Base class for every failure this package reports to a caller."""

    code = "auth_error"
    status_code = 401
    message = "Authentication failed."

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.message)


class InvalidToken(AuthError):
    """Malformed, badly signed, or expired token. The three cases are not distinguished."""

    code = "invalid_token"
    message = "Invalid or expired token."


class TokenNotRecognized(AuthError):
    """Well-signed refresh token that is not the one currently stored for its user."""

    code = "token_not_recognized"
    message = "Invalid or expired token."


class IdentityNotFound(AuthError):
    code = "identity_not_found"
    message = "Invalid or expired token."


class NotAuthorized(AuthError):
    """Acting identity does not own the resource it is trying to change."""

    code = "forbidden"
    status_code = 403
    message = "You are not allowed to modify this resource."

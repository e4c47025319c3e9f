"""
api/limiter.py -- Rate limiting for the token exchange endpoint.

One Limiter instance is shared by api/main.py (app.state.limiter, enforced by
SlowAPIMiddleware) and api/routes/token.py (@limiter.limit). Separate
instances would keep separate counters and the limit would never trip.

Counters are keyed by client IP and kept in process memory: they reset on
restart and are not shared between workers.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from core.config import get_settings

limiter = Limiter(key_func=get_remote_address, storage_uri="memory://", strategy="fixed-window")


def token_rate_limit() -> str:
    """TOKEN_RATE_LIMIT as a slowapi limit string, e.g. "20/minute"."""
    return get_settings().token_rate_limit

"""
core/config.py -- TokenGate settings, read from the environment via pydantic-settings.

Every environment variable the service understands is a field on Settings;
nothing else in the codebase reads os.environ. Field names map to upper-case
variables (access_token_expire_seconds -> ACCESS_TOKEN_EXPIRE_SECONDS), and a
.env file in the working directory is honored when present.

get_settings() builds Settings once and caches it. FastAPI routes and the
lifespan call it rather than constructing Settings() themselves.

Signing key policy:
  [M6] SECRET_KEY signs both the JWTs and the oauth2_auth_request cookie and
       must be at least 32 characters.

  [M7] Without DEBUG=true a missing SECRET_KEY stops startup. With DEBUG=true
       a random key is generated; every issued token dies with the process.

Layer rule: core/ is the kernel. This module may not import from api/, auth/,
or articles/.
"""

import logging
import secrets
from functools import lru_cache

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("tokengate.config")

_MIN_KEY_LENGTH = 32


class Settings(BaseSettings):
    """Runtime configuration. Every field has a default except the production SECRET_KEY."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    debug: bool = False
    # "" means unset; resolved by require_secret_key below.
    secret_key: str = ""
    database_url: str = "sqlite:///tokengate.db"

    # Tokens
    jwt_issuer: str = "tokengate"
    access_token_expire_seconds: int = 2 * 60 * 60
    refresh_token_expire_seconds: int = 14 * 24 * 60 * 60
    # When true, POST /api/token also replaces the stored refresh token.
    rotate_refresh_tokens: bool = False

    # Cookies and the post-login redirect
    secure_cookies: bool = False
    oauth_landing_path: str = "/articles"
    oauth_request_cookie_max_age: int = 18000

    # OAuth providers; a provider is enabled only when both values are set.
    google_client_id: str = ""
    google_client_secret: str = ""
    github_client_id: str = ""
    github_client_secret: str = ""

    # HTTP surface
    token_rate_limit: str = "20/minute"
    allowed_hosts: list[str] = ["localhost", "127.0.0.1", "*.localhost"]
    cors_origins: list[str] = ["http://localhost", "http://localhost:3000", "http://127.0.0.1"]

    @field_validator("access_token_expire_seconds", "refresh_token_expire_seconds", "oauth_request_cookie_max_age")
    @classmethod
    def positive_lifetime(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("Token and cookie lifetimes must be positive.")
        return value

    @field_validator("oauth_landing_path")
    @classmethod
    def relative_landing_path(cls, value: str) -> str:
        # "//host" is scheme-relative and would leave the site.
        if not value.startswith("/") or value.startswith("//"):
            raise ValueError("OAUTH_LANDING_PATH must be a relative path such as /articles.")
        return value

    @model_validator(mode="after")
    def require_secret_key(self) -> "Settings":
        """Apply the signing key policy [M6] [M7]."""
        if not self.secret_key:
            if not self.debug:
                raise ValueError(
                    "SECRET_KEY is required unless DEBUG=true. "
                    "Set it in the environment or in .env."
                )
            self.secret_key = secrets.token_urlsafe(48)
            logger.warning("DEBUG: generated a temporary SECRET_KEY; tokens will not survive a restart.")
        if len(self.secret_key) < _MIN_KEY_LENGTH:
            raise ValueError(f"SECRET_KEY must be at least {_MIN_KEY_LENGTH} characters.")
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the process-wide Settings, built on first call.

    Tests that change environment variables must call get_settings.cache_clear().
    """
    return Settings()

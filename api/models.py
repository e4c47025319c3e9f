"""
API request and response models for TokenGate REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py and
articles/models.py, which own the internal domain representation. Route
handlers map between the two.

JSON field names are camelCase on the wire (refreshToken, accessToken) to
match the browser client; Python attributes stay snake_case.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from articles.models import Article

# ---------------------------------------------------------------------------
# Token exchange
# ---------------------------------------------------------------------------


class CreateAccessTokenRequest(BaseModel):
    """Request body for POST /api/token."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, str_strip_whitespace=True)

    refresh_token: str = Field(min_length=1, max_length=4096)


class CreateAccessTokenResponse(BaseModel):
    """Response body for POST /api/token.

    refreshToken is only present when refresh token rotation is enabled.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    access_token: str
    refresh_token: Optional[str] = None


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------


class MeResponse(BaseModel):
    """Response for GET /api/auth/me."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    user_id: int
    email: str
    display_name: Optional[str] = None


class OAuthProviderInfo(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    label: str


# ---------------------------------------------------------------------------
# Articles
# ---------------------------------------------------------------------------


class ArticleWrite(BaseModel):
    """Request body for POST /api/articles and PUT /api/articles/{id}."""

    model_config = ConfigDict(str_strip_whitespace=True)

    title: str = Field(min_length=1, max_length=255)
    content: str = Field(min_length=1, max_length=100_000)


class ArticleResponse(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    id: int
    title: str
    content: str
    author: str
    created_at: str
    updated_at: str

    @classmethod
    def from_article(cls, article: Article) -> "ArticleResponse":
        return cls(
            id=article.id,
            title=article.title,
            content=article.content,
            author=article.author,
            created_at=article.created_at,
            updated_at=article.updated_at,
        )


# ---------------------------------------------------------------------------
# Errors / health
# ---------------------------------------------------------------------------


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str] = Field(default_factory=dict)

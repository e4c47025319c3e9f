"""
api/routes/articles.py -- Article routes guarded by the ownership check.

Routes:
  POST   /api/articles              -- create; author = caller's subject (auth)
  GET    /api/articles/{article_id} -- read (public)
  PUT    /api/articles/{article_id} -- update (auth + owner)
  DELETE /api/articles/{article_id} -- delete (auth + owner)

Ownership:
  Mutating routes load the article first and call assert_owner() with its
  recorded author. A mismatch raises NotAuthorized, which api/main.py maps to
  403. Reads are not owner-restricted.
"""

from fastapi import APIRouter, Depends, HTTPException, Request, Response

from api.models import ArticleResponse, ArticleWrite
from articles.models import Article
from articles.store import ArticleStore
from auth.dependencies import assert_owner, require_auth
from auth.models import AuthorizationContext

router = APIRouter()


def _get_or_404(store: ArticleStore, article_id: int) -> Article:
    article = store.get_article(article_id)
    if article is None:
        raise HTTPException(
            status_code=404,
            detail={"code": "not_found", "message": "Article not found."},
        )
    return article


@router.post("/articles", response_model=ArticleResponse, status_code=201)
def create_article(
    request: Request,
    body: ArticleWrite,
    ctx: AuthorizationContext = Depends(require_auth),
) -> ArticleResponse:
    store: ArticleStore = request.app.state.article_store
    article_id = store.create_article(Article(title=body.title, content=body.content, author=ctx.subject))
    return ArticleResponse.from_article(store.get_article(article_id))


@router.get("/articles/{article_id}", response_model=ArticleResponse)
def get_article(request: Request, article_id: int) -> ArticleResponse:
    store: ArticleStore = request.app.state.article_store
    return ArticleResponse.from_article(_get_or_404(store, article_id))


@router.put("/articles/{article_id}", response_model=ArticleResponse)
def update_article(
    request: Request,
    article_id: int,
    body: ArticleWrite,
    ctx: AuthorizationContext = Depends(require_auth),
) -> ArticleResponse:
    store: ArticleStore = request.app.state.article_store
    article = _get_or_404(store, article_id)
    assert_owner(article.author, ctx)
    store.update_article(article_id, title=body.title, content=body.content)
    return ArticleResponse.from_article(_get_or_404(store, article_id))


@router.delete("/articles/{article_id}", status_code=204)
def delete_article(
    request: Request,
    article_id: int,
    ctx: AuthorizationContext = Depends(require_auth),
) -> Response:
    store: ArticleStore = request.app.state.article_store
    article = _get_or_404(store, article_id)
    assert_owner(article.author, ctx)
    store.delete_article(article_id)
    return Response(status_code=204)

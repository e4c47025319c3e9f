"""
articles/store.py -- SQLAlchemy-backed persistence for articles.

Uses SQLAlchemy Core (not ORM) so the dataclass in articles/models.py remains
the authoritative domain representation.

Pattern: Repository + Data Mapper. ArticleStore is the repository;
_row_to_article is the mapper. Route handlers never touch SQL directly.

Security: all queries use bound parameters. No f-strings in SQL.

Usage:
    store = ArticleStore()
    article_id = store.create_article(Article(title="t", content="c", author="ada@example.com"))
    store.update_article(article_id, title="new title", content="new body")
    store.close()
"""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Column, Integer, MetaData, String, Table, Text
from sqlalchemy.engine import Engine

from articles.models import Article
from core.db import create_db_engine

_DEFAULT_DB_URL = "sqlite:///tokengate.db"

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_articles = Table(
    "articles",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("title", String(255), nullable=False),
    Column("content", Text, nullable=False),
    Column("author", String(255), nullable=False, index=True),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class ArticleStore:
    def __init__(self, db_url: str = _DEFAULT_DB_URL) -> None:
        self.engine: Engine = create_db_engine(db_url)
        _metadata.create_all(self.engine)

    def create_article(self, article: Article) -> int:
        """Insert an article and return its assigned database ID."""
        now = _now_iso()
        with self.engine.connect() as conn:
            result = conn.execute(
                _articles.insert().values(
                    title=article.title,
                    content=article.content,
                    author=article.author,
                    created_at=now,
                    updated_at=now,
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def get_article(self, article_id: int) -> Optional[Article]:
        with self.engine.connect() as conn:
            row = conn.execute(_articles.select().where(_articles.c.id == article_id)).fetchone()
        return _row_to_article(row) if row is not None else None

    def update_article(self, article_id: int, title: str, content: str) -> bool:
        """Replace title and content. Returns False if the article does not exist.

        The ownership check is the caller's responsibility -- the store does
        not know who is asking.
        """
        with self.engine.connect() as conn:
            result = conn.execute(
                _articles.update()
                .where(_articles.c.id == article_id)
                .values(title=title, content=content, updated_at=_now_iso())
            )
            conn.commit()
        return result.rowcount > 0

    def delete_article(self, article_id: int) -> bool:
        with self.engine.connect() as conn:
            result = conn.execute(_articles.delete().where(_articles.c.id == article_id))
            conn.commit()
        return result.rowcount > 0

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mapper
# ---------------------------------------------------------------------------


def _row_to_article(row) -> Article:
    return Article(
        id=row.id,
        title=row.title,
        content=row.content,
        author=row.author,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )

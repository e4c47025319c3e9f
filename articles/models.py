"""
articles/models.py -- Domain dataclass for published articles.

Pure data container with zero logic. Ownership rules live in
auth.dependencies.assert_owner(); persistence lives in articles/store.py.
"""

from dataclasses import dataclass
from typing import Optional


@dataclass
class Article:
    """A published article.

    author is the token subject (email) of the identity that created it and
    is the value mutating routes compare against the caller.

    id is None before the record is written to the database.
    """

    title: str
    content: str
    author: str
    id: Optional[int] = None
    created_at: str = ""  # ISO 8601, set by store on insert
    updated_at: str = ""

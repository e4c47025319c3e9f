"""
auth/store.py -- SQLAlchemy Core persistence layer for auth entities.

Pattern: Repository + Data Mapper.
UserStore and RefreshTokenStore are the repositories; _row_to_user /
_row_to_refresh_token are the mappers. Route and service code never touches
SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.

  refresh_tokens.user_id is UNIQUE at the SQL level. upsert() updates first
  and inserts only when no row exists; if a concurrent login inserts between
  the two statements the INSERT fails with IntegrityError and the update is
  retried. Either way exactly one row per user survives.

  users.email is UNIQUE for the same reason: two simultaneous first logins
  for the same address collapse onto one identity.

Layer rule: no imports from api/ or articles/. core/db.py supplies the engine.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import Column, Integer, MetaData, String, Table, Text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError

from auth.models import RefreshToken, User
from core.db import create_db_engine

logger = logging.getLogger("tokengate.auth.store")

_DEFAULT_DB_URL = "sqlite:///tokengate.db"

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("email", String(255), nullable=False, unique=True),
    Column("display_name", String(255), nullable=False, server_default=""),
    Column("created_at", String(32), nullable=False),
)

_refresh_tokens = Table(
    "refresh_tokens",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer, nullable=False, unique=True),
    Column("token", Text, nullable=False, index=True),
    Column("updated_at", String(32), nullable=False),
)


# ---------------------------------------------------------------------------
# Engine helpers
# ---------------------------------------------------------------------------


def make_engine(db_url: str) -> Engine:
    """Create an engine and make sure the auth tables exist."""
    engine = create_db_engine(db_url)
    _metadata.create_all(engine)
    return engine


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User identities.

    Usage:
        store = UserStore()
        user = store.upsert_oauth_user("ada@example.com", "Ada")
        store.get_by_id(user.id)
        store.close()
    """

    def __init__(self, db_url: str = _DEFAULT_DB_URL) -> None:
        self.engine: Engine = make_engine(db_url)

    def create_user(self, user: User) -> int:
        """Insert a new user and return its assigned database ID.

        Raises sqlalchemy.exc.IntegrityError if the email already exists.
        """
        with self.engine.connect() as conn:
            result = conn.execute(
                _users.insert().values(
                    email=user.email,
                    display_name=user.display_name or "",
                    created_at=_now_iso(),
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def get_by_id(self, user_id: int) -> User | None:
        """Look up a user by primary key. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_email(self, email: str) -> User | None:
        """Look up a user by exact email (case-sensitive). Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.email == email)).fetchone()
        return _row_to_user(row) if row is not None else None

    def update_display_name(self, user_id: int, display_name: str) -> bool:
        """Returns True if a row was updated, False if user_id was not found."""
        with self.engine.connect() as conn:
            result = conn.execute(_users.update().where(_users.c.id == user_id).values(display_name=display_name))
            conn.commit()
        return result.rowcount > 0

    def upsert_oauth_user(self, email: str, display_name: str) -> User:
        """Return the user for ``email``, creating it or refreshing its display name.

        Called on every successful OAuth login. A concurrent first login for
        the same email loses on the UNIQUE constraint and simply re-reads the
        row the winner created.
        """
        user = self.get_by_email(email)
        if user is None:
            try:
                self.create_user(User(email=email, display_name=display_name))
                logger.info("Created user on first OAuth login (user=%s)", email)
            except IntegrityError:
                logger.debug("Concurrent first login for %s; reusing existing row", email)
        elif display_name and display_name != user.display_name:
            self.update_display_name(user.id, display_name)

        user = self.get_by_email(email)
        if user is None:
            raise RuntimeError(f"User {email!r} missing after upsert")
        return user

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Refresh tokens
# ---------------------------------------------------------------------------


class RefreshTokenStore:
    """Repository for the one-row-per-user refresh token table.

    Reads need no locking beyond the database's own consistency. The only
    write path that matters for correctness is upsert().
    """

    def __init__(self, db_url: str = _DEFAULT_DB_URL) -> None:
        self.engine: Engine = make_engine(db_url)

    def find_by_user_id(self, user_id: int) -> RefreshToken | None:
        with self.engine.connect() as conn:
            row = conn.execute(_refresh_tokens.select().where(_refresh_tokens.c.user_id == user_id)).fetchone()
        return _row_to_refresh_token(row) if row is not None else None

    def find_by_token(self, token: str) -> RefreshToken | None:
        """Look up the row whose current token value is exactly ``token``.

        A token that was superseded by a later login no longer matches any row.
        """
        with self.engine.connect() as conn:
            row = conn.execute(_refresh_tokens.select().where(_refresh_tokens.c.token == token)).fetchone()
        return _row_to_refresh_token(row) if row is not None else None

    def upsert(self, user_id: int, token: str) -> RefreshToken:
        """Store ``token`` as the user's refresh token, replacing any previous one."""
        try:
            with self.engine.begin() as conn:
                if not self._update(conn, user_id, token):
                    conn.execute(_refresh_tokens.insert().values(user_id=user_id, token=token, updated_at=_now_iso()))
        except IntegrityError:
            # Lost the insert race to a concurrent login; the row exists now.
            with self.engine.begin() as conn:
                if not self._update(conn, user_id, token):
                    raise
        stored = self.find_by_user_id(user_id)
        if stored is None:
            raise RuntimeError(f"Refresh token for user {user_id} missing after upsert")
        return stored

    def replace(self, user_id: int, presented: str, new_token: str) -> bool:
        """Swap ``presented`` for ``new_token`` only if it is still the stored value.

        A single conditional UPDATE: of two concurrent callers presenting the
        same token, exactly one sees rowcount 1. Returns False when the row is
        gone or already holds a different token.
        """
        with self.engine.begin() as conn:
            result = conn.execute(
                _refresh_tokens.update()
                .where(_refresh_tokens.c.user_id == user_id)
                .where(_refresh_tokens.c.token == presented)
                .values(token=new_token, updated_at=_now_iso())
            )
        return result.rowcount == 1

    @staticmethod
    def _update(conn, user_id: int, token: str) -> bool:
        result = conn.execute(
            _refresh_tokens.update()
            .where(_refresh_tokens.c.user_id == user_id)
            .values(token=token, updated_at=_now_iso())
        )
        return result.rowcount > 0

    def delete_by_user_id(self, user_id: int) -> bool:
        """Revoke the user's refresh token. Returns True if a row was deleted."""
        with self.engine.connect() as conn:
            result = conn.execute(_refresh_tokens.delete().where(_refresh_tokens.c.user_id == user_id))
            conn.commit()
        return result.rowcount > 0

    def count_for_user(self, user_id: int) -> int:
        """Number of rows stored for a user (0 or 1 while the UNIQUE constraint holds)."""
        with self.engine.connect() as conn:
            rows = conn.execute(_refresh_tokens.select().where(_refresh_tokens.c.user_id == user_id)).fetchall()
        return len(rows)

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        email=row.email,
        display_name=row.display_name,
        created_at=row.created_at,
    )


def _row_to_refresh_token(row) -> RefreshToken:
    return RefreshToken(
        id=row.id,
        user_id=row.user_id,
        token=row.token,
        updated_at=row.updated_at,
    )

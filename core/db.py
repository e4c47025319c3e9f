"""
core/db.py -- SQLAlchemy engine construction shared by every store.

All stores point at the same DATABASE_URL. For SQLite the engine is built
with check_same_thread=False (FastAPI runs sync handlers in a thread pool)
and every new connection is switched to WAL journal mode.

Layer rule: core/ is the kernel. This module may not import from api/, auth/,
or articles/.
"""

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def create_db_engine(db_url: str) -> Engine:
    connect_args: dict = {}
    if db_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
    engine = create_engine(db_url, connect_args=connect_args)
    if db_url.startswith("sqlite"):
        event.listen(engine, "connect", _set_wal_mode)
    return engine

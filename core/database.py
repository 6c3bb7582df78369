"""
core/database.py -- Engine construction shared by every SQLAlchemy Core store.

Both auth/store.py and audit/store.py point at the same DATABASE_URL by
default; each store owns its own tables and calls metadata.create_all() on
startup, so there is no migration step for a fresh database.

Layer rule: core/ is the kernel. No imports from api/, auth/, or audit/.
"""

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety.

    WAL lets readers proceed without blocking during writes. Set per-connection
    because SQLite PRAGMAs are not inherited by new connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def make_engine(db_url: str) -> Engine:
    """Create an engine, with thread-sharing and WAL enabled for file-backed SQLite."""
    connect_args: dict = {}
    if db_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
    engine = create_engine(db_url, connect_args=connect_args)
    if db_url.startswith("sqlite") and ":memory:" not in db_url and "mode=memory" not in db_url:
        event.listen(engine, "connect", _set_wal_mode)
    return engine


def check_db_connected(engine: Engine) -> bool:
    """Run a trivial query to verify the database is reachable."""
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return True
    except Exception:
        return False

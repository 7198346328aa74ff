"""
auth/db.py -- Engine construction and DB error translation shared by the stores.

SQLite specifics:
  check_same_thread=False: FastAPI runs sync routes in a threadpool, so a
      pooled connection may be used from a thread other than its creator.
  timeout=30: the sqlite3 busy timeout. A writer that finds the database
      locked waits for the lock instead of failing immediately -- this is what
      lets two concurrent refreshes of one token serialize on the conditional
      UPDATE rather than one of them erroring out.
  WAL journal: readers never block on the writer.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from auth.errors import StoreUnavailable

logger = logging.getLogger("authgate.db")


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool. In-memory databases silently keep "memory".
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def create_db_engine(db_url: str) -> Engine:
    connect_args: dict = {}
    if db_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
        connect_args["timeout"] = 30
    engine = create_engine(db_url, connect_args=connect_args)
    if db_url.startswith("sqlite"):
        event.listen(engine, "connect", _set_wal_mode)
    return engine


@contextmanager
def store_errors(operation: str) -> Iterator[None]:
    """Translate driver failures into StoreUnavailable.

    IntegrityError passes through untouched: it is a data condition
    (duplicate key) the calling store turns into a business error.
    """
    try:
        yield
    except IntegrityError:
        raise
    except SQLAlchemyError as exc:
        logger.error("Store operation %s failed: %s", operation, exc.__class__.__name__)
        raise StoreUnavailable(f"Store operation {operation} failed.") from exc


@contextmanager
def write_connection(engine: Engine, conn: Connection | None = None) -> Iterator[Connection]:
    """Yield conn when the caller already holds a transaction, else open one on engine.

    Stores accept an optional `conn` on writes that must commit together with
    another store's write; the outermost `engine.begin()` owns the commit.
    """
    if conn is not None:
        yield conn
        return
    with engine.begin() as own:
        yield own

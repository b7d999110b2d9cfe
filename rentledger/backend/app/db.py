# backend/app/db.py
from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker, DeclarativeBase, Session

from .config import settings


class Base(DeclarativeBase):
    pass


_is_sqlite = settings.database_url.startswith("sqlite")

engine = create_engine(
    settings.database_url,
    pool_pre_ping=True,
    future=True,
    connect_args={"check_same_thread": False} if _is_sqlite else {},
)

if _is_sqlite:
    # pysqlite issues its own BEGIN lazily, which breaks SAVEPOINT.
    # Hand transaction control to SQLAlchemy instead.
    @event.listens_for(engine, "connect")
    def _sqlite_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _sqlite_begin(conn):
        conn.exec_driver_sql("BEGIN")


SessionLocal = sessionmaker(
    bind=engine,
    autoflush=False,
    autocommit=False,
    expire_on_commit=False,
    future=True,
)


def get_db():
    """Request-scoped session; a failed statement never leaks an aborted transaction into the next request."""
    db = SessionLocal()
    try:
        yield db
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


@contextmanager
def atomic(db: Session, *, commit: bool = True) -> Iterator[Session]:
    """
    One unit of work.

    - commit=True: commit on success (top-level operations).
    - commit=False: flush only; the enclosing operation owns the commit.
    Any exception rolls back the whole transaction and propagates.
    """
    try:
        yield db
        if commit:
            db.commit()
        else:
            db.flush()
    except Exception:
        db.rollback()
        raise

"""Database connection management for bulk order ingestion.

Provides synchronous database access using SQLAlchemy. Supports SQLite
for development with a PostgreSQL migration path for production.

Row processing runs on worker threads, so every unit of work opens its own
session from a session factory instead of sharing one session.

Usage:
    from src.db.connection import SessionLocal, get_db, init_db

    init_db()  # Create tables
    with get_db_context() as db:
        # ... use db session
"""

import os
from collections.abc import Generator
from contextlib import contextmanager
from typing import Any

from sqlalchemy import Engine, create_engine, event
from sqlalchemy.orm import Session, sessionmaker

from src.db.models import Base

# Seconds a SQLite connection waits on a competing writer before failing
SQLITE_BUSY_TIMEOUT_SECONDS = 30


# Configuration
def get_database_url() -> str:
    """Get database URL from environment or use default SQLite.

    Precedence:
    1. DATABASE_URL (canonical)
    2. FLEETOPS_DB_PATH (compat fallback, converted to sqlite URL)
    3. sqlite:///<data dir>/fleetops_bulk.db
    """
    database_url = os.environ.get("DATABASE_URL", "").strip()
    if database_url:
        return database_url

    db_path = os.environ.get("FLEETOPS_DB_PATH", "").strip()
    if db_path:
        if db_path.startswith("sqlite:"):
            return db_path
        return f"sqlite:///{db_path}"

    from src.utils.paths import get_default_db_path
    return f"sqlite:///{get_default_db_path()}"


def _set_sqlite_pragma(dbapi_connection: Any, connection_record: Any) -> None:
    """Configure SQLite pragmas for correctness and concurrency.

    Enables:
    - foreign_keys=ON: Referential integrity (disabled by default in SQLite).
    - journal_mode=WAL: Concurrent readers alongside a single writer, so
      row workers looking up existing orders do not block inserts.
    - synchronous=NORMAL: Commits are durable after WAL fsync.
    """
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.execute("PRAGMA journal_mode=WAL;")
    cursor.execute("PRAGMA synchronous=NORMAL;")
    cursor.close()


def build_engine(database_url: str) -> Engine:
    """Create an engine for the given URL with SQLite tuning applied.

    Args:
        database_url: SQLAlchemy database URL.

    Returns:
        Configured Engine. SQLite engines allow cross-thread use and wait
        on write locks instead of failing immediately.
    """
    is_sqlite = database_url.startswith("sqlite")
    new_engine = create_engine(
        database_url,
        connect_args={
            "check_same_thread": False,
            "timeout": SQLITE_BUSY_TIMEOUT_SECONDS,
        }
        if is_sqlite
        else {},
        echo=os.environ.get("SQL_ECHO", "").lower() == "true",
    )
    if is_sqlite:
        event.listen(new_engine, "connect", _set_sqlite_pragma)
    return new_engine


def build_session_factory(bind: Engine) -> sessionmaker[Session]:
    """Create a session factory bound to an engine."""
    return sessionmaker(autocommit=False, autoflush=False, bind=bind)


# Engine creation
DATABASE_URL = get_database_url()

engine = build_engine(DATABASE_URL)

# Session factory
SessionLocal = build_session_factory(engine)


# Dependency functions for FastAPI


def get_db() -> Generator[Session, None, None]:
    """Yield a database session for synchronous operations.

    Intended for use with FastAPI's Depends() for request-scoped sessions.

    Yields:
        Session: SQLAlchemy session that will be closed after use.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


# Context managers for manual session management


@contextmanager
def get_db_context() -> Generator[Session, None, None]:
    """Context manager for database sessions outside of FastAPI.

    Usage:
        with get_db_context() as db:
            batch = db.query(BulkUploadBatch).first()
    """
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


# Initialization functions


def init_db(bind: Engine | None = None) -> None:
    """Create all database tables synchronously.

    Uses the Base.metadata from models.py to create all defined tables.
    Safe to call multiple times - will not recreate existing tables.

    Args:
        bind: Engine to initialize. Defaults to the module engine.
    """
    target = bind or engine
    if target.url.get_backend_name() == "sqlite" and target.url.database not in (
        None,
        "",
        ":memory:",
    ):
        from src.utils.paths import ensure_parent_dir
        ensure_parent_dir(target.url.database)
    Base.metadata.create_all(bind=target)


# Cleanup functions


def close_db() -> None:
    """Close the sync engine and dispose of connection pool."""
    engine.dispose()

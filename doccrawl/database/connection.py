"""
Database connection management for doccrawl.

Provides SQLAlchemy engine and session factories. The catalog receives a
session factory explicitly; the module-level helpers exist for CLI
commands that work against the configured database.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Generator, Optional

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

from doccrawl.config import get_config, DocCrawlConfig

logger = logging.getLogger(__name__)

# Global engine and session factory (lazy-loaded)
_engine: Optional[Engine] = None
_SessionLocal: Optional[sessionmaker] = None


def get_db_path(config: Optional[DocCrawlConfig] = None) -> Optional[Path]:
    """
    Get the database file path.

    Args:
        config: doccrawl configuration (uses global if not provided)

    Returns:
        Path to the SQLite database file, or None for in-memory and
        non-SQLite databases
    """
    if config is None:
        config = get_config()

    db_url = config.database_url
    if db_url.startswith("sqlite:///") and ":memory:" not in db_url:
        return Path(db_url[10:])
    return None


def create_db_engine(database_url: str) -> Engine:
    """
    Create a SQLAlchemy engine for a database URL.

    In-memory SQLite databases use a single shared connection so that
    every session sees the same data.

    Args:
        database_url: SQLAlchemy database URL

    Returns:
        Configured SQLAlchemy engine
    """
    if not database_url.startswith("sqlite"):
        return create_engine(database_url, pool_pre_ping=True, echo=False)

    if database_url in ("sqlite://", "sqlite:///:memory:"):
        engine = create_engine(
            database_url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
            echo=False,
        )
    else:
        engine = create_engine(
            database_url,
            connect_args={
                "check_same_thread": False,  # Allow cross-thread access
                "timeout": 30,  # Connection timeout in seconds
            },
            pool_pre_ping=True,  # Verify connections before use
            pool_recycle=3600,  # Recycle connections after 1 hour
            echo=False,  # Set to True for SQL debugging
        )

    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_conn, connection_record):
        """Enable SQLite foreign keys and WAL journaling."""
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.close()

    return engine


def create_session_factory(engine: Engine) -> sessionmaker:
    """Create a session factory bound to an engine."""
    return sessionmaker(
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
        bind=engine,
    )


def init_engine(config: Optional[DocCrawlConfig] = None) -> Engine:
    """
    Initialize the global SQLAlchemy engine.

    Args:
        config: doccrawl configuration (uses global if not provided)

    Returns:
        Configured SQLAlchemy engine
    """
    global _engine

    if _engine is not None:
        return _engine

    if config is None:
        config = get_config()

    db_path = get_db_path(config)
    if db_path is not None:
        db_path.parent.mkdir(parents=True, exist_ok=True)

    _engine = create_db_engine(config.database_url)
    logger.debug(f"Database engine initialized: {config.database_url}")
    return _engine


def get_session_maker(config: Optional[DocCrawlConfig] = None) -> sessionmaker:
    """
    Get or create the global session maker.

    Args:
        config: doccrawl configuration (uses global if not provided)

    Returns:
        Configured session maker
    """
    global _SessionLocal

    if _SessionLocal is not None:
        return _SessionLocal

    _SessionLocal = create_session_factory(init_engine(config))
    return _SessionLocal


@contextmanager
def session_scope(factory: sessionmaker) -> Generator[Session, None, None]:
    """
    Transactional scope around a series of operations.

    Commits on success, rolls back on any exception, always closes.
    """
    session = factory()

    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def dispose_engine() -> None:
    """Dispose of the global engine and forget the session maker."""
    global _engine, _SessionLocal

    if _engine is not None:
        _engine.dispose()
    _engine = None
    _SessionLocal = None


def create_tables(engine: Engine) -> None:
    """
    Create all database tables.

    Args:
        engine: Engine to create the tables on
    """
    from doccrawl.database.models import Base

    Base.metadata.create_all(bind=engine)
    logger.info("Database tables created")

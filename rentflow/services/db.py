"""Database engine lifecycle and session management.

The engine (and its connection pool) is process-wide state: created once by
init_engine() at application startup and released by dispose_engine() at
shutdown. Business services never reach for it; they receive a Session.
"""

import logging
from typing import Generator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from rentflow.models import Base

logger = logging.getLogger(__name__)

_engine: Engine | None = None
_session_factory: sessionmaker | None = None


def build_engine(database_url: str, echo: bool = False) -> Engine:
    """Create an engine for the given URL (SQLite uses StaticPool for in-memory dev/test)."""
    if database_url.startswith("sqlite"):
        return create_engine(
            database_url,
            echo=echo,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    return create_engine(database_url, echo=echo, pool_pre_ping=True)


def init_engine(database_url: str, echo: bool = False, create_schema: bool = True) -> Engine:
    """Initialise the process-wide engine and session factory.

    Args:
        database_url: SQLAlchemy database URL
        echo: Log SQL statements
        create_schema: Create missing tables from model metadata

    Returns:
        The initialised engine
    """
    global _engine, _session_factory
    if _engine is not None:
        dispose_engine()

    _engine = build_engine(database_url, echo=echo)
    _session_factory = sessionmaker(autocommit=False, autoflush=False, bind=_engine)
    if create_schema:
        Base.metadata.create_all(bind=_engine)
    logger.info("Database engine initialised")
    return _engine


def dispose_engine() -> None:
    """Release pooled connections and forget the engine."""
    global _engine, _session_factory
    if _engine is not None:
        _engine.dispose()
        logger.info("Database engine disposed")
    _engine = None
    _session_factory = None


def get_session_factory() -> sessionmaker:
    """Return the session factory; the engine must be initialised first."""
    if _session_factory is None:
        raise RuntimeError("Database engine is not initialised; call init_engine() first")
    return _session_factory


def get_db() -> Generator[Session, None, None]:
    """Get database session (FastAPI dependency)."""
    db = get_session_factory()()
    try:
        yield db
    finally:
        db.close()


__all__ = [
    "build_engine",
    "init_engine",
    "dispose_engine",
    "get_session_factory",
    "get_db",
]

"""
Engine and session setup for the job table.

The URL comes from MWS_JOBS_DATABASE_URL, falling back to DATABASE_URL.
PostgreSQL engines are pooled; SQLite engines share one connection, which
keeps in-memory databases alive for local runs.

Usage:
    from mws_jobs.database.session import session_scope

    with session_scope() as session:
        JobDispatcher(SqlAlchemyJobStore(session), region, merchant_id).enqueue(...)
"""

import os
import logging
from contextlib import contextmanager
from typing import Iterator, Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import QueuePool, StaticPool

from mws_jobs.db_base import Base

logger = logging.getLogger(__name__)

DATABASE_URL_ENV_VARS = ("MWS_JOBS_DATABASE_URL", "DATABASE_URL")

_engine: Optional[Engine] = None
_session_factory: Optional[sessionmaker] = None


def _get_database_url() -> str:
    """Read the first configured database URL, normalized for SQLAlchemy."""
    for name in DATABASE_URL_ENV_VARS:
        url = os.getenv(name)
        if url:
            break
    else:
        raise ValueError(
            "No database configured. Set MWS_JOBS_DATABASE_URL or DATABASE_URL."
        )

    # postgres:// is not a dialect name SQLAlchemy accepts
    if url.startswith("postgres://"):
        url = "postgresql://" + url[len("postgres://"):]
    return url


def create_db_engine(database_url: str) -> Engine:
    """Build an engine suited to the URL's backend."""
    if database_url.startswith("sqlite"):
        return create_engine(
            database_url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )

    # One worker process holds few connections; recycle before server timeouts
    return create_engine(
        database_url,
        poolclass=QueuePool,
        pool_size=5,
        max_overflow=10,
        pool_pre_ping=True,
        pool_recycle=1800,
    )


def get_engine() -> Engine:
    global _engine
    if _engine is None:
        _engine = create_db_engine(_get_database_url())
        logger.info("Database engine created", extra={"dialect": _engine.dialect.name})
    return _engine


def get_session_factory() -> sessionmaker:
    global _session_factory
    if _session_factory is None:
        _session_factory = sessionmaker(bind=get_engine(), autoflush=False)
    return _session_factory


def reset_engine() -> None:
    """Dispose the cached engine and forget the session factory."""
    global _engine, _session_factory
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _session_factory = None


def init_db(engine: Optional[Engine] = None) -> None:
    """Create the queue tables if they do not exist."""
    # Registers the job model on Base.metadata
    from mws_jobs.jobs import models  # noqa: F401

    Base.metadata.create_all(bind=engine or get_engine())


@contextmanager
def session_scope() -> Iterator[Session]:
    """
    Open a session, roll back if the block raises, always close.

    Components commit their own work through the job store; the scope
    only guarantees nothing half-done is left on the connection.
    """
    session = get_session_factory()()
    try:
        yield session
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()

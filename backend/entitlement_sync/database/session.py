"""
Database session management with connection pooling.

Usage:
    from entitlement_sync.database.session import session_scope

    with session_scope(database_url) as session:
        ...
"""

import logging
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

logger = logging.getLogger(__name__)


def normalize_database_url(database_url: str) -> str:
    """
    Normalize the database URL.

    Handles the postgres:// URL format by converting to postgresql://.
    """
    if not database_url:
        raise ValueError("DATABASE_URL is not set")

    # SQLAlchemy requires postgresql://
    if database_url.startswith("postgres://"):
        database_url = database_url.replace("postgres://", "postgresql://", 1)

    return database_url


def create_db_engine(database_url: str) -> Engine:
    """
    Create a database engine.

    Server databases get a pool with health checks; SQLite uses defaults.
    """
    url = normalize_database_url(database_url)
    if url.startswith("sqlite"):
        return create_engine(url)

    engine = create_engine(
        url,
        pool_size=5,
        max_overflow=10,
        pool_pre_ping=True,  # Verify connection health
        pool_recycle=1800,   # Recycle connections after 30 minutes
    )
    logger.info("Database engine created with connection pooling")
    return engine


def create_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@contextmanager
def session_scope(database_url: str) -> Iterator[Session]:
    """Yield a session bound to a fresh engine and dispose both afterwards."""
    engine = create_db_engine(database_url)
    session = create_session_factory(engine)()
    try:
        yield session
    finally:
        session.close()
        engine.dispose()

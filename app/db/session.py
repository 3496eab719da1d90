from __future__ import annotations

from collections.abc import Generator
from contextlib import contextmanager

from fastapi import HTTPException
from loguru import logger
from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session, sessionmaker

from app.config.settings import settings
from app.db.models import Base

# Lazy initialization to avoid import-time database connections
_engine: Engine | None = None
_SessionLocal: sessionmaker[Session] | None = None


def _is_sqlite(url: str) -> bool:
    return url.lower().startswith("sqlite")


def get_engine() -> Engine:
    """Get or create the database engine (lazy initialization)."""
    global _engine
    if _engine is None:
        url = settings.database_url
        connect_args = {"check_same_thread": False} if _is_sqlite(url) else {"connect_timeout": 10}
        if _is_sqlite(url):
            logger.warning("Using SQLite database (local development only)")

        _engine = create_engine(
            url,
            connect_args=connect_args,
            echo=False,
            pool_pre_ping=True,
            pool_recycle=3600,
        )
        logger.info("Database engine initialized")
    return _engine


def _get_session_local() -> sessionmaker[Session]:
    global _SessionLocal
    if _SessionLocal is None:
        _SessionLocal = sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=get_engine())
        logger.info("Database session factory initialized")
    return _SessionLocal


def init_db() -> None:
    """Create any missing tables."""
    Base.metadata.create_all(bind=get_engine())
    logger.info("Database tables ensured")


def get_db() -> Generator[Session, None, None]:
    """Get database session for FastAPI dependencies.

    Plain generator for Depends(); routes commit explicitly. For non-FastAPI
    code use get_session(), which commits on success.
    """
    session = _get_session_local()()
    try:
        yield session
    finally:
        session.close()


@contextmanager
def get_session() -> Generator[Session, None, None]:
    """Get database session context manager.

    Commits on success. HTTPException is rolled back and re-raised without
    logging (expected API response); anything else is logged as a database
    error, rolled back and re-raised.
    """
    session = _get_session_local()()
    try:
        yield session
        session.commit()
    except HTTPException:
        session.rollback()
        raise
    except Exception as e:
        logger.error(
            "Database session error, rolling back",
            error=str(e),
            error_type=type(e).__name__,
            dirty=len(session.dirty),
            new=len(session.new),
            deleted=len(session.deleted),
        )
        session.rollback()
        raise
    finally:
        session.close()

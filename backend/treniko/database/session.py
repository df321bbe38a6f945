"""
Engine, session factory and request-scoped sessions for the Treniko store.

Provides:
- get_engine / get_session_factory: process-wide singletons
- get_db_session: FastAPI dependency, one session per request

The store must provide at least READ COMMITTED isolation (the PostgreSQL
default) and enforce unique constraints; the entitlement gate and the
lifecycle sweeper coordinate only through committed rows.

Usage:
    @router.get("/status")
    def status(db: Session = Depends(get_db_session)):
        return SubscriptionService(db, tenant_id).get_status()
"""

import os
import logging
from typing import Generator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session
from fastapi import HTTPException, status

logger = logging.getLogger(__name__)

_engine = None
_SessionLocal = None


def get_database_url() -> str:
    """DATABASE_URL, with the postgres:// scheme rewritten to postgresql://."""
    database_url = os.getenv("DATABASE_URL")
    if not database_url:
        raise ValueError("DATABASE_URL environment variable is not set")

    if database_url.startswith("postgres://"):
        database_url = database_url.replace("postgres://", "postgresql://", 1)

    return database_url


def get_engine() -> Engine:
    """
    Process-wide engine, created on first use.

    Pool settings are tuned for a per-request session on the API and a
    single sequential sweeper process:
    - pool_size: DB_POOL_SIZE (default 5)
    - max_overflow: DB_MAX_OVERFLOW (default 10)
    - pool_pre_ping: verify connections before use
    """
    global _engine
    if _engine is None:
        try:
            database_url = get_database_url()
            _engine = create_engine(
                database_url,
                pool_size=int(os.getenv("DB_POOL_SIZE", "5")),
                max_overflow=int(os.getenv("DB_MAX_OVERFLOW", "10")),
                pool_pre_ping=True,
                pool_recycle=1800,
            )
            logger.info("Database engine created with connection pooling")
        except ValueError as e:
            logger.error("Failed to create database engine", extra={"error": str(e)})
            raise
    return _engine


def get_session_factory() -> sessionmaker:
    """Process-wide sessionmaker; objects stay loaded after commit."""
    global _SessionLocal
    if _SessionLocal is None:
        _SessionLocal = sessionmaker(
            autocommit=False,
            autoflush=False,
            expire_on_commit=False,
            bind=get_engine(),
        )
    return _SessionLocal


def get_db_session() -> Generator[Session, None, None]:
    """
    One session per request, closed when the response is sent.

    Raises:
        HTTPException: 503 when DATABASE_URL is not set
    """
    try:
        SessionLocal = get_session_factory()
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Database not configured"
        )

    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()

"""
Database connection and session management for the alert log mirror.
"""
import logging

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import QueuePool, StaticPool

from rockguard.core.models import Base

logger = logging.getLogger(__name__)


def build_engine(database_url: str) -> Engine:
    """
    Create an engine for the configured URL.

    In-memory SQLite gets a single shared connection so every session sees
    the same database; everything else uses connection pooling.
    """
    if database_url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if ":memory:" in database_url or database_url in ("sqlite://", "sqlite:///"):
            kwargs["poolclass"] = StaticPool
        return create_engine(database_url, **kwargs)

    return create_engine(
        database_url,
        poolclass=QueuePool,
        pool_size=5,
        max_overflow=10,
        pool_pre_ping=True,  # Verify connections before using
        echo=False,  # Set to True for SQL debugging
    )


def create_tables(engine: Engine) -> None:
    """
    Create the alert log table if it doesn't exist.

    Idempotent - safe to call multiple times.
    """
    logger.info("Creating alert log table if it doesn't exist...")
    Base.metadata.create_all(bind=engine)
    logger.info("Alert log table ready")


def get_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)

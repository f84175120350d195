"""Database configuration and connection management."""

import logging
import os
from contextlib import contextmanager
from pathlib import Path

from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

logger = logging.getLogger(__name__)

# Database configuration
STATE_DIR = Path(os.environ.get("COMMAND_CENTER_STATE_DIR", "state"))
DATABASE_URL = os.environ.get(
    "COMMAND_CENTER_DATABASE_URL", f"sqlite:///{STATE_DIR}/command_center.db"
)


def create_db_engine(url: str):
    """Create an engine, allowing SQLite connections to cross threads."""
    connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
    return create_engine(url, connect_args=connect_args)


engine = create_db_engine(DATABASE_URL)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()


def get_db():
    """Database dependency for FastAPI endpoints."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def get_session(session_factory=None):
    """Context manager for database session (for non-FastAPI code).

    Usage:
        with get_session() as session:
            session.query(...)
    """
    session = (session_factory or SessionLocal)()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def init_database(bind=None):
    """Initialize database tables."""
    bind = bind or engine
    if bind.url.drivername.startswith("sqlite") and bind.url.database:
        Path(bind.url.database).parent.mkdir(parents=True, exist_ok=True)

    # Import all models to ensure they're registered with Base
    from . import connection, metric, operation, project  # noqa: F401

    Base.metadata.create_all(bind=bind)
    logger.info(f"Database initialized at {bind.url}")

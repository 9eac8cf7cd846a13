"""
Database connection and session management for CareCadence
"""

from sqlalchemy import create_engine, text
from sqlalchemy.ext.declarative import declarative_base
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool
from contextlib import contextmanager
from typing import Generator
import logging

from config import settings


logger = logging.getLogger(__name__)


def build_engine(database_url: str, echo: bool = False):
    """Create a SQLAlchemy engine suited to the configured backend"""
    if database_url.startswith("sqlite"):
        # SQLite specific configuration
        return create_engine(
            database_url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
            echo=echo
        )

    # PostgreSQL or other databases
    return create_engine(
        database_url,
        echo=echo,
        pool_size=10,
        max_overflow=20,
        pool_pre_ping=True
    )


# Create SQLAlchemy engine
engine = build_engine(settings.DATABASE_URL, settings.DATABASE_ECHO)

# Create session factory
SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine
)

# Base class for ORM models
Base = declarative_base()


@contextmanager
def get_db_context(session_factory=SessionLocal) -> Generator[Session, None, None]:
    """
    Context manager for database session.
    Commits on success, rolls back on error.

    Usage:
        with get_db_context() as db:
            db.get(StoredBlob, "settings")
    """
    db = session_factory()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def init_db(bind=None) -> None:
    """
    Initialize database tables.
    Creates all tables defined in models.
    """
    # Import models to register them with Base
    import models  # noqa: F401

    Base.metadata.create_all(bind=bind or engine)
    logger.info(f"Database initialized at: {settings.DATABASE_URL}")


class DatabaseHealthCheck:
    """Database health check utilities"""

    @staticmethod
    def is_connected(bind=None) -> bool:
        """Check if database is connected"""
        try:
            with (bind or engine).connect() as conn:
                conn.execute(text("SELECT 1"))
            return True
        except Exception:
            return False


# Export commonly used items
__all__ = [
    "engine",
    "SessionLocal",
    "Base",
    "build_engine",
    "get_db_context",
    "init_db",
    "DatabaseHealthCheck"
]

"""
Database initialization and session management
Provides connection pooling and session lifecycle management
"""
from sqlmodel import SQLModel, create_engine, Session
from contextlib import contextmanager
from typing import Callable, ContextManager, Generator
import logging

from mentorship.config import get_config
from mentorship import db_models  # noqa: F401  (registers tables on SQLModel.metadata)

logger = logging.getLogger(__name__)

SessionFactory = Callable[[], ContextManager[Session]]

# Global engine instance
_engine = None


def get_engine():
    """Get or create the global database engine"""
    global _engine
    if _engine is None:
        config = get_config()
        connect_args = {}
        if config.database_url.startswith("sqlite"):
            connect_args = {"check_same_thread": False}  # Needed for SQLite

        _engine = create_engine(
            config.database_url,
            echo=False,  # Set to True for SQL debugging
            pool_pre_ping=True,
            connect_args=connect_args,
        )

        logger.info(f"Database engine created: {_engine.url.render_as_string(hide_password=True)}")

    return _engine


def init_database() -> None:
    """
    Initialize database tables
    Creates all tables if they don't exist
    """
    engine = get_engine()

    # Create all tables
    SQLModel.metadata.create_all(engine)

    logger.info("Database tables initialized")


@contextmanager
def get_session() -> Generator[Session, None, None]:
    """
    Get a database session with automatic commit/rollback

    Usage:
        with get_session() as session:
            pack = session.get(SessionPack, pack_id)
            ...

    Yields:
        Session: SQLModel session
    """
    engine = get_engine()
    session = Session(engine)

    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def close_database() -> None:
    """Close database connections"""
    global _engine
    if _engine:
        _engine.dispose()
        _engine = None
        logger.info("Database connections closed")

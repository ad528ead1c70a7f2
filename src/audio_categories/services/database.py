"""
Engine and session handling for the category store.

One process-wide engine backs every session. Services open a transaction
with session_scope() unless the caller hands them a session, in which case
the caller owns the commit.
"""

from typing import Optional
from contextlib import contextmanager
import logging

from sqlalchemy import create_engine, event, inspect
from sqlalchemy.engine import Engine
from sqlalchemy.orm import close_all_sessions, sessionmaker
from sqlalchemy.pool import StaticPool

from ..utils.config import get_config
from ..models.base import Base

logger = logging.getLogger(__name__)

_engine: Optional[Engine] = None
_SessionFactory: Optional[sessionmaker] = None

REQUIRED_TABLES = ("categories", "audios")


@event.listens_for(Engine, "connect")
def _set_sqlite_pragma(dbapi_connection, connection_record):
    """Enable foreign keys and WAL journaling on every new SQLite connection."""
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA synchronous=NORMAL")
    cursor.close()


def get_engine() -> Engine:
    """
    Get the process-wide engine, creating it from the configured URL.

    In-memory URLs share a single connection so every session sees the
    same tables.
    """
    global _engine

    if _engine is None:
        config = get_config()
        database_url = config.database_url
        logger.info(f"Creating database engine: {database_url}")

        if ":memory:" in database_url or "mode=memory" in database_url:
            _engine = create_engine(
                database_url,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
            )
        else:
            if database_url.startswith("sqlite:///"):
                config.ensure_directories()
            _engine = create_engine(
                database_url,
                connect_args={"check_same_thread": False, "timeout": 30},
            )

    return _engine


def get_session_factory() -> sessionmaker:
    """Get the session factory bound to the process-wide engine."""
    global _SessionFactory

    if _SessionFactory is None:
        _SessionFactory = sessionmaker(bind=get_engine(), expire_on_commit=False)

    return _SessionFactory


@contextmanager
def session_scope():
    """
    Run a block in one transaction: commit on success, roll back on error.

    Example:
        with session_scope() as session:
            session.add(Category(name="Cardiology", level=1))
    """
    session = get_session_factory()()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def verify_database() -> bool:
    """Return True if the engine is reachable and both tables exist."""
    try:
        tables = inspect(get_engine()).get_table_names()
        return all(table in tables for table in REQUIRED_TABLES)
    except Exception as e:
        logger.error(f"Database verification failed: {e}")
        return False


def close_connections() -> None:
    """Close open sessions and dispose the engine; the next call rebuilds both."""
    global _engine, _SessionFactory

    if _SessionFactory is not None:
        close_all_sessions()
        _SessionFactory = None

    if _engine is not None:
        _engine.dispose()
        _engine = None

    logger.info("Database connections closed")


def initialize_app_database() -> None:
    """Create the category and audio tables if they do not exist yet."""
    config = get_config()
    if config.database_exists():
        logger.info(f"Using existing database at: {config.database_path}")
    else:
        logger.info(f"Creating new database at: {config.database_path}")

    # Register models with Base before create_all()
    from ..models import audio, category  # noqa: F401

    Base.metadata.create_all(get_engine())

    if verify_database():
        logger.info("Database initialized and verified successfully")
    else:
        logger.warning("Database verification failed - tables may not exist")

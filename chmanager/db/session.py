"""Database session utilities for the local store.

The engine is created lazily so tests and tools can point the application
at another database before anything connects.
"""
from typing import Optional

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from chmanager.core.config import settings
from chmanager.core.logger import get_logger
from chmanager.db.models import Base

logger = get_logger(__name__)

engine: Optional[Engine] = None
SessionLocal: Optional[sessionmaker] = None


def make_session_factory(bind: Engine) -> sessionmaker:
    """Session factory used by the repositories.

    Objects stay readable after commit so repositories can hand detached
    rows back to the services.
    """
    return sessionmaker(bind=bind, autoflush=False, expire_on_commit=False)


def init_db_engine(database_url: Optional[str] = None) -> Engine:
    """Create the global engine and session factory."""
    global engine, SessionLocal
    url = database_url or settings.database_url
    engine = create_engine(url, **settings.get_engine_kwargs())
    SessionLocal = make_session_factory(engine)
    logger.info(f"Local store engine initialised: {engine.url.render_as_string(hide_password=True)}")
    return engine


def get_engine() -> Engine:
    if engine is None:
        init_db_engine()
    return engine


def get_session_factory() -> sessionmaker:
    if SessionLocal is None:
        init_db_engine()
    return SessionLocal


def init_db() -> None:
    """Create the schema if it does not exist yet."""
    Base.metadata.create_all(bind=get_engine())
    logger.info("Local store schema ready")


def check_db_connection() -> bool:
    """Return True if the local store is reachable."""
    try:
        with get_engine().connect() as conn:
            conn.execute(text("SELECT 1"))
        return True
    except SQLAlchemyError as e:
        logger.warning(f"Database connection check failed: {e}")
        return False


def close_db() -> None:
    global engine, SessionLocal
    if engine is not None:
        engine.dispose()
    engine = None
    SessionLocal = None

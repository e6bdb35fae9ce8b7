"""
Database sessions for the API.

The engine is built on first use from Settings.database_url and disposed on
shutdown. Routers get one session per request from get_db.
"""

import logging
from typing import Generator, Optional

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session

from sighting_api.config import get_settings

logger = logging.getLogger(__name__)

_engine: Optional[Engine] = None
_session_factory: Optional[sessionmaker] = None


def _safe_url(url: str) -> str:
    # never log credentials
    return url.rsplit("@", 1)[-1]


def get_engine() -> Engine:
    """Return the process-wide engine, creating it on first call."""
    global _engine
    if _engine is not None:
        return _engine

    url = get_settings().database_url
    options = {"pool_pre_ping": True}
    if not url.startswith("sqlite"):
        options.update(pool_size=5, max_overflow=10)

    _engine = create_engine(url, **options)
    logger.info(f"Database engine created for {_safe_url(url)}")
    return _engine


def get_session_factory() -> sessionmaker:
    global _session_factory
    if _session_factory is None:
        _session_factory = sessionmaker(bind=get_engine(), autoflush=False)
    return _session_factory


def get_db() -> Generator[Session, None, None]:
    """
    FastAPI dependency yielding a session for the duration of a request.

    Handlers commit explicitly; whatever is left uncommitted is discarded
    when the session closes.
    """
    session = get_session_factory()()
    try:
        yield session
    finally:
        session.close()


def ping_database(db: Session) -> bool:
    """Run a trivial query to check the database answers."""
    return db.execute(text("SELECT 1")).scalar() == 1


def close_engine() -> None:
    """Dispose of pooled connections. Called from the app lifespan on shutdown."""
    global _engine, _session_factory
    if _engine is None:
        return
    try:
        _engine.dispose()
        logger.info("Database engine disposed")
    finally:
        _engine = None
        _session_factory = None

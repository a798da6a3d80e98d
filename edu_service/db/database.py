"""
SQLAlchemy engine and session factory.

The engine is created lazily on first use and kept at module level so every
request and worker thread shares the same pool.
"""
import logging
from contextlib import contextmanager

from sqlalchemy import Engine, create_engine, text
from sqlalchemy.orm import DeclarativeBase, sessionmaker

from edu_service.config import get_settings

logger = logging.getLogger(__name__)

_engine: Engine | None = None
_session_factory: sessionmaker | None = None


class Base(DeclarativeBase):
    pass


def get_engine() -> Engine:
    global _engine, _session_factory
    if _engine is None:
        settings = get_settings()
        _engine = create_engine(
            settings.database_url,
            pool_pre_ping=True,       # detect stale connections
            pool_recycle=3600,        # recycle connections after 1 hour
            echo=False,
        )
        _session_factory = sessionmaker(bind=_engine, autocommit=False, autoflush=False)
    return _engine


def init_db() -> None:
    """Create missing tables."""
    from edu_service.db import models  # noqa: F401 — register mappers
    Base.metadata.create_all(bind=get_engine())


@contextmanager
def get_db():
    """Provide a transactional DB session. Rolls back on exception."""
    get_engine()
    session = _session_factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def check_db_connection() -> bool:
    """Returns True if the DB is reachable."""
    try:
        with get_engine().connect() as conn:
            conn.execute(text("SELECT 1"))
        return True
    except Exception as exc:
        logger.warning("DB connectivity check failed: %s", exc)
        return False

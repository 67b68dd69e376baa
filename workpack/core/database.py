"""
Shared job-store engine.

The repository, the startup sweep and the alembic connection check all draw
from one pool. Pool sizing comes from settings so a small managed Postgres
plan can be respected.
"""

import logging
from typing import Optional

from sqlalchemy import Engine, create_engine, text
from sqlalchemy.orm import sessionmaker

from workpack.core.config import settings

logger = logging.getLogger(__name__)

_shared_engine: Optional[Engine] = None
_shared_session_factory: Optional[sessionmaker] = None


def get_shared_engine() -> Engine:
    """
    Get the process-wide engine, creating it on first use.
    
    pool_pre_ping drops connections the server closed while idle.
    """
    global _shared_engine
    
    if _shared_engine is None:
        try:
            _shared_engine = create_engine(
                settings.postgres_url_sync,
                echo=False,
                pool_pre_ping=True,
                pool_size=settings.db_pool_size,
                max_overflow=settings.db_max_overflow,
                pool_timeout=settings.db_pool_timeout,
                pool_recycle=settings.db_pool_recycle,
            )
            logger.info(
                f"Job store engine created: pool_size={settings.db_pool_size}, "
                f"max_overflow={settings.db_max_overflow}, pool_timeout={settings.db_pool_timeout}s"
            )
        except Exception as e:
            logger.error(f"Failed to create job store engine: {e}")
            raise
    
    return _shared_engine


def get_shared_session_factory() -> sessionmaker:
    """Session factory bound to the shared engine; objects stay usable after commit."""
    global _shared_session_factory
    
    if _shared_session_factory is None:
        _shared_session_factory = sessionmaker(bind=get_shared_engine(), expire_on_commit=False)
    
    return _shared_session_factory


def test_connection() -> bool:
    """True if the job store answers ``SELECT 1``."""
    try:
        with get_shared_session_factory()() as session:
            session.execute(text("SELECT 1"))
        return True
    except Exception as e:
        logger.error(f"Job store connection check failed: {e}")
        return False


def close_shared_engine() -> None:
    """Dispose of the pool; called on application shutdown."""
    global _shared_engine, _shared_session_factory
    
    if _shared_engine is not None:
        _shared_engine.dispose()
        _shared_engine = None
        _shared_session_factory = None
        logger.info("Job store engine closed")

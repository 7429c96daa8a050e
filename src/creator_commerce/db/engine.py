"""
Database engine and session management
PostgreSQL in staging/production, SQLite for local development and tests
"""
import logging
import threading
from typing import Generator

import psycopg2
from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import Pool

from ..config import config
from .base import Base

logger = logging.getLogger(__name__)


def _engine_options() -> dict:
    """Pool and driver options for the configured database"""
    if not config.is_postgres:
        return {"connect_args": {"check_same_thread": False}}

    return {
        "pool_pre_ping": True,
        "pool_size": config.DB_POOL_SIZE,
        "max_overflow": config.DB_MAX_OVERFLOW,
        "pool_recycle": config.DB_POOL_RECYCLE,
        "pool_timeout": config.DB_POOL_TIMEOUT,
        "connect_args": {
            "connect_timeout": 10,
            "keepalives": 1,
            "keepalives_idle": 60,
            "keepalives_interval": 10,
            "keepalives_count": 3,
            "application_name": "creator_commerce",
            # statement timeout is in milliseconds
            "options": (
                f"-c statement_timeout={config.DB_STATEMENT_TIMEOUT} "
                f"-c idle_in_transaction_session_timeout=20000"
            ),
        },
    }


engine = create_engine(config.DATABASE_URL, echo=False, **_engine_options())

if config.is_postgres:
    logger.info(
        f"PostgreSQL engine configured: pool_size={config.DB_POOL_SIZE}, "
        f"max_overflow={config.DB_MAX_OVERFLOW}, pool_recycle={config.DB_POOL_RECYCLE}s, "
        f"statement_timeout={config.DB_STATEMENT_TIMEOUT}ms"
    )
else:
    logger.info(f"SQLite engine configured ({config.ENV})")

_connection_invalidation_count = {"total": 0, "driver_errors": 0}
_invalidation_lock = threading.Lock()


@event.listens_for(Pool, "invalidate")
def receive_invalidate(dbapi_conn, connection_record, exception):
    """Track and log invalidated pool connections"""
    error_msg = str(exception) if exception else "Unknown"
    is_driver_error = isinstance(exception, (psycopg2.OperationalError, psycopg2.InterfaceError))

    with _invalidation_lock:
        _connection_invalidation_count["total"] += 1
        if is_driver_error:
            _connection_invalidation_count["driver_errors"] += 1

    logger.warning(f"[POOL] Connection invalidated: {error_msg}")


def get_invalidation_stats() -> dict:
    with _invalidation_lock:
        return dict(_connection_invalidation_count)


SessionLocal = sessionmaker(autoflush=False, bind=engine)


def get_db() -> Generator[Session, None, None]:
    """
    Get database session
    Use as FastAPI dependency: db: Session = Depends(get_db)
    """
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception as e:
        db.rollback()
        logger.debug(f"Database session rolled back: {e}")
        raise
    finally:
        db.close()


def init_db(bind=None) -> None:
    """Create all tables (models must be imported so they register on Base)"""
    from . import models  # noqa: F401

    Base.metadata.create_all(bind=bind or engine)
    logger.info("Database tables ensured")

import logging
from typing import Any, Generator

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from eventflow.core.config import settings

logger = logging.getLogger(__name__)


def engine_options(url: str) -> dict[str, Any]:
    """
    Keyword arguments for create_engine() that bound every wait on the database:
    connect, pool checkout, statement execution and row-lock acquisition.
    """
    if url.startswith("sqlite"):
        # SQLite has no lock_timeout; the busy timeout bounds waits on the write lock.
        return {
            "connect_args": {
                "check_same_thread": False,
                "timeout": settings.DB_CONNECT_TIMEOUT_SECONDS,
            },
        }

    return {
        "pool_pre_ping": True,  # checks stale connections
        "pool_timeout": settings.DB_POOL_TIMEOUT_SECONDS,
        "connect_args": {
            "connect_timeout": settings.DB_CONNECT_TIMEOUT_SECONDS,
            "options": (
                f"-c statement_timeout={settings.DB_STATEMENT_TIMEOUT_MS} "
                f"-c lock_timeout={settings.DB_LOCK_TIMEOUT_MS}"
            ),
        },
    }


def build_engine(url: str) -> Engine:
    return create_engine(url, **engine_options(url))


engine = build_engine(settings.database_url)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def check_db_connection(db: Session) -> bool:
    try:
        db.execute(text("SELECT 1"))
    except SQLAlchemyError:
        logger.exception("Database health check failed")
        return False
    return True


def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()

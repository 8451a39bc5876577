"""Database connection and session management"""
import logging
from contextlib import contextmanager
from typing import Generator, Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import make_url
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.exc import SQLAlchemyError

from listening_analytics.models.db import Base
from listening_analytics.db_config import DatabaseManager

logger = logging.getLogger(__name__)

# Seconds a SQLite writer waits for another writer's transaction to finish
SQLITE_LOCK_TIMEOUT = 30

class Database:
    """Engine and session factory for the CLI process"""

    def __init__(self):
        self._engine = None
        self._SessionLocal = None

    def _get_connection_string(self) -> str:
        try:
            return DatabaseManager.initialize_from_env()
        except ValueError as e:
            logger.error(f"Failed to initialize database connection: {e}")
            raise

    @staticmethod
    def _connect_args(url: str) -> dict:
        """Like and stats writers queue on SQLite's file lock instead of failing fast"""
        if make_url(url).get_backend_name() == "sqlite":
            return {"timeout": SQLITE_LOCK_TIMEOUT}
        return {}

    def init(self, url: Optional[str] = None) -> None:
        """
        Connect and create the catalog, event and stats tables.
        Falls back to the configured connection string when no URL is given.
        """
        url = url or self._get_connection_string()
        try:
            self._engine = create_engine(url, connect_args=self._connect_args(url))
            Base.metadata.create_all(self._engine)
            self._SessionLocal = sessionmaker(bind=self._engine)
            logger.info(f"Database initialized successfully ({self._engine.dialect.name})")

        except SQLAlchemyError as e:
            logger.error(f"Database initialization failed: {e}")
            raise

    @contextmanager
    def session(self) -> Generator[Session, None, None]:
        """Session for one CLI command; commits on success, rolls back on error"""
        if not self._SessionLocal:
            raise RuntimeError("Database not initialized. Call init() first.")

        session = self._SessionLocal()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def dispose(self) -> None:
        """Release pooled connections; init() must run again before the next session"""
        if self._engine:
            self._engine.dispose()
            self._engine = None
            self._SessionLocal = None

# Database instance used by the CLI entry point
db = Database()

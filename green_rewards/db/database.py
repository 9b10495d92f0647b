import logging
from contextlib import contextmanager
from typing import Generator, Optional

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from green_rewards.db.models import Base

logger = logging.getLogger(__name__)


class Database:
    """Database connection and session manager."""

    def __init__(self, database_url: Optional[str] = None):
        self.database_url = database_url
        self._engine: Optional[Engine] = None
        self._SessionLocal: Optional[sessionmaker] = None

    @property
    def engine(self) -> Engine:
        if not self._engine:
            raise RuntimeError("Database not initialized. Call init() first.")
        return self._engine

    def init(self, database_url: Optional[str] = None) -> None:
        """Initialize database connection and create tables."""
        if self._engine:
            logger.info("Database already initialized.")
            return

        self.database_url = database_url or self.database_url
        if not self.database_url:
            raise RuntimeError("DATABASE_URL is not configured")

        try:
            connect_args = {}
            if self.database_url.startswith("sqlite"):
                # Sessions are used from FastAPI's threadpool
                connect_args["check_same_thread"] = False
                # Concurrent writers wait for the file lock instead of failing fast
                connect_args["timeout"] = 30
            self._engine = create_engine(self.database_url, connect_args=connect_args)

            if self.database_url.startswith("sqlite"):
                event.listen(self._engine, "connect", _enable_sqlite_foreign_keys)

            # checkfirst=True handles existing tables
            Base.metadata.create_all(self._engine, checkfirst=True)

            self._SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=self._engine)
            logger.info("Database initialized successfully and tables ensured.")

        except SQLAlchemyError as e:
            logger.error(f"Database initialization failed: {e}")
            raise

    @contextmanager
    def session(self) -> Generator[Session, None, None]:
        """One unit of work: commits on success, rolls back and re-raises on error."""
        if not self._SessionLocal:
            logger.error("Database not initialized. Call init() first.")
            raise RuntimeError("Database not initialized. Call init() first.")

        session = self._SessionLocal()
        try:
            yield session
            session.commit()
            logger.debug("DB Session committed.")
        except Exception as e:
            logger.debug(f"DB Session error, rolling back: {e}")
            session.rollback()
            raise
        finally:
            session.close()
            logger.debug("DB Session closed.")

    def dispose(self) -> None:
        if self._engine:
            self._engine.dispose()
            self._engine = None
            self._SessionLocal = None
            logger.info("Database engine disposed.")


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()

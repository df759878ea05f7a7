"""
Database Connection Manager for MealSync
Handles engine creation and session management for the source-of-truth store
"""

from pathlib import Path
from typing import Generator
from contextlib import contextmanager

from sqlalchemy import create_engine, event
from sqlalchemy.engine import make_url
from sqlalchemy.orm import sessionmaker, Session as SQLSession
from sqlalchemy.pool import StaticPool
from loguru import logger

from mealsync.database.models import Base


class DatabaseManager:
    """Database connection and session manager."""

    def __init__(self, url: str = "sqlite:///./data/mealsync.db", echo: bool = False):
        self._url = url
        self._echo = echo
        self._engine = None
        self._session_factory = None

        self._init_database()

    def _init_database(self) -> None:
        """Initialize database connection and create tables."""
        url = make_url(self._url)
        is_sqlite = url.get_backend_name() == "sqlite"
        engine_kwargs = {"echo": self._echo}

        if is_sqlite:
            database = url.database
            if database and database != ":memory:":
                Path(database).parent.mkdir(parents=True, exist_ok=True)
            engine_kwargs["connect_args"] = {"check_same_thread": False}
            engine_kwargs["poolclass"] = StaticPool

        self._engine = create_engine(self._url, **engine_kwargs)

        if is_sqlite:
            @event.listens_for(self._engine, "connect")
            def set_sqlite_pragma(dbapi_connection, connection_record):
                cursor = dbapi_connection.cursor()
                cursor.execute("PRAGMA foreign_keys=ON")
                cursor.close()

        self._session_factory = sessionmaker(
            bind=self._engine,
            autocommit=False,
            autoflush=False,
            expire_on_commit=False,
        )

        Base.metadata.create_all(self._engine)
        logger.info(f"Database initialized at {url.render_as_string(hide_password=True)}")

    @property
    def engine(self):
        """Get SQLAlchemy engine."""
        return self._engine

    def get_session(self) -> SQLSession:
        """Get a new database session."""
        return self._session_factory()

    @contextmanager
    def session_scope(self) -> Generator[SQLSession, None, None]:
        """Context manager for database sessions with automatic commit/rollback."""
        session = self.get_session()
        try:
            yield session
            session.commit()
        except Exception as e:
            session.rollback()
            logger.error(f"Database session error: {e}")
            raise
        finally:
            session.close()

    def drop_all(self) -> None:
        """Drop all tables (use with caution)."""
        Base.metadata.drop_all(self._engine)
        logger.warning("All tables dropped")

    def reset(self) -> None:
        """Reset database (drop and recreate all tables)."""
        self.drop_all()
        Base.metadata.create_all(self._engine)
        logger.info("Database reset completed")

    def dispose(self) -> None:
        """Release pooled connections."""
        if self._engine is not None:
            self._engine.dispose()

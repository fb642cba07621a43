"""
SQLite database connection and session management
"""

import logging
from collections.abc import Generator
from contextlib import contextmanager
from pathlib import Path

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from regression_toolkit.core.config import get_settings
from regression_toolkit.core.exceptions import PersistenceFailureError
from regression_toolkit.storage.models import Base

logger = logging.getLogger(__name__)


# Enable foreign key constraints for SQLite
@event.listens_for(Engine, "connect")
def set_sqlite_pragma(dbapi_conn, connection_record):
    """Enable foreign key constraints on SQLite connections"""
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


class Database:
    """
    Database connection manager

    Handles SQLite connection, session management, and table creation.
    """

    EXPECTED_TABLES = {
        "test_suites",
        "test_runs",
        "test_results",
        "visual_regressions",
        "ignore_regions",
        "diff_thresholds",
    }

    def __init__(self, database_path: Path | None = None):
        """
        Initialize database connection

        Args:
            database_path: Path to SQLite database file. If None, uses the configured path
        """
        if database_path is None:
            database_path = get_settings().database_path

        self.database_path = Path(database_path)

        # Ensure data directory exists
        self.database_path.parent.mkdir(parents=True, exist_ok=True)

        # Sessions are opened from worker threads as well as the event loop
        self.engine = create_engine(
            f"sqlite:///{self.database_path}",
            echo=False,
            pool_pre_ping=True,
            connect_args={"check_same_thread": False, "timeout": 30},
        )

        # Create session factory
        self.SessionLocal = sessionmaker(
            autocommit=False,
            autoflush=False,
            expire_on_commit=False,
            bind=self.engine,
        )

        # Create tables
        self.create_tables()

        logger.info(f"Database initialized: {self.database_path}")

    def create_tables(self) -> None:
        """Create all database tables"""
        Base.metadata.create_all(bind=self.engine)
        logger.debug("Database tables created/verified")

    def verify_schema(self) -> bool:
        """
        Verify database schema is valid

        Returns:
            True if schema is valid, False otherwise
        """
        try:
            with self.session_scope() as session:
                result = session.execute(text("SELECT 1")).fetchone()
                if result[0] != 1:
                    return False

                tables = session.execute(
                    text("SELECT name FROM sqlite_master WHERE type='table'")
                ).fetchall()
                found_tables = {row[0] for row in tables}

                return self.EXPECTED_TABLES.issubset(found_tables)

        except PersistenceFailureError as e:
            logger.error(f"Schema verification failed: {e}")
            return False

    def get_session(self) -> Session:
        """
        Get a new database session

        Returns:
            SQLAlchemy Session object
        """
        return self.SessionLocal()

    @contextmanager
    def session_scope(self) -> Generator[Session, None, None]:
        """
        Provide a transactional scope for database operations

        Commits on success and rolls back on any error. Database driver errors
        are re-raised as PersistenceFailureError; toolkit errors raised inside
        the block propagate unchanged.

        Usage:
            with db.session_scope() as session:
                # Use session
                pass
        """
        session = self.SessionLocal()
        try:
            yield session
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            raise PersistenceFailureError(f"Database operation failed: {e}") from e
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def dispose(self) -> None:
        """Close all pooled connections"""
        self.engine.dispose()


# Global database instance (singleton)
_database: Database | None = None


def get_database(database_path: Path | None = None) -> Database:
    """
    Get the global database instance (singleton pattern)

    Args:
        database_path: Path to database file (only used on first call)

    Returns:
        Database instance
    """
    global _database
    if _database is None:
        _database = Database(database_path)
    return _database


def reset_database() -> None:
    """Dispose and forget the global database instance"""
    global _database
    if _database is not None:
        _database.dispose()
    _database = None

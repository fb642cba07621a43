"""
Startup validators

Validates system components during startup:
1. Environment (data and diff directories exist and are writable)
2. Database (schema, connectivity)
"""

import logging
import os
from pathlib import Path

from sqlalchemy.exc import SQLAlchemyError

from regression_toolkit.core.config import get_settings
from regression_toolkit.core.exceptions import PersistenceFailureError
from regression_toolkit.startup.exceptions import DatabaseInitError, EnvironmentValidationError
from regression_toolkit.storage.database import get_database

logger = logging.getLogger(__name__)


def _ensure_writable(directory: Path, label: str) -> None:
    if not directory.exists():
        try:
            directory.mkdir(parents=True, exist_ok=True)
            logger.info(f"Created {label} directory: {directory}")
        except OSError as e:
            raise EnvironmentValidationError(
                f"Cannot create {label} directory {directory}: {e}",
                recovery_hint="Check filesystem permissions or set REGRESSION_TOOLKIT_DATA",
            ) from e

    if not os.access(directory, os.W_OK):
        raise EnvironmentValidationError(
            f"{label.capitalize()} directory not writable: {directory}",
            recovery_hint=f"Fix permissions: chmod u+w {directory}",
        )


async def validate_environment() -> None:
    """
    Phase 1: Validate data and diff directories

    Raises:
        EnvironmentValidationError: If a directory cannot be created or written
    """
    settings = get_settings()
    _ensure_writable(settings.database_path.parent, "data")
    _ensure_writable(settings.diffs_dir, "diff image")
    logger.info(f"Data directory: {settings.database_path.parent}")


async def initialize_database() -> None:
    """
    Phase 2: Initialize database and verify schema

    Raises:
        DatabaseInitError: If the database cannot be opened or the schema is incomplete
    """
    try:
        db = get_database()
        db.create_tables()
        valid = db.verify_schema()
    except (PersistenceFailureError, SQLAlchemyError, OSError) as e:
        raise DatabaseInitError(f"Database initialization failed: {e}") from e

    if not valid:
        raise DatabaseInitError(
            "Database schema is incomplete",
            recovery_hint=f"Delete {db.database_path} and restart",
        )

    logger.info(f"Database operational: {db.database_path}")

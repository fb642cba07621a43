"""
Core interfaces and protocols

Defines the narrow interfaces through which the comparison engine consumes
its collaborators (database, run tracking, screenshot storage, per-suite
configuration), so each can be swapped or mocked independently.
"""

from contextlib import contextmanager
from pathlib import Path
from typing import Any, ContextManager, Protocol

from sqlalchemy.orm import Session


class IDatabase(Protocol):
    """Protocol for database implementations"""

    @property
    def database_path(self) -> Path:
        """Database file path"""
        ...

    def create_tables(self) -> None:
        """Create all database tables"""
        ...

    @contextmanager
    def session_scope(self) -> ContextManager[Session]:
        """Provide a transactional scope for database operations"""
        ...


class IRunStore(Protocol):
    """Protocol for the run-tracking collaborator"""

    def get_run(self, run_id: str) -> dict[str, Any] | None:
        """Get run metadata ({id, suite_id, status, ...}) or None"""
        ...

    def get_results(self, run_id: str) -> list[dict[str, Any]]:
        """Get per-test results ({test_name, viewport, screenshots, ...}) for a run"""
        ...

    def has_completed_results(self, run_id: str) -> bool:
        """Whether the run has at least one completed test result"""
        ...


class IScreenshotFetcher(Protocol):
    """Protocol for the screenshot storage collaborator"""

    async def fetch(self, reference: str) -> bytes:
        """Fetch raw screenshot bytes by reference (URL or path)"""
        ...


class IComparisonConfig(Protocol):
    """Protocol for per-suite comparison configuration"""

    def get_threshold(self, suite_id: str, viewport: str | None = None) -> float:
        """Significance threshold (0.0 - 1.0) for a suite / viewport"""
        ...

    def get_ignore_regions(
        self,
        suite_id: str,
        test_name: str | None = None,
        viewport: str | None = None,
    ) -> list[Any]:
        """Ignore regions applying to a suite / test / viewport"""
        ...

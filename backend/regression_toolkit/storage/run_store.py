"""
Run tracking store

SQLAlchemy-backed record of suites, runs and per-test results with their
screenshot references. The comparison engine only reads from it through
IRunStore; the write methods exist for the harness that records runs.
"""

import logging
from datetime import datetime
from typing import Any

from sqlalchemy import func, select

from regression_toolkit.core.exceptions import ResourceNotFoundError, RunNotFoundError
from regression_toolkit.core.interfaces import IDatabase
from regression_toolkit.storage.models import TestResultModel, TestRunModel, TestSuiteModel

logger = logging.getLogger(__name__)

COMPLETED_RESULT_STATUSES = ("passed", "failed")


class SqlRunStore:
    """Run tracking on top of the toolkit database"""

    def __init__(self, database: IDatabase):
        self.database = database

    # Suites

    def create_suite(self, name: str, description: str | None = None) -> dict[str, Any]:
        """Create a test suite (with no baseline)"""
        with self.database.session_scope() as session:
            suite = TestSuiteModel(name=name, description=description)
            session.add(suite)
            session.flush()
            logger.info(f"Created suite: {name} (id={suite.id})")
            return suite.to_dict()

    def get_suite(self, suite_id: str) -> dict[str, Any] | None:
        with self.database.session_scope() as session:
            suite = session.get(TestSuiteModel, suite_id)
            return suite.to_dict() if suite else None

    def list_suites(self) -> list[dict[str, Any]]:
        with self.database.session_scope() as session:
            suites = session.execute(
                select(TestSuiteModel).order_by(TestSuiteModel.created_at)
            ).scalars()
            return [suite.to_dict() for suite in suites]

    # Runs

    def create_run(
        self,
        suite_id: str,
        name: str | None = None,
        status: str = "completed",
        created_at: datetime | None = None,
    ) -> dict[str, Any]:
        """
        Record a test run for a suite

        Raises:
            ResourceNotFoundError: If the suite does not exist
        """
        with self.database.session_scope() as session:
            if session.get(TestSuiteModel, suite_id) is None:
                raise ResourceNotFoundError("Test suite", suite_id)

            run = TestRunModel(suite_id=suite_id, name=name, status=status)
            if created_at is not None:
                run.created_at = created_at
            session.add(run)
            session.flush()
            logger.debug(f"Created run {run.id} for suite {suite_id}")
            return run.to_dict()

    def get_run(self, run_id: str) -> dict[str, Any] | None:
        with self.database.session_scope() as session:
            run = session.get(TestRunModel, run_id)
            return run.to_dict() if run else None

    def list_runs(self, suite_id: str) -> list[dict[str, Any]]:
        with self.database.session_scope() as session:
            runs = session.execute(
                select(TestRunModel)
                .where(TestRunModel.suite_id == suite_id)
                .order_by(TestRunModel.created_at)
            ).scalars()
            return [run.to_dict() for run in runs]

    # Results

    def add_result(
        self,
        run_id: str,
        test_name: str,
        viewport: str,
        screenshots: list[Any],
        status: str = "passed",
    ) -> dict[str, Any]:
        """
        Record one test result with its screenshot references

        Raises:
            RunNotFoundError: If the run does not exist
        """
        with self.database.session_scope() as session:
            if session.get(TestRunModel, run_id) is None:
                raise RunNotFoundError(run_id)

            result = TestResultModel(
                test_run_id=run_id,
                test_name=test_name,
                viewport=viewport,
                status=status,
                screenshots=list(screenshots),
            )
            session.add(result)
            session.flush()
            return result.to_dict()

    def get_results(self, run_id: str) -> list[dict[str, Any]]:
        with self.database.session_scope() as session:
            results = session.execute(
                select(TestResultModel)
                .where(TestResultModel.test_run_id == run_id)
                .order_by(TestResultModel.id)
            ).scalars()
            return [result.to_dict() for result in results]

    def has_completed_results(self, run_id: str) -> bool:
        with self.database.session_scope() as session:
            count = session.execute(
                select(func.count(TestResultModel.id)).where(
                    TestResultModel.test_run_id == run_id,
                    TestResultModel.status.in_(COMPLETED_RESULT_STATUSES),
                )
            ).scalar_one()
            return count > 0

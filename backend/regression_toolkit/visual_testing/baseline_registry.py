"""
Baseline Registry

Maps a test suite to the run designated as ground truth. Baselines change
only through explicit human actions; a run is never promoted automatically.
"""

import logging
from datetime import UTC, datetime

from sqlalchemy import func, select

from regression_toolkit.core.exceptions import (
    BaselineMissingError,
    ResourceNotFoundError,
    RunNotFoundError,
    ValidationError,
)
from regression_toolkit.core.interfaces import IDatabase
from regression_toolkit.storage.models import TestResultModel, TestRunModel, TestSuiteModel
from regression_toolkit.storage.run_store import COMPLETED_RESULT_STATUSES
from regression_toolkit.visual_testing.models import Baseline

logger = logging.getLogger(__name__)


class BaselineRegistry:
    """
    Manages which run is the baseline for each suite.

    Features:
    - Read the current baseline (absence is a normal state)
    - Set a baseline with provenance notes, replacing any previous one
    - Clear a baseline
    """

    def __init__(self, database: IDatabase):
        """
        Initialize baseline registry.

        Args:
            database: Toolkit database
        """
        self.database = database

    def get(self, suite_id: str) -> Baseline:
        """
        Get the baseline for a suite.

        Args:
            suite_id: Suite ID

        Returns:
            Baseline (baseline_run_id is None when no baseline is set)

        Raises:
            ResourceNotFoundError: If the suite does not exist
        """
        with self.database.session_scope() as session:
            suite = session.get(TestSuiteModel, suite_id)
            if suite is None:
                raise ResourceNotFoundError("Test suite", suite_id)

            return Baseline(
                suite_id=suite.id,
                baseline_run_id=suite.baseline_run_id,
                set_at=suite.baseline_set_at,
                notes=suite.baseline_notes,
            )

    def set(self, suite_id: str, run_id: str, notes: str | None = None) -> Baseline:
        """
        Designate a run as the baseline for a suite.

        The three baseline columns are written in one transaction, so readers
        never see a partially updated baseline.

        Args:
            suite_id: Suite ID
            run_id: Run to use as ground truth
            notes: Optional provenance notes

        Returns:
            The new baseline

        Raises:
            ResourceNotFoundError: If the suite does not exist
            RunNotFoundError: If the run does not exist
            ValidationError: If the run belongs to another suite or has no
                completed results
        """
        with self.database.session_scope() as session:
            suite = session.get(TestSuiteModel, suite_id)
            if suite is None:
                raise ResourceNotFoundError("Test suite", suite_id)

            run = session.get(TestRunModel, run_id)
            if run is None:
                raise RunNotFoundError(run_id)

            if run.suite_id != suite_id:
                raise ValidationError(
                    f"Run {run_id} belongs to suite {run.suite_id}, not {suite_id}"
                )

            completed = session.execute(
                select(func.count(TestResultModel.id)).where(
                    TestResultModel.test_run_id == run_id,
                    TestResultModel.status.in_(COMPLETED_RESULT_STATUSES),
                )
            ).scalar_one()
            if completed == 0:
                raise ValidationError(
                    f"Run {run_id} has no completed results",
                    recovery_hint="Choose a run that finished at least one test",
                )

            suite.baseline_run_id = run_id
            suite.baseline_set_at = datetime.now(UTC)
            suite.baseline_notes = notes or None
            session.flush()

            logger.info(f"Baseline for suite {suite_id} set to run {run_id}")

            return Baseline(
                suite_id=suite_id,
                baseline_run_id=run_id,
                set_at=suite.baseline_set_at,
                notes=suite.baseline_notes,
            )

    def clear(self, suite_id: str) -> None:
        """
        Remove the baseline for a suite.

        Raises:
            ResourceNotFoundError: If the suite does not exist
        """
        with self.database.session_scope() as session:
            suite = session.get(TestSuiteModel, suite_id)
            if suite is None:
                raise ResourceNotFoundError("Test suite", suite_id)

            suite.baseline_run_id = None
            suite.baseline_set_at = None
            suite.baseline_notes = None

        logger.info(f"Cleared baseline for suite {suite_id}")

    def has_baseline(self, suite_id: str) -> bool:
        """Quick check whether a suite has a baseline"""
        return self.get(suite_id).is_set

    def require_run_id(self, suite_id: str) -> str:
        """
        Get the baseline run id, raising if none is set.

        Raises:
            BaselineMissingError: If the suite has no baseline
        """
        baseline = self.get(suite_id)
        if baseline.baseline_run_id is None:
            raise BaselineMissingError(suite_id)
        return baseline.baseline_run_id

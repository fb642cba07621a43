"""
Regression Ledger

Durable record of every comparison outcome and its review status. Rows are
created by the orchestrator, changed only by review actions and never
deleted here.
"""

import logging
from datetime import UTC, datetime, timedelta
from typing import Any

from sqlalchemy import Integer, cast, func, select, update
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError

from regression_toolkit.core.exceptions import (
    InvalidStatusError,
    PersistenceFailureError,
    RegressionNotFoundError,
    ValidationError,
)
from regression_toolkit.core.interfaces import IDatabase
from regression_toolkit.storage.models import (
    TestRunModel,
    VisualRegressionModel,
    new_id,
    utcnow,
)
from regression_toolkit.visual_testing.models import (
    REVIEW_STATUSES,
    NewRegression,
    Regression,
    RegressionStatus,
    RunStats,
    TrendPoint,
)

logger = logging.getLogger(__name__)

NATURAL_KEY = ("test_run_id", "test_name", "viewport", "step_key")

# Append-only inserts racing for the same revision
APPEND_ATTEMPTS = 3


def _natural_key_filter(key: dict[str, Any]) -> list:
    return [getattr(VisualRegressionModel, name) == key[name] for name in NATURAL_KEY]


def _to_regression(row: VisualRegressionModel) -> Regression:
    return Regression(
        id=row.id,
        test_run_id=row.test_run_id,
        baseline_run_id=row.baseline_run_id,
        test_name=row.test_name,
        viewport=row.viewport,
        step_name=row.step_name,
        pixels_different=row.pixels_different,
        percentage_different=row.percentage_different,
        width=row.dimensions_width,
        height=row.dimensions_height,
        threshold=row.threshold,
        is_significant=row.is_significant,
        status=RegressionStatus(row.status),
        reviewed_by=row.reviewed_by,
        reviewed_at=row.reviewed_at,
        notes=row.notes,
        ai_analysis=row.ai_analysis,
        created_at=row.created_at,
        baseline_screenshot_url=row.baseline_screenshot_url,
        current_screenshot_url=row.current_screenshot_url,
        diff_screenshot_url=row.diff_screenshot_url,
    )


def parse_review_status(value: "str | RegressionStatus") -> RegressionStatus:
    """
    Validate a status a reviewer wants to set

    Raises:
        InvalidStatusError: If the value is unknown or is "pending", which
            only the system assigns
    """
    allowed = sorted(status.value for status in REVIEW_STATUSES)
    try:
        status = RegressionStatus.parse(value)
    except InvalidStatusError:
        raise InvalidStatusError(value, allowed) from None
    if status not in REVIEW_STATUSES:
        raise InvalidStatusError(value, allowed)
    return status


class RegressionLedger:
    """
    Stores regressions and drives their review state machine.

    Every regression starts as pending. Reviewers may move it to approved,
    bug_reported, investigating or false_positive, and may re-classify it any
    number of times; no state is terminal.
    """

    def __init__(self, database: IDatabase, upsert: bool = True):
        """
        Initialize the ledger.

        Args:
            database: Toolkit database
            upsert: Replace an existing row with the same
                (test_run_id, test_name, viewport, step_name) instead of
                inserting a duplicate
        """
        self.database = database
        self.upsert = upsert

    # Writes

    def append(self, new: NewRegression) -> str:
        """
        Record a comparison outcome.

        Args:
            new: Comparison outcome and its identifying triple

        Returns:
            Regression id (the existing id when an earlier row was replaced)
        """
        comparison = new.comparison
        step_key = new.step_name or ""
        fields: dict[str, Any] = {
            "baseline_run_id": new.baseline_run_id,
            "step_name": new.step_name,
            "baseline_screenshot_url": new.baseline_screenshot_url,
            "current_screenshot_url": new.current_screenshot_url,
            "diff_screenshot_url": new.diff_screenshot_url,
            "pixels_different": comparison.pixels_different,
            "percentage_different": comparison.percentage_different,
            "dimensions_width": comparison.width,
            "dimensions_height": comparison.height,
            "threshold": comparison.threshold,
            "is_significant": comparison.is_significant,
            "status": RegressionStatus.PENDING.value,
            "reviewed_by": None,
            "reviewed_at": None,
            "notes": None,
        }

        key = {
            "test_run_id": new.test_run_id,
            "test_name": new.test_name,
            "viewport": new.viewport,
            "step_key": step_key,
        }
        if self.upsert:
            regression_id = self._upsert(key, fields)
            action = "Upserted"
        else:
            regression_id = self._insert_revision(key, fields)
            action = "Recorded"

        logger.debug(
            f"{action} regression {regression_id}: {new.test_name} ({new.viewport}) "
            f"{comparison.percentage_different:.2f}%"
        )
        return regression_id

    def _upsert(self, key: dict[str, Any], fields: dict[str, Any]) -> str:
        """Insert or replace the revision 0 row for a natural key in one statement"""
        now = utcnow()
        statement = sqlite_insert(VisualRegressionModel).values(
            id=new_id(), revision=0, created_at=now, updated_at=now, **key, **fields
        )
        statement = statement.on_conflict_do_update(
            index_elements=[*NATURAL_KEY, "revision"],
            set_={**fields, "updated_at": now},
        )

        with self.database.session_scope() as session:
            session.execute(statement)
            return session.execute(
                select(VisualRegressionModel.id).where(
                    *_natural_key_filter(key),
                    VisualRegressionModel.revision == 0,
                )
            ).scalar_one()

    def _insert_revision(self, key: dict[str, Any], fields: dict[str, Any]) -> str:
        """Insert a new row under the next free revision of a natural key"""
        for attempt in range(1, APPEND_ATTEMPTS + 1):
            try:
                with self.database.session_scope() as session:
                    latest = session.execute(
                        select(func.max(VisualRegressionModel.revision)).where(
                            *_natural_key_filter(key)
                        )
                    ).scalar_one()
                    row = VisualRegressionModel(
                        revision=0 if latest is None else latest + 1, **key, **fields
                    )
                    session.add(row)
                    session.flush()
                    regression_id = row.id
                return regression_id
            except PersistenceFailureError as e:
                if not isinstance(e.__cause__, IntegrityError) or attempt == APPEND_ATTEMPTS:
                    raise
                logger.debug(f"Revision taken for {key}, retrying ({attempt}/{APPEND_ATTEMPTS})")

    def update_status(
        self,
        regression_id: str,
        status: "str | RegressionStatus",
        notes: str | None = None,
        reviewed_by: str | None = None,
    ) -> Regression:
        """
        Apply a review decision.

        Status, reviewer, review time and notes are written by a single
        UPDATE, so concurrent reviewers resolve as last-writer-wins without
        mixing fields from different reviews.

        Args:
            regression_id: Regression ID
            status: approved, bug_reported, investigating or false_positive
            notes: Optional review notes (existing notes kept when None)
            reviewed_by: Reviewer identity

        Returns:
            The updated regression

        Raises:
            InvalidStatusError: If the status is not a review status (checked
                before any write)
            RegressionNotFoundError: If the regression does not exist
        """
        new_status = parse_review_status(status)

        values: dict[str, Any] = {
            "status": new_status.value,
            "reviewed_by": reviewed_by,
            "reviewed_at": datetime.now(UTC),
        }
        if notes is not None:
            values["notes"] = notes

        with self.database.session_scope() as session:
            result = session.execute(
                update(VisualRegressionModel)
                .where(VisualRegressionModel.id == regression_id)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                raise RegressionNotFoundError(regression_id)

        logger.info(
            f"Regression {regression_id} marked {new_status.value}"
            + (f" by {reviewed_by}" if reviewed_by else "")
        )
        return self.get(regression_id)

    def attach_ai_analysis(self, regression_id: str, analysis: dict[str, Any]) -> Regression:
        """
        Store a qualitative annotation produced by an external vision service.

        Raises:
            RegressionNotFoundError: If the regression does not exist
        """
        with self.database.session_scope() as session:
            row = session.get(VisualRegressionModel, regression_id)
            if row is None:
                raise RegressionNotFoundError(regression_id)
            row.ai_analysis = analysis

        return self.get(regression_id)

    # Reads

    def get(self, regression_id: str) -> Regression:
        """
        Get a regression by ID.

        Raises:
            RegressionNotFoundError: If the regression does not exist
        """
        with self.database.session_scope() as session:
            row = session.get(VisualRegressionModel, regression_id)
            if row is None:
                raise RegressionNotFoundError(regression_id)
            return _to_regression(row)

    def list_regressions(
        self,
        test_run_id: str,
        status: "str | RegressionStatus | None" = None,
        is_significant: bool | None = None,
    ) -> list[Regression]:
        """
        List regressions for a run, largest difference first.

        Args:
            test_run_id: Run ID
            status: Only regressions with this status
            is_significant: Only significant (True) or insignificant (False)

        Raises:
            InvalidStatusError: If the status filter is not a known status
        """
        query = select(VisualRegressionModel).where(
            VisualRegressionModel.test_run_id == test_run_id
        )

        if status is not None:
            query = query.where(VisualRegressionModel.status == RegressionStatus.parse(status).value)

        if is_significant is not None:
            query = query.where(VisualRegressionModel.is_significant == is_significant)

        query = query.order_by(
            VisualRegressionModel.percentage_different.desc(),
            VisualRegressionModel.test_name,
            VisualRegressionModel.viewport,
            VisualRegressionModel.step_key,
        )

        with self.database.session_scope() as session:
            return [_to_regression(row) for row in session.execute(query).scalars()]

    def stats_for(self, test_run_id: str) -> RunStats:
        """Count regressions of a run by status and significance"""
        with self.database.session_scope() as session:
            rows = session.execute(
                select(
                    VisualRegressionModel.status,
                    func.count(VisualRegressionModel.id),
                    func.sum(cast(VisualRegressionModel.is_significant, Integer)),
                    func.sum(VisualRegressionModel.percentage_different),
                )
                .where(VisualRegressionModel.test_run_id == test_run_id)
                .group_by(VisualRegressionModel.status)
            ).all()

        by_status = {status: 0 for status in RegressionStatus.values()}
        total = 0
        significant = 0
        diff_sum = 0.0
        for status, count, sig, pct in rows:
            by_status[status] = count
            total += count
            significant += sig or 0
            diff_sum += pct or 0.0

        return RunStats(
            total=total,
            significant=significant,
            by_status=by_status,
            average_difference=round(diff_sum / total, 2) if total else 0.0,
        )

    def trends_for(
        self, suite_id: str, days_back: int = 30, zero_fill: bool = False
    ) -> list[TrendPoint]:
        """
        Daily regression counts for a suite, oldest first.

        Args:
            suite_id: Suite ID
            days_back: Size of the window in days, ending now
            zero_fill: Emit a zero point for every day in the window without
                regressions (otherwise only days with regressions appear)

        Raises:
            ValidationError: If days_back is negative
        """
        if days_back < 0:
            raise ValidationError(f"days_back must be non-negative, got {days_back}")

        now = datetime.now(UTC)
        cutoff = now - timedelta(days=days_back)
        day_column = func.date(VisualRegressionModel.created_at)

        with self.database.session_scope() as session:
            rows = session.execute(
                select(
                    day_column,
                    func.count(VisualRegressionModel.id),
                    func.sum(cast(VisualRegressionModel.is_significant, Integer)),
                    func.avg(VisualRegressionModel.percentage_different),
                )
                .join(TestRunModel, TestRunModel.id == VisualRegressionModel.test_run_id)
                .where(
                    TestRunModel.suite_id == suite_id,
                    VisualRegressionModel.created_at >= cutoff,
                )
                .group_by(day_column)
                .order_by(day_column)
            ).all()

        points = [
            TrendPoint(
                date=str(date),
                regression_count=count,
                significant_count=int(sig or 0),
                average_difference=round(avg or 0.0, 2),
            )
            for date, count, sig, avg in rows
        ]

        if not zero_fill:
            return points

        by_date = {point.date: point for point in points}
        filled = []
        day = cutoff.date()
        while day <= now.date():
            key = day.isoformat()
            filled.append(by_date.get(key, TrendPoint(date=key, regression_count=0, significant_count=0)))
            day += timedelta(days=1)
        return filled

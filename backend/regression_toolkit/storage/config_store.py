"""
Per-suite comparison configuration

Stores significance thresholds per (suite, viewport) and ignore regions per
(suite, test, viewport), falling back to the system default threshold when
nothing is configured.
"""

import logging
from typing import Any

from sqlalchemy import or_, select

from regression_toolkit.core.config import get_settings
from regression_toolkit.core.exceptions import ResourceNotFoundError, ValidationError
from regression_toolkit.core.interfaces import IDatabase
from regression_toolkit.storage.models import DiffThresholdModel, IgnoreRegionModel, TestSuiteModel
from regression_toolkit.visual_testing.regions import IgnoreRegion

logger = logging.getLogger(__name__)


def validate_threshold(threshold: float) -> float:
    """
    Check a significance threshold is a fraction in 0.0 - 1.0

    Raises:
        ValidationError: If the value is out of range
    """
    if isinstance(threshold, bool) or not isinstance(threshold, (int, float)):
        raise ValidationError(f"Threshold must be a number, got {threshold!r}")
    if not 0.0 <= threshold <= 1.0:
        raise ValidationError(
            f"Threshold must be between 0.0 and 1.0, got {threshold}",
            recovery_hint="Thresholds are fractions: 0.10 means 10% of pixels",
        )
    return float(threshold)


class ComparisonConfigStore:
    """Thresholds and ignore regions backed by the toolkit database"""

    def __init__(self, database: IDatabase, default_threshold: float | None = None):
        self.database = database
        self.default_threshold = validate_threshold(
            get_settings().default_threshold if default_threshold is None else default_threshold
        )

    # Thresholds

    def get_threshold(self, suite_id: str, viewport: str | None = None) -> float:
        """
        Get the significance threshold for a suite and viewport

        Returns the default threshold when no viewport is given or nothing
        is stored for it.
        """
        if not viewport:
            return self.default_threshold

        with self.database.session_scope() as session:
            row = session.execute(
                select(DiffThresholdModel).where(
                    DiffThresholdModel.suite_id == suite_id,
                    DiffThresholdModel.viewport == viewport,
                )
            ).scalar_one_or_none()

            return row.threshold if row else self.default_threshold

    def set_threshold(self, suite_id: str, viewport: str, threshold: float) -> dict[str, Any]:
        """
        Create or replace the threshold for a suite and viewport

        Raises:
            ValidationError: If the threshold is outside 0.0 - 1.0
            ResourceNotFoundError: If the suite does not exist
        """
        threshold = validate_threshold(threshold)
        if not viewport:
            raise ValidationError("Viewport is required to store a threshold")

        with self.database.session_scope() as session:
            if session.get(TestSuiteModel, suite_id) is None:
                raise ResourceNotFoundError("Test suite", suite_id)

            row = session.execute(
                select(DiffThresholdModel).where(
                    DiffThresholdModel.suite_id == suite_id,
                    DiffThresholdModel.viewport == viewport,
                )
            ).scalar_one_or_none()

            if row is None:
                row = DiffThresholdModel(suite_id=suite_id, viewport=viewport, threshold=threshold)
                session.add(row)
            else:
                row.threshold = threshold
            session.flush()

            logger.info(f"Threshold for suite {suite_id} / {viewport} set to {threshold}")
            return row.to_dict()

    def list_thresholds(self, suite_id: str) -> list[dict[str, Any]]:
        with self.database.session_scope() as session:
            rows = session.execute(
                select(DiffThresholdModel)
                .where(DiffThresholdModel.suite_id == suite_id)
                .order_by(DiffThresholdModel.viewport)
            ).scalars()
            return [row.to_dict() for row in rows]

    # Ignore regions

    def get_ignore_regions(
        self,
        suite_id: str,
        test_name: str | None = None,
        viewport: str | None = None,
    ) -> list[IgnoreRegion]:
        """
        Get the ignore regions that apply to a test at a viewport

        Regions stored without a test name or viewport apply to every test or
        viewport of the suite. Passing None for test_name or viewport skips
        that filter.
        """
        query = select(IgnoreRegionModel).where(IgnoreRegionModel.suite_id == suite_id)

        if test_name is not None:
            query = query.where(
                or_(IgnoreRegionModel.test_name.is_(None), IgnoreRegionModel.test_name == test_name)
            )

        if viewport is not None:
            query = query.where(
                or_(IgnoreRegionModel.viewport.is_(None), IgnoreRegionModel.viewport == viewport)
            )

        with self.database.session_scope() as session:
            rows = session.execute(query.order_by(IgnoreRegionModel.id)).scalars()
            return [
                IgnoreRegion(x=r.x, y=r.y, width=r.width, height=r.height, reason=r.reason)
                for r in rows
            ]

    def list_ignore_regions(self, suite_id: str) -> list[dict[str, Any]]:
        """List stored regions for a suite with their ids and scope"""
        with self.database.session_scope() as session:
            rows = session.execute(
                select(IgnoreRegionModel)
                .where(IgnoreRegionModel.suite_id == suite_id)
                .order_by(IgnoreRegionModel.id)
            ).scalars()
            return [row.to_dict() for row in rows]

    def save_ignore_region(
        self,
        suite_id: str,
        region: IgnoreRegion,
        test_name: str | None = None,
        viewport: str | None = None,
    ) -> dict[str, Any]:
        """
        Store an ignore region

        Raises:
            ValidationError: If the region has no area
            ResourceNotFoundError: If the suite does not exist
        """
        if region.width <= 0 or region.height <= 0:
            raise ValidationError(
                f"Ignore region must have a positive size, got {region.width}x{region.height}"
            )

        with self.database.session_scope() as session:
            if session.get(TestSuiteModel, suite_id) is None:
                raise ResourceNotFoundError("Test suite", suite_id)

            row = IgnoreRegionModel(
                suite_id=suite_id,
                test_name=test_name,
                viewport=viewport,
                x=region.x,
                y=region.y,
                width=region.width,
                height=region.height,
                reason=region.reason,
            )
            session.add(row)
            session.flush()

            logger.info(
                f"Added ignore region {region.width}x{region.height}@({region.x},{region.y}) "
                f"to suite {suite_id}"
            )
            return row.to_dict()

    def delete_ignore_region(self, region_id: int) -> bool:
        """
        Delete an ignore region

        Raises:
            ResourceNotFoundError: If the region does not exist
        """
        with self.database.session_scope() as session:
            row = session.get(IgnoreRegionModel, region_id)
            if row is None:
                raise ResourceNotFoundError("Ignore region", str(region_id))
            session.delete(row)
            return True

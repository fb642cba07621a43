"""
SQLAlchemy database models
"""

import uuid
from datetime import UTC, datetime

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


def utcnow():
    """Return current UTC time"""
    return datetime.now(UTC)


def new_id() -> str:
    """Return a new random identifier"""
    return str(uuid.uuid4())


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


class TestSuiteModel(Base):
    """
    Stores test suites and their designated baseline run

    A suite with a null baseline_run_id has no ground truth yet, so no
    regression detection is possible for its runs.
    """

    __test__ = False  # not a pytest test class
    __tablename__ = "test_suites"

    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    # Plain column rather than a foreign key: suites and runs reference each other
    baseline_run_id = Column(String(36), nullable=True)
    baseline_set_at = Column(DateTime, nullable=True)
    baseline_notes = Column(Text, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    # Relationships
    runs = relationship("TestRunModel", back_populates="suite", cascade="all, delete-orphan")

    __table_args__ = (Index("idx_test_suites_name", "name"),)

    def to_dict(self) -> dict:
        """Convert to dictionary"""
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "baseline_run_id": self.baseline_run_id,
            "baseline_set_at": _iso(self.baseline_set_at),
            "baseline_notes": self.baseline_notes,
            "created_at": _iso(self.created_at),
        }


class TestRunModel(Base):
    """
    Stores one execution of a test suite
    """

    __test__ = False
    __tablename__ = "test_runs"

    id = Column(String(36), primary_key=True, default=new_id)
    suite_id = Column(String(36), ForeignKey("test_suites.id", ondelete="CASCADE"), nullable=False)
    name = Column(String(255), nullable=True)
    status = Column(String(50), nullable=False, default="completed")  # running, completed, failed
    created_at = Column(DateTime, default=utcnow, nullable=False)
    completed_at = Column(DateTime, nullable=True)

    # Relationships
    suite = relationship("TestSuiteModel", back_populates="runs")
    results = relationship(
        "TestResultModel", back_populates="run", cascade="all, delete-orphan"
    )

    __table_args__ = (
        Index("idx_test_runs_suite_id", "suite_id"),
        Index("idx_test_runs_created_at", "created_at"),
    )

    def to_dict(self) -> dict:
        """Convert to dictionary"""
        return {
            "id": self.id,
            "suite_id": self.suite_id,
            "name": self.name,
            "status": self.status,
            "created_at": _iso(self.created_at),
            "completed_at": _iso(self.completed_at),
        }


class TestResultModel(Base):
    """
    Stores the outcome of a single test at a single viewport within a run

    `screenshots` is a list of either plain references (URL or path) or
    objects of the form {"url": ..., "stepName": ...}.
    """

    __test__ = False
    __tablename__ = "test_results"

    id = Column(Integer, primary_key=True, autoincrement=True)
    test_run_id = Column(String(36), ForeignKey("test_runs.id", ondelete="CASCADE"), nullable=False)
    test_name = Column(String(255), nullable=False)
    viewport = Column(String(50), nullable=False)
    status = Column(String(50), nullable=False, default="passed")  # passed, failed, skipped
    screenshots = Column(JSON, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    # Relationships
    run = relationship("TestRunModel", back_populates="results")

    __table_args__ = (
        Index("idx_test_results_run_id", "test_run_id"),
        Index("idx_test_results_test_viewport", "test_name", "viewport"),
    )

    def to_dict(self) -> dict:
        """Convert to dictionary"""
        return {
            "id": self.id,
            "test_run_id": self.test_run_id,
            "test_name": self.test_name,
            "viewport": self.viewport,
            "status": self.status,
            "screenshots": self.screenshots or [],
            "created_at": _iso(self.created_at),
        }


class VisualRegressionModel(Base):
    """
    Stores one screenshot comparison outcome and its review status

    step_key mirrors step_name with "" for "no step" so re-runs can be matched
    on the natural key (test_run_id, test_name, viewport, step_key). Upserted
    rows keep revision 0; append-only rows take the next free revision.
    """

    __tablename__ = "visual_regressions"

    id = Column(String(36), primary_key=True, default=new_id)
    test_run_id = Column(String(36), ForeignKey("test_runs.id", ondelete="CASCADE"), nullable=False)
    baseline_run_id = Column(String(36), nullable=True)
    test_name = Column(String(255), nullable=False)
    viewport = Column(String(50), nullable=False)
    step_name = Column(String(255), nullable=True)
    step_key = Column(String(255), nullable=False, default="")
    revision = Column(Integer, nullable=False, default=0)
    baseline_screenshot_url = Column(Text, nullable=True)
    current_screenshot_url = Column(Text, nullable=True)
    diff_screenshot_url = Column(Text, nullable=True)
    pixels_different = Column(BigInteger, nullable=False, default=0)
    percentage_different = Column(Float, nullable=False, default=0.0)
    dimensions_width = Column(Integer, nullable=False)
    dimensions_height = Column(Integer, nullable=False)
    threshold = Column(Float, nullable=False, default=0.10)
    is_significant = Column(Boolean, nullable=False, default=False)
    status = Column(String(50), nullable=False, default="pending")
    reviewed_by = Column(String(255), nullable=True)
    reviewed_at = Column(DateTime, nullable=True)
    notes = Column(Text, nullable=True)
    ai_analysis = Column(JSON, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint(
            "test_run_id",
            "test_name",
            "viewport",
            "step_key",
            "revision",
            name="uq_regressions_natural_key",
        ),
        Index("idx_regressions_run_id", "test_run_id"),
        Index("idx_regressions_baseline_run_id", "baseline_run_id"),
        Index("idx_regressions_status", "status"),
        Index("idx_regressions_significant", "is_significant"),
        Index("idx_regressions_test_viewport", "test_name", "viewport"),
        Index("idx_regressions_created_at", "created_at"),
    )

    def to_dict(self) -> dict:
        """Convert to dictionary"""
        return {
            "id": self.id,
            "test_run_id": self.test_run_id,
            "baseline_run_id": self.baseline_run_id,
            "test_name": self.test_name,
            "viewport": self.viewport,
            "step_name": self.step_name,
            "baseline_screenshot_url": self.baseline_screenshot_url,
            "current_screenshot_url": self.current_screenshot_url,
            "diff_screenshot_url": self.diff_screenshot_url,
            "pixels_different": self.pixels_different,
            "percentage_different": self.percentage_different,
            "dimensions_width": self.dimensions_width,
            "dimensions_height": self.dimensions_height,
            "threshold": self.threshold,
            "is_significant": self.is_significant,
            "status": self.status,
            "reviewed_by": self.reviewed_by,
            "reviewed_at": _iso(self.reviewed_at),
            "notes": self.notes,
            "ai_analysis": self.ai_analysis,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


class IgnoreRegionModel(Base):
    """
    Stores rectangles excluded from diff scoring

    Null test_name / viewport means the region applies to every test /
    viewport in the suite.
    """

    __tablename__ = "ignore_regions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    suite_id = Column(String(36), ForeignKey("test_suites.id", ondelete="CASCADE"), nullable=False)
    test_name = Column(String(255), nullable=True)
    viewport = Column(String(50), nullable=True)
    x = Column(Integer, nullable=False)
    y = Column(Integer, nullable=False)
    width = Column(Integer, nullable=False)
    height = Column(Integer, nullable=False)
    reason = Column(Text, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (
        Index("idx_ignore_regions_suite", "suite_id"),
        Index("idx_ignore_regions_test_viewport", "test_name", "viewport"),
    )

    def to_dict(self) -> dict:
        """Convert to dictionary"""
        return {
            "id": self.id,
            "suite_id": self.suite_id,
            "test_name": self.test_name,
            "viewport": self.viewport,
            "x": self.x,
            "y": self.y,
            "width": self.width,
            "height": self.height,
            "reason": self.reason,
            "created_at": _iso(self.created_at),
        }


class DiffThresholdModel(Base):
    """
    Stores per-suite, per-viewport significance thresholds
    """

    __tablename__ = "diff_thresholds"

    id = Column(Integer, primary_key=True, autoincrement=True)
    suite_id = Column(String(36), ForeignKey("test_suites.id", ondelete="CASCADE"), nullable=False)
    viewport = Column(String(50), nullable=False)
    threshold = Column(Float, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("suite_id", "viewport", name="uq_diff_thresholds_suite_viewport"),
    )

    def to_dict(self) -> dict:
        """Convert to dictionary"""
        return {
            "id": self.id,
            "suite_id": self.suite_id,
            "viewport": self.viewport,
            "threshold": self.threshold,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }

"""
Visual regression domain models

Typed records passed between the comparator, the registry, the ledger and
the orchestrator. Review status is a closed enumeration validated at the
boundary.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from regression_toolkit.core.exceptions import InvalidStatusError
from regression_toolkit.visual_testing.comparison import ComparisonResult


class RegressionStatus(str, Enum):
    """Review status of a regression"""

    PENDING = "pending"
    APPROVED = "approved"
    BUG_REPORTED = "bug_reported"
    INVESTIGATING = "investigating"
    FALSE_POSITIVE = "false_positive"

    @classmethod
    def values(cls) -> list[str]:
        return [status.value for status in cls]

    @classmethod
    def parse(cls, value: "str | RegressionStatus") -> "RegressionStatus":
        """
        Convert a raw value to a status

        Raises:
            InvalidStatusError: If the value is not one of the five statuses
        """
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            raise InvalidStatusError(value, cls.values()) from None


# Statuses a reviewer may set; pending is assigned by the system on creation
REVIEW_STATUSES = frozenset(
    {
        RegressionStatus.APPROVED,
        RegressionStatus.BUG_REPORTED,
        RegressionStatus.INVESTIGATING,
        RegressionStatus.FALSE_POSITIVE,
    }
)


@dataclass(frozen=True)
class Baseline:
    """Run designated as ground truth for a suite (all None when unset)"""

    suite_id: str
    baseline_run_id: str | None = None
    set_at: datetime | None = None
    notes: str | None = None

    @property
    def is_set(self) -> bool:
        return self.baseline_run_id is not None

    def to_dict(self) -> dict[str, Any]:
        return {
            "suite_id": self.suite_id,
            "baseline_run_id": self.baseline_run_id,
            "baseline_set_at": self.set_at.isoformat() if self.set_at else None,
            "baseline_notes": self.notes,
        }


@dataclass
class NewRegression:
    """A comparison outcome about to be appended to the ledger"""

    test_run_id: str
    baseline_run_id: str | None
    test_name: str
    viewport: str
    comparison: ComparisonResult
    step_name: str | None = None
    baseline_screenshot_url: str | None = None
    current_screenshot_url: str | None = None
    diff_screenshot_url: str | None = None


@dataclass(frozen=True)
class Regression:
    """Persisted comparison outcome with its review state"""

    id: str
    test_run_id: str
    baseline_run_id: str | None
    test_name: str
    viewport: str
    step_name: str | None
    pixels_different: int
    percentage_different: float
    width: int
    height: int
    threshold: float
    is_significant: bool
    status: RegressionStatus
    reviewed_by: str | None
    reviewed_at: datetime | None
    notes: str | None
    ai_analysis: dict[str, Any] | None
    created_at: datetime
    baseline_screenshot_url: str | None = None
    current_screenshot_url: str | None = None
    diff_screenshot_url: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "test_run_id": self.test_run_id,
            "baseline_run_id": self.baseline_run_id,
            "test_name": self.test_name,
            "viewport": self.viewport,
            "step_name": self.step_name,
            "pixels_different": self.pixels_different,
            "percentage_different": self.percentage_different,
            "dimensions": {"width": self.width, "height": self.height},
            "threshold": self.threshold,
            "is_significant": self.is_significant,
            "status": self.status.value,
            "reviewed_by": self.reviewed_by,
            "reviewed_at": self.reviewed_at.isoformat() if self.reviewed_at else None,
            "notes": self.notes,
            "ai_analysis": self.ai_analysis,
            "created_at": self.created_at.isoformat(),
            "baseline_screenshot_url": self.baseline_screenshot_url,
            "current_screenshot_url": self.current_screenshot_url,
            "diff_screenshot_url": self.diff_screenshot_url,
        }


@dataclass(frozen=True)
class RunStats:
    """Counts of regressions for one test run"""

    total: int
    significant: int
    by_status: dict[str, int]
    average_difference: float

    @property
    def pending(self) -> int:
        return self.by_status.get(RegressionStatus.PENDING.value, 0)

    def to_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "significant": self.significant,
            "pending": self.pending,
            "by_status": dict(self.by_status),
            "average_difference": self.average_difference,
        }


@dataclass(frozen=True)
class TrendPoint:
    """Regression counts for one day"""

    date: str  # YYYY-MM-DD (UTC)
    regression_count: int
    significant_count: int
    average_difference: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "date": self.date,
            "regression_count": self.regression_count,
            "significant_count": self.significant_count,
            "average_difference": self.average_difference,
        }


@dataclass(frozen=True)
class ScreenshotPair:
    """A current screenshot matched with its baseline counterpart"""

    test_name: str
    viewport: str
    step_name: str | None
    baseline_ref: str
    current_ref: str

    @property
    def sort_key(self) -> tuple[str, str, str]:
        return (self.test_name, self.viewport, self.step_name or "")

    @property
    def label(self) -> str:
        label = f"{self.test_name} ({self.viewport})"
        if self.step_name:
            label += f" / {self.step_name}"
        return label


@dataclass(frozen=True)
class ComparisonDetail:
    """One successful comparison in a batch report"""

    test_name: str
    viewport: str
    step_name: str | None
    comparison: ComparisonResult
    regression_id: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "test_name": self.test_name,
            "viewport": self.viewport,
            "step_name": self.step_name,
            "comparison": self.comparison.to_dict(),
            "regression_id": self.regression_id,
        }


@dataclass(frozen=True)
class PairFailure:
    """One pair that could not be compared or saved"""

    test_name: str
    viewport: str
    step_name: str | None
    stage: str  # fetch, decode, compare, persist
    error: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "test_name": self.test_name,
            "viewport": self.viewport,
            "step_name": self.step_name,
            "stage": self.stage,
            "error": self.error,
        }


@dataclass(frozen=True)
class PairOutcome:
    """Result of processing one pair: exactly one of detail / failure is set"""

    pair: ScreenshotPair
    detail: ComparisonDetail | None = None
    failure: PairFailure | None = None

    @property
    def ok(self) -> bool:
        return self.detail is not None


@dataclass
class RegressionReport:
    """
    Batch summary for one test run (not persisted)

    success=False is reserved for "could not run at all" (no baseline, run
    not found); per-pair failures are listed in `failures`.
    """

    success: bool
    total_comparisons: int = 0
    regressions_found: int = 0
    significant_regressions: int = 0
    average_difference: float = 0.0
    message: str | None = None
    details: list[ComparisonDetail] = field(default_factory=list)
    failures: list[PairFailure] = field(default_factory=list)
    skipped: int = 0
    cancelled: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "total_comparisons": self.total_comparisons,
            "regressions_found": self.regressions_found,
            "significant_regressions": self.significant_regressions,
            "average_difference": self.average_difference,
            "message": self.message,
            "details": [detail.to_dict() for detail in self.details],
            "failures": [failure.to_dict() for failure in self.failures],
            "skipped": self.skipped,
            "cancelled": self.cancelled,
        }

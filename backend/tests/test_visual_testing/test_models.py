"""
Tests for visual regression domain models
"""

import pytest

from regression_toolkit.core.exceptions import InvalidStatusError
from regression_toolkit.visual_testing.ledger import parse_review_status
from regression_toolkit.visual_testing.models import (
    Baseline,
    RegressionReport,
    RegressionStatus,
    RunStats,
    ScreenshotPair,
)


class TestRegressionStatus:
    """Test status parsing"""

    def test_values_cover_five_statuses(self):
        """Test the closed set of statuses."""
        assert RegressionStatus.values() == [
            "pending",
            "approved",
            "bug_reported",
            "investigating",
            "false_positive",
        ]

    def test_parse_known_value(self):
        """Test raw strings parse to statuses."""
        assert RegressionStatus.parse("bug_reported") is RegressionStatus.BUG_REPORTED
        assert RegressionStatus.parse(RegressionStatus.APPROVED) is RegressionStatus.APPROVED

    @pytest.mark.parametrize("value", ["Approved", "rejected", "", None, 3])
    def test_parse_rejects_unknown(self, value):
        """Test anything outside the set raises InvalidStatusError."""
        with pytest.raises(InvalidStatusError):
            RegressionStatus.parse(value)

    def test_review_status_rejects_pending(self):
        """Test reviewers cannot move a regression back to pending."""
        with pytest.raises(InvalidStatusError) as exc_info:
            parse_review_status("pending")

        assert "pending" not in exc_info.value.allowed
        assert "approved" in exc_info.value.allowed

    def test_review_status_accepts_review_values(self):
        """Test the four reviewer statuses are accepted."""
        for value in ("approved", "bug_reported", "investigating", "false_positive"):
            assert parse_review_status(value).value == value


class TestRecords:
    """Test record helpers"""

    def test_unset_baseline(self):
        """Test a baseline without a run id is not set."""
        baseline = Baseline(suite_id="s1")

        assert baseline.is_set is False
        assert baseline.to_dict()["baseline_set_at"] is None

    def test_run_stats_pending(self):
        """Test pending count is read from by_status."""
        stats = RunStats(total=3, significant=1, by_status={"pending": 2, "approved": 1}, average_difference=1.5)

        assert stats.pending == 2
        assert stats.to_dict()["pending"] == 2

    def test_pair_label(self):
        """Test pair labels include the step when present."""
        pair = ScreenshotPair("login", "mobile", "submit", "a.png", "b.png")

        assert pair.label == "login (mobile) / submit"
        assert pair.sort_key == ("login", "mobile", "submit")

    def test_empty_report_to_dict(self):
        """Test an unsuccessful report serializes with empty lists."""
        report = RegressionReport(success=False, message="No baseline set for this suite")

        data = report.to_dict()

        assert data["success"] is False
        assert data["details"] == []
        assert data["failures"] == []
        assert data["cancelled"] is False

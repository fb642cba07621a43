"""
Read-only statistics and trend queries over the regression ledger
"""

import logging
from typing import Any

from regression_toolkit.visual_testing.ledger import RegressionLedger
from regression_toolkit.visual_testing.models import RunStats, TrendPoint

logger = logging.getLogger(__name__)


class TrendAggregator:
    """
    Dashboard queries: per-run stats and per-suite daily trends.

    Never writes. A suite or run without history yields an empty series or
    zero counts rather than an error.
    """

    def __init__(self, ledger: RegressionLedger):
        self.ledger = ledger

    def get_stats(self, test_run_id: str) -> RunStats:
        return self.ledger.stats_for(test_run_id)

    def get_trends(
        self, suite_id: str, days_back: int = 30, zero_fill: bool = False
    ) -> list[TrendPoint]:
        return self.ledger.trends_for(suite_id, days_back=days_back, zero_fill=zero_fill)

    def summarize(self, suite_id: str, days_back: int = 30) -> dict[str, Any]:
        """Totals over the trend window"""
        points = self.get_trends(suite_id, days_back=days_back)
        total = sum(point.regression_count for point in points)
        significant = sum(point.significant_count for point in points)
        weighted = sum(point.average_difference * point.regression_count for point in points)

        return {
            "suite_id": suite_id,
            "days_back": days_back,
            "days_with_regressions": len(points),
            "total_regressions": total,
            "significant_regressions": significant,
            "average_difference": round(weighted / total, 2) if total else 0.0,
        }

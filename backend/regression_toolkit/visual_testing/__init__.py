"""
Visual Testing Module

Screenshot comparison, baseline management, the regression ledger and
batch regression analysis.
"""

from regression_toolkit.visual_testing.baseline_registry import BaselineRegistry
from regression_toolkit.visual_testing.comparison import (
    ComparisonOptions,
    ComparisonResult,
    ScreenshotComparator,
    compare,
    compare_encoded,
    generate_heatmap,
)
from regression_toolkit.visual_testing.fetcher import ScreenshotFetcher
from regression_toolkit.visual_testing.image import RasterImage, decode_image, encode_png
from regression_toolkit.visual_testing.ledger import RegressionLedger
from regression_toolkit.visual_testing.models import (
    Baseline,
    Regression,
    RegressionReport,
    RegressionStatus,
    RunStats,
    TrendPoint,
)
from regression_toolkit.visual_testing.orchestrator import ProgressTracker, RegressionOrchestrator
from regression_toolkit.visual_testing.regions import IgnoreRegion
from regression_toolkit.visual_testing.trends import TrendAggregator

__all__ = [
    "Baseline",
    "BaselineRegistry",
    "ComparisonOptions",
    "ComparisonResult",
    "IgnoreRegion",
    "ProgressTracker",
    "RasterImage",
    "Regression",
    "RegressionLedger",
    "RegressionOrchestrator",
    "RegressionReport",
    "RegressionStatus",
    "RunStats",
    "ScreenshotComparator",
    "ScreenshotFetcher",
    "TrendAggregator",
    "TrendPoint",
    "compare",
    "compare_encoded",
    "decode_image",
    "encode_png",
    "generate_heatmap",
]

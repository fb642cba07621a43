"""
Data persistence layer using SQLite
"""

from regression_toolkit.storage.database import Database, get_database, reset_database
from regression_toolkit.storage.models import (
    DiffThresholdModel,
    IgnoreRegionModel,
    TestResultModel,
    TestRunModel,
    TestSuiteModel,
    VisualRegressionModel,
)

__all__ = [
    "Database",
    "get_database",
    "reset_database",
    "TestSuiteModel",
    "TestRunModel",
    "TestResultModel",
    "VisualRegressionModel",
    "IgnoreRegionModel",
    "DiffThresholdModel",
]

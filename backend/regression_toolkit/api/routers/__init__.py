"""
API routers
"""

from regression_toolkit.api.routers.baselines import router as baselines_router
from regression_toolkit.api.routers.diff import router as diff_router
from regression_toolkit.api.routers.health import router as health_router
from regression_toolkit.api.routers.ignore_regions import router as ignore_regions_router
from regression_toolkit.api.routers.regressions import router as regressions_router
from regression_toolkit.api.routers.review import router as review_router
from regression_toolkit.api.routers.thresholds import router as thresholds_router

__all__ = [
    "baselines_router",
    "diff_router",
    "health_router",
    "ignore_regions_router",
    "regressions_router",
    "review_router",
    "thresholds_router",
]

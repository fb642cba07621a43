"""
FastAPI application - Main API server

Provides REST endpoints for screenshot comparison, regression review,
baselines and comparison configuration.
"""

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from regression_toolkit import __version__
from regression_toolkit.api.routers import (
    baselines_router,
    diff_router,
    health_router,
    ignore_regions_router,
    regressions_router,
    review_router,
    thresholds_router,
)
from regression_toolkit.core.config import get_settings
from regression_toolkit.startup.lifecycle import lifespan

logger = logging.getLogger(__name__)


def create_app() -> FastAPI:
    """Build the FastAPI application with all routers registered"""
    application = FastAPI(
        title="Visual Regression Toolkit API",
        description="REST API for screenshot comparison and visual regression review",
        version=__version__,
        lifespan=lifespan,
    )

    # Health check router first
    application.include_router(health_router)

    application.include_router(diff_router)
    application.include_router(regressions_router)
    application.include_router(review_router)
    application.include_router(baselines_router)
    application.include_router(ignore_regions_router)
    application.include_router(thresholds_router)

    application.add_middleware(
        CORSMiddleware,
        allow_origins=get_settings().cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    return application


app = create_app()

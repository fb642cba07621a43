"""
Lifecycle management

Orchestrates application startup and shutdown using FastAPI's lifespan
context manager pattern.
"""

import logging
from contextlib import asynccontextmanager
from datetime import UTC, datetime

from fastapi import FastAPI

from regression_toolkit.startup.exceptions import StartupError
from regression_toolkit.startup.health import (
    HealthStatus,
    get_health_state,
    set_component_healthy,
    set_component_unhealthy,
)
from regression_toolkit.startup.validators import initialize_database, validate_environment

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    FastAPI lifespan context manager

    Runs startup in phases:
    1. Environment (CRITICAL)
    2. Database (CRITICAL)
    3. Application services (CRITICAL)

    Services already placed on app.state (tests) are kept as they are.
    """
    health = get_health_state()
    start_time = datetime.now(UTC)

    logger.info("=" * 60)
    logger.info("Visual Regression Toolkit - Startup")
    logger.info("=" * 60)

    try:
        logger.info("Phase 1/3: Environment Validation")
        try:
            await validate_environment()
            set_component_healthy("environment", "Directories writable")
        except StartupError as e:
            logger.error(f"[ERROR] {e}")
            set_component_unhealthy("environment", str(e))
            raise

        logger.info("Phase 2/3: Database Initialization")
        try:
            await initialize_database()
            set_component_healthy("database", "Database operational")
        except StartupError as e:
            logger.error(f"[ERROR] {e}")
            set_component_unhealthy("database", str(e))
            raise

        logger.info("Phase 3/3: Initializing Application Services")
        if not hasattr(app.state, "services"):
            from regression_toolkit.api.services import AppServices

            app.state.services = AppServices.create()
        set_component_healthy("services", "Application services initialized")

        health.ready = True
        health.startup_time = datetime.now(UTC)
        if health.errors:
            health.overall = HealthStatus.UNHEALTHY
        elif health.warnings:
            health.overall = HealthStatus.DEGRADED
        else:
            health.overall = HealthStatus.HEALTHY

        elapsed = (datetime.now(UTC) - start_time).total_seconds()
        logger.info(f"[OK] System Ready (Startup time: {elapsed:.2f}s)")

        yield

    except Exception as e:
        if not isinstance(e, StartupError):
            logger.error(f"[ERROR] Unexpected startup error: {e}", exc_info=True)
        health.overall = HealthStatus.UNHEALTHY
        health.ready = False
        raise

    finally:
        logger.info("[STOP] Shutting down...")
        if hasattr(app.state, "services"):
            try:
                await app.state.services.cleanup()
            except Exception as e:
                logger.warning(f"[WARN] Service cleanup warning: {e}")
        health.ready = False
        logger.info("[OK] Shutdown complete")

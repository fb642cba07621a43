"""
Health check endpoints

- GET /health - Overall health check (healthy/degraded/unhealthy)
- GET /health/live - Liveness check (always 200 if running)
- GET /health/ready - Readiness check (200 if ready, 503 if not)
- GET /health/detailed - Component-level health information
"""

from typing import Any

from fastapi import APIRouter, Response

from regression_toolkit import __version__
from regression_toolkit.startup.health import HealthStatus, get_health_state

router = APIRouter(prefix="/health", tags=["health"])


@router.get("")
async def health_check(response: Response) -> dict[str, Any]:
    """
    Overall health check

    Returns:
        200: System is healthy or degraded (can serve requests)
        503: System is unhealthy (cannot serve requests)
    """
    health = get_health_state()

    if health.overall == HealthStatus.UNHEALTHY:
        response.status_code = 503

    return {
        "status": health.overall.value,
        "ready": health.ready,
        "version": __version__,
        "errors": health.errors or None,
        "warnings": health.warnings or None,
    }


@router.get("/live")
async def liveness_check() -> dict[str, str]:
    """Liveness check, always 200 while the process is running"""
    return {"status": "alive"}


@router.get("/ready")
async def readiness_check(response: Response) -> dict[str, Any]:
    """Readiness check: 503 until startup has finished successfully"""
    health = get_health_state()

    if not health.ready or health.overall == HealthStatus.UNHEALTHY:
        response.status_code = 503

    return {
        "ready": health.ready,
        "status": health.overall.value,
    }


@router.get("/detailed")
async def detailed_health(response: Response) -> dict[str, Any]:
    """Detailed health check with component-level information"""
    health = get_health_state()

    if health.overall == HealthStatus.UNHEALTHY:
        response.status_code = 503

    return health.to_dict()

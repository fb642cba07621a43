"""
Startup module - Application initialization and lifecycle management
"""

from regression_toolkit.startup.health import (
    ComponentHealth,
    HealthStatus,
    SystemHealth,
    get_health_state,
    reset_health_state,
    set_component_degraded,
    set_component_healthy,
    set_component_unhealthy,
)
from regression_toolkit.startup.lifecycle import lifespan

__all__ = [
    "HealthStatus",
    "ComponentHealth",
    "SystemHealth",
    "get_health_state",
    "reset_health_state",
    "set_component_healthy",
    "set_component_unhealthy",
    "set_component_degraded",
    "lifespan",
]

"""
Health state management

Tracks component health and overall readiness for the health endpoints.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum


class HealthStatus(str, Enum):
    """Health status for system components"""

    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"
    UNKNOWN = "unknown"


@dataclass
class ComponentHealth:
    """
    Health information for a single component

    Attributes:
        status: Health status (healthy/degraded/unhealthy/unknown)
        message: Human-readable status message
        last_checked: When health was last checked
        error: Error message if unhealthy or degraded
    """

    status: HealthStatus
    message: str = ""
    last_checked: datetime = field(default_factory=lambda: datetime.now(UTC))
    error: str | None = None

    def to_dict(self) -> dict:
        return {
            "status": self.status.value,
            "message": self.message,
            "last_checked": self.last_checked.isoformat(),
            "error": self.error,
        }


def _unknown() -> ComponentHealth:
    return ComponentHealth(HealthStatus.UNKNOWN)


@dataclass
class SystemHealth:
    """Overall health plus per-component health"""

    overall: HealthStatus = HealthStatus.UNKNOWN
    ready: bool = False
    startup_time: datetime | None = None

    environment: ComponentHealth = field(default_factory=_unknown)
    database: ComponentHealth = field(default_factory=_unknown)
    services: ComponentHealth = field(default_factory=_unknown)

    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        """Convert to JSON-serializable dict for API responses"""
        return {
            "overall": self.overall.value,
            "ready": self.ready,
            "startup_time": self.startup_time.isoformat() if self.startup_time else None,
            "components": {
                "environment": self.environment.to_dict(),
                "database": self.database.to_dict(),
                "services": self.services.to_dict(),
            },
            "errors": self.errors,
            "warnings": self.warnings,
        }


_health_state = SystemHealth()


def get_health_state() -> SystemHealth:
    return _health_state


def set_component_healthy(component: str, message: str = "") -> None:
    setattr(_health_state, component, ComponentHealth(HealthStatus.HEALTHY, message))


def set_component_unhealthy(component: str, error: str) -> None:
    setattr(_health_state, component, ComponentHealth(HealthStatus.UNHEALTHY, error=error))
    _health_state.errors.append(f"{component}: {error}")


def set_component_degraded(component: str, warning: str) -> None:
    setattr(_health_state, component, ComponentHealth(HealthStatus.DEGRADED, error=warning))
    _health_state.warnings.append(f"{component}: {warning}")


def reset_health_state() -> None:
    """Reset health state to initial values (for testing)"""
    global _health_state
    _health_state = SystemHealth()

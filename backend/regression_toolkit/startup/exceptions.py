"""
Startup-specific exceptions

Provides clear error messages with recovery instructions for startup failures.
"""

from regression_toolkit.core.exceptions import ToolkitError


class StartupError(ToolkitError):
    """Base exception for startup failures"""

    def __init__(self, message: str, component: str, recovery_hint: str = ""):
        super().__init__(message, component=component, recovery_hint=recovery_hint)


class EnvironmentValidationError(StartupError):
    """Data or diff directory is unusable"""

    def __init__(self, message: str, recovery_hint: str = ""):
        super().__init__(message, component="Environment", recovery_hint=recovery_hint)


class DatabaseInitError(StartupError):
    """Database initialization failed"""

    def __init__(self, message: str, recovery_hint: str = ""):
        super().__init__(
            message,
            component="Database",
            recovery_hint=recovery_hint or "Check database file permissions and disk space",
        )

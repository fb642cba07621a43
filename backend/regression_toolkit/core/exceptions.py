"""
Base exception hierarchy

Provides a consistent exception structure across the toolkit
with clear error messages and recovery hints.
"""


class ToolkitError(Exception):
    """
    Base exception for all toolkit errors

    Attributes:
        message: Error message
        component: Component that raised the error
        recovery_hint: Optional hint for recovery
    """

    def __init__(self, message: str, component: str = "", recovery_hint: str = ""):
        self.message = message
        self.component = component
        self.recovery_hint = recovery_hint
        super().__init__(message)

    def __str__(self) -> str:
        msg = super().__str__()
        if self.component:
            msg = f"[{self.component}] {msg}"
        if self.recovery_hint:
            msg += f"\nRecovery: {self.recovery_hint}"
        return msg


class ConfigurationError(ToolkitError):
    """Configuration-related errors"""

    def __init__(self, message: str, recovery_hint: str = ""):
        super().__init__(
            message,
            component="Configuration",
            recovery_hint=recovery_hint or "Check your .env file and settings",
        )


class ValidationError(ToolkitError):
    """Validation errors (parameters, input, etc.)"""

    def __init__(self, message: str, recovery_hint: str = ""):
        super().__init__(message, component="Validation", recovery_hint=recovery_hint)


class ResourceNotFoundError(ToolkitError):
    """Resource not found errors"""

    def __init__(self, resource: str, identifier: str, recovery_hint: str = ""):
        self.resource = resource
        self.identifier = identifier
        super().__init__(
            f"{resource} not found: {identifier}",
            component="Resource",
            recovery_hint=recovery_hint,
        )


# ============================================================
# Comparison errors (terminal for a single pair, never retried)
# ============================================================


class ComparisonError(ToolkitError):
    """Base class for failures intrinsic to one screenshot comparison"""

    def __init__(self, message: str, recovery_hint: str = ""):
        super().__init__(message, component="Comparator", recovery_hint=recovery_hint)


class DimensionMismatchError(ComparisonError):
    """
    Baseline and current images have different sizes

    Attributes:
        baseline_size: (width, height) of the baseline image
        current_size: (width, height) of the current image
    """

    def __init__(self, baseline_size: tuple[int, int], current_size: tuple[int, int]):
        self.baseline_size = baseline_size
        self.current_size = current_size
        super().__init__(
            f"Image dimensions differ: baseline={baseline_size[0]}x{baseline_size[1]}, "
            f"current={current_size[0]}x{current_size[1]}",
            recovery_hint="Capture both screenshots at the same viewport size",
        )


class DecodeFailureError(ComparisonError):
    """Image bytes are corrupt or in an unsupported format"""

    def __init__(self, message: str, reference: str | None = None):
        self.reference = reference
        location = f" ({reference})" if reference else ""
        super().__init__(f"Failed to decode image{location}: {message}")


class FetchFailureError(ToolkitError):
    """Screenshot could not be fetched from storage or the network"""

    def __init__(self, reference: str, message: str, attempts: int = 1):
        self.reference = reference
        self.attempts = attempts
        super().__init__(
            f"Failed to fetch screenshot {reference} after {attempts} attempt(s): {message}",
            component="Fetcher",
            recovery_hint="Check the screenshot still exists and the storage service is reachable",
        )


# ============================================================
# Registry / ledger errors
# ============================================================


class BaselineMissingError(ToolkitError):
    """
    Suite has no baseline run

    This is an expected state ("nothing to compare against yet"); the
    orchestrator turns it into an unsuccessful report instead of raising.
    """

    def __init__(self, suite_id: str):
        self.suite_id = suite_id
        super().__init__(
            f"No baseline set for suite {suite_id}",
            component="Baseline",
            recovery_hint="Mark an accepted run as the baseline for this suite",
        )


class InvalidStatusError(ValidationError):
    """Review status outside the allowed set"""

    def __init__(self, status: object, allowed: list[str]):
        self.status = status
        self.allowed = allowed
        super().__init__(
            f"Invalid regression status: {status!r}",
            recovery_hint=f"Use one of: {', '.join(allowed)}",
        )


class RegressionNotFoundError(ResourceNotFoundError):
    """No regression with the given id"""

    def __init__(self, regression_id: str):
        self.regression_id = regression_id
        super().__init__("Regression", regression_id)


class RunNotFoundError(ResourceNotFoundError):
    """No test run with the given id"""

    def __init__(self, run_id: str):
        self.run_id = run_id
        super().__init__("Test run", run_id)


class PersistenceFailureError(ToolkitError):
    """Writing to the ledger or registry failed"""

    def __init__(self, message: str, recovery_hint: str = ""):
        super().__init__(
            message,
            component="Storage",
            recovery_hint=recovery_hint or "Check database file permissions and disk space",
        )

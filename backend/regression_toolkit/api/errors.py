"""
Standardized error handling for API

Provides consistent error responses and an error handling decorator that maps
toolkit exceptions to HTTP status codes.
"""

import logging
from collections.abc import Callable
from enum import Enum
from functools import wraps
from typing import Any

from fastapi import HTTPException
from pydantic import BaseModel

from regression_toolkit.core.exceptions import (
    DecodeFailureError,
    DimensionMismatchError,
    FetchFailureError,
    InvalidStatusError,
    PersistenceFailureError,
    RegressionNotFoundError,
    ResourceNotFoundError,
    RunNotFoundError,
    ValidationError,
)

logger = logging.getLogger(__name__)


class ErrorCode(str, Enum):
    """Standard error codes for API responses"""

    REGRESSION_NOT_FOUND = "regression_not_found"
    RUN_NOT_FOUND = "run_not_found"
    RESOURCE_NOT_FOUND = "resource_not_found"
    INVALID_STATUS = "invalid_status"
    VALIDATION_ERROR = "validation_error"
    DIMENSION_MISMATCH = "dimension_mismatch"
    DECODE_FAILURE = "decode_failure"
    FETCH_FAILURE = "fetch_failure"
    PERSISTENCE_FAILURE = "persistence_failure"
    INTERNAL_ERROR = "internal_error"
    TIMEOUT_ERROR = "timeout_error"


class ErrorResponse(BaseModel):
    """Standard error response format"""

    error: ErrorCode
    message: str
    recovery_hint: str | None = None
    details: dict[str, Any] | None = None


def create_error_response(
    code: ErrorCode,
    message: str,
    status_code: int = 400,
    details: dict | None = None,
    recovery_hint: str | None = None,
) -> HTTPException:
    """
    Create standardized HTTPException

    Args:
        code: Error code enum value
        message: Human-readable error message
        status_code: HTTP status code
        details: Optional additional error details
        recovery_hint: Optional hint for how to resolve the error

    Example:
        raise create_error_response(
            ErrorCode.REGRESSION_NOT_FOUND,
            "Regression 'abc' not found",
            404,
            {"id": "abc"},
        )
    """
    return HTTPException(
        status_code=status_code,
        detail=ErrorResponse(
            error=code,
            message=message,
            recovery_hint=recovery_hint,
            details=details,
        ).model_dump(mode="json"),
    )


# Most specific classes first
_ERROR_MAP: list[tuple[type[Exception], ErrorCode, int]] = [
    (InvalidStatusError, ErrorCode.INVALID_STATUS, 400),
    (ValidationError, ErrorCode.VALIDATION_ERROR, 400),
    (RegressionNotFoundError, ErrorCode.REGRESSION_NOT_FOUND, 404),
    (RunNotFoundError, ErrorCode.RUN_NOT_FOUND, 404),
    (ResourceNotFoundError, ErrorCode.RESOURCE_NOT_FOUND, 404),
    (DimensionMismatchError, ErrorCode.DIMENSION_MISMATCH, 422),
    (DecodeFailureError, ErrorCode.DECODE_FAILURE, 422),
    (FetchFailureError, ErrorCode.FETCH_FAILURE, 502),
    (PersistenceFailureError, ErrorCode.PERSISTENCE_FAILURE, 500),
]


def _details(error: Exception) -> dict[str, Any] | None:
    if isinstance(error, DimensionMismatchError):
        return {
            "baseline": {"width": error.baseline_size[0], "height": error.baseline_size[1]},
            "current": {"width": error.current_size[0], "height": error.current_size[1]},
        }
    if isinstance(error, InvalidStatusError):
        return {"allowed": error.allowed}
    return None


def api_exception_handler(operation: str):
    """
    Decorator for consistent error handling in API routes

    Logs exceptions and converts them to standardized error responses.
    Re-raises HTTPExceptions as-is.

    Args:
        operation: Description of the operation for logging

    Example:
        @router.post("/review")
        @api_exception_handler("review_regression")
        async def review_regression(request: ReviewRequest):
            ...
    """

    def decorator(func: Callable) -> Callable:
        @wraps(func)
        async def wrapper(*args, **kwargs):
            try:
                return await func(*args, **kwargs)
            except HTTPException:
                raise
            except TimeoutError as e:
                logger.error(f"{operation} - Timeout: {e}")
                raise create_error_response(
                    ErrorCode.TIMEOUT_ERROR,
                    f"Operation timed out: {e}",
                    504,
                    recovery_hint="Retry with a longer timeout or fewer screenshots",
                )
            except Exception as e:
                for error_type, code, status_code in _ERROR_MAP:
                    if isinstance(e, error_type):
                        message = getattr(e, "message", str(e))
                        if status_code >= 500:
                            logger.error(f"{operation} failed: {message}")
                        else:
                            logger.warning(f"{operation} - {code.value}: {message}")
                        raise create_error_response(
                            code,
                            message,
                            status_code,
                            details=_details(e),
                            recovery_hint=getattr(e, "recovery_hint", None) or None,
                        )

                logger.exception(f"{operation} failed: {e}")
                raise create_error_response(
                    ErrorCode.INTERNAL_ERROR,
                    f"{operation} failed: {e}",
                    500,
                    recovery_hint=getattr(e, "recovery_hint", None)
                    or "Check the application logs for more details",
                )

        return wrapper

    return decorator

"""
Custom Exceptions for SellMate

Hierarchical exception classes surfaced to the API layer as typed failures.
"""

from typing import Optional, Dict, Any


class SellMateError(Exception):
    """Base exception for all SellMate errors."""

    default_code = "SELLMATE_ERROR"

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        original_error: Optional[Exception] = None,
        code: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.original_error = original_error
        self.code = code or self.default_code

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for API responses."""
        return {
            "error": self.__class__.__name__,
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }


class ValidationError(SellMateError):
    """Raised when input validation fails."""

    default_code = "VALIDATION_ERROR"


class NotFoundError(SellMateError):
    """Raised when a resource does not resolve under the given user."""

    default_code = "NOT_FOUND"

    def __init__(
        self,
        message: str,
        resource: Optional[str] = None,
        resource_id: Optional[str] = None,
        code: Optional[str] = None,
    ):
        details = {}
        if resource:
            details["resource"] = resource
        if resource_id:
            details["resource_id"] = resource_id
        super().__init__(message, details, code=code)


class LimitExceededError(SellMateError):
    """Raised when usage would exceed a plan's capped limit."""

    default_code = "LIMIT_EXCEEDED"

    def __init__(
        self,
        message: str,
        metric: Optional[str] = None,
        limit: Optional[int] = None,
        current: Optional[float] = None,
    ):
        details: Dict[str, Any] = {}
        if metric:
            details["metric"] = metric
        if limit is not None:
            details["limit"] = limit
        if current is not None:
            details["current"] = current
        super().__init__(message, details)


class InvalidTransitionError(SellMateError):
    """Raised when a requested status change is not permitted."""

    default_code = "INVALID_STATUS"

    def __init__(
        self,
        message: str,
        current: Optional[str] = None,
        requested: Optional[str] = None,
    ):
        details = {}
        if current:
            details["current"] = current
        if requested:
            details["requested"] = requested
        super().__init__(message, details)


class ConfigurationError(SellMateError):
    """Raised when configuration is missing or invalid."""

    default_code = "CONFIGURATION_ERROR"

    def __init__(
        self,
        message: str,
        missing_keys: Optional[list] = None,
        original_error: Optional[Exception] = None,
    ):
        details = {}
        if missing_keys:
            details["missing_keys"] = missing_keys
        super().__init__(message, details, original_error)

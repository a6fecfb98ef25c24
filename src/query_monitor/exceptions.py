"""
Custom exception classes for performance monitoring.
Read operations raise these; mutation operations never raise.
"""

from typing import Any

from .constants import NOT_INITIALIZED_MESSAGE


class MonitoringException(Exception):
    """Base exception class for all monitoring exceptions."""

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """
        Initialize base exception.

        Args:
            message: Error message
            error_code: Optional error code for categorization
            details: Optional additional error details
        """
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for API responses."""
        return {
            "error": self.error_code,
            "message": self.message,
            "details": self.details,
        }


class ConfigurationException(MonitoringException):
    """Raised when monitoring configuration is invalid."""

    pass


class NotInitializedError(MonitoringException):
    """Raised when the monitoring engine was never constructed."""

    def __init__(self, message: str = NOT_INITIALIZED_MESSAGE, **kwargs: Any) -> None:
        super().__init__(message, **kwargs)


class MonitoringOperationError(MonitoringException):
    """Raised when computing a monitoring view fails unexpectedly."""

    def __init__(self, operation: str, reason: str, **kwargs: Any) -> None:
        """
        Initialize operation error.

        Args:
            operation: Human readable operation name, e.g. "get query performance"
            reason: Message of the underlying failure
            **kwargs: Additional arguments
        """
        self.operation = operation
        self.reason = reason
        details = kwargs.pop("details", {})
        details["operation"] = operation
        super().__init__(f"Failed to {operation}: {reason}", details=details, **kwargs)

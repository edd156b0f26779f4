"""
Custom exceptions for pace-duel.

Every error raised to callers carries a message, an error code for API
responses, the HTTP status it maps to, and optional details.
"""

from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    """Error codes for consistent API error responses."""

    INTERNAL_ERROR = "INTERNAL_ERROR"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    NOT_FOUND = "NOT_FOUND"
    CONFLICT = "CONFLICT"
    FORBIDDEN = "FORBIDDEN"
    ACTIVITY_SOURCE_ERROR = "ACTIVITY_SOURCE_ERROR"


class PaceDuelError(Exception):
    """
    Base exception for all pace-duel errors.

    Attributes:
        message: Human-readable error message
        code: Error code from ErrorCode enum
        status_code: HTTP status code for API responses
        details: Optional dictionary with additional error details
    """

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        status_code: int = 500,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for API response."""
        result: dict[str, Any] = {
            "error": {
                "code": self.code.value,
                "message": self.message,
            }
        }
        if self.details:
            result["error"]["details"] = self.details
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(code={self.code.value}, message={self.message!r})"


class ValidationError(PaceDuelError):
    """Bad input: date ranges, goals, timezones. Nothing was changed."""

    def __init__(
        self,
        message: str,
        field: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        error_details = details or {}
        if field:
            error_details["field"] = field
        super().__init__(
            message=message,
            code=ErrorCode.VALIDATION_ERROR,
            status_code=400,
            details=error_details,
        )


class PermissionDeniedError(PaceDuelError):
    """The acting user may not perform this action on the resource."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(
            message=message,
            code=ErrorCode.FORBIDDEN,
            status_code=403,
            details=details,
        )


class NotFoundError(PaceDuelError):
    """Unknown challenge id, invite code, or user."""

    def __init__(
        self,
        resource_type: str,
        resource_id: Any,
        message: str | None = None,
    ) -> None:
        super().__init__(
            message=message or f"{resource_type} not found: {resource_id}",
            code=ErrorCode.NOT_FOUND,
            status_code=404,
            details={"resource_type": resource_type, "resource_id": str(resource_id)},
        )


class ConflictError(PaceDuelError):
    """The operation is not allowed in the challenge's current state."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(
            message=message,
            code=ErrorCode.CONFLICT,
            status_code=409,
            details=details,
        )


class ActivitySourceError(PaceDuelError):
    """The external activity source failed (unreachable, rate limited, rejected)."""

    def __init__(
        self,
        message: str,
        source: str | None = None,
        retry_after: int | None = None,
    ) -> None:
        details: dict[str, Any] = {}
        if source:
            details["source"] = source
        if retry_after is not None:
            details["retry_after"] = retry_after
        super().__init__(
            message=message,
            code=ErrorCode.ACTIVITY_SOURCE_ERROR,
            status_code=502,
            details=details,
        )

"""
Custom exception classes for the course Mini-App content API.

Exceptions follow the fail-fast philosophy: the store layer and the
content service raise with clear context, and only the sweep machinery
contains failures (a missed sweep is retried by the next one).

Hierarchy:
    Exception
    +-- MiniAppBaseError (base for all domain errors)
    |   +-- ContentNotFoundError
    |   +-- AuthenticationRequiredError
    |   +-- AccessDeniedError
    +-- ValidationError (ValueError)
    |   +-- MalformedRowError
    +-- DatabaseError
    |   +-- StoreTimeoutError
    +-- ConfigurationError
"""

from typing import Any, Dict, Optional


# =============================================================================
# BASE EXCEPTION
# =============================================================================


class MiniAppBaseError(Exception):
    """Base exception for all domain errors."""

    pass


# =============================================================================
# CORE EXCEPTIONS
# =============================================================================


class ValidationError(ValueError):
    """Raised when input validation fails."""

    pass


class DatabaseError(Exception):
    """Raised when a Content Store operation fails.

    Attributes:
        operation: Name of the store operation that failed.
    """

    def __init__(self, message: str, operation: Optional[str] = None):
        self.operation = operation
        super().__init__(message)


class StoreTimeoutError(DatabaseError):
    """Raised when a Content Store call does not answer in time.

    Attributes:
        operation: Name of the store operation that timed out.
        timeout: Timeout duration in seconds.
    """

    def __init__(self, operation: str, timeout: float):
        self.timeout = timeout
        super().__init__(
            f"Store operation '{operation}' timed out after {timeout} seconds",
            operation=operation,
        )


class ConfigurationError(Exception):
    """Raised when system configuration is invalid."""

    pass


# =============================================================================
# ROW PARSING
# =============================================================================


class MalformedRowError(ValidationError):
    """Raised when a row returned by the store does not fit the schema.

    Attributes:
        row_id: Identifier of the offending row (``None`` if absent).
        field: Name of the field that failed to parse.
        value: The raw value found in the row.
    """

    def __init__(self, row_id: Optional[str], field: str, value: Any):
        self.row_id = row_id
        self.field = field
        self.value = value
        super().__init__(
            f"Row {row_id!r} has malformed {field}: {value!r}"
        )


# =============================================================================
# REQUEST-LEVEL EXCEPTIONS
# =============================================================================


class ContentNotFoundError(MiniAppBaseError):
    """Raised when a content item does not exist."""

    def __init__(self, content_id: str):
        self.content_id = content_id
        super().__init__(f"Content {content_id} not found")


class AuthenticationRequiredError(MiniAppBaseError):
    """Raised when an admin route is called without a Telegram ID."""

    pass


class AccessDeniedError(MiniAppBaseError):
    """Raised when the caller is not an administrator."""

    pass


def error_payload(error: str, details: Optional[str] = None) -> Dict[str, Any]:
    """Build the JSON error body returned by the HTTP layer."""
    payload: Dict[str, Any] = {"error": error}
    if details:
        payload["details"] = details
    return payload


# =============================================================================
# PUBLIC API
# =============================================================================

__all__ = [
    # Base
    "MiniAppBaseError",
    # Core
    "ValidationError",
    "DatabaseError",
    "StoreTimeoutError",
    "ConfigurationError",
    # Row parsing
    "MalformedRowError",
    # Request-level
    "ContentNotFoundError",
    "AuthenticationRequiredError",
    "AccessDeniedError",
    "error_payload",
]

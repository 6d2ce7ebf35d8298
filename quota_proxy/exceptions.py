"""
Custom exception classes for the GPT quota proxy.

Every exception maps to one of the three error kinds the API exposes.
All exceptions inherit from QuotaProxyException so the exception handlers
can format them consistently.

Exception Hierarchy:
    QuotaProxyException (base)
    ├── AuthenticationError (401, UNAUTHENTICATED)
    ├── InvalidArgumentError (400, INVALID_ARGUMENT)
    └── InternalError (500, INTERNAL)
        ├── UpstreamError
        ├── TierLookupError
        └── UsageStoreError
            └── TransactionConflictError

Reaching the quota is not an error: it is returned as a normal
``limitReached`` response.
"""

from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(str, Enum):
    """Machine-readable error codes returned in API error bodies."""

    UNAUTHENTICATED = "UNAUTHENTICATED"
    INVALID_ARGUMENT = "INVALID_ARGUMENT"
    INTERNAL = "INTERNAL"


class QuotaProxyException(Exception):
    """
    Base exception class for all quota proxy errors.

    Attributes:
        message: Human-readable error message (sanitized before display).
        error_code: Machine-readable error code from ErrorCode enum.
        status_code: HTTP status code to return.
        details: Additional context about the error (optional).
        internal_message: Detailed message for logging (not exposed to clients).
    """

    status_code: int = 500
    default_error_code: ErrorCode = ErrorCode.INTERNAL
    default_message: str = "An unexpected error occurred"

    def __init__(
        self,
        message: Optional[str] = None,
        error_code: Optional[ErrorCode] = None,
        details: Optional[Dict[str, Any]] = None,
        internal_message: Optional[str] = None,
    ):
        self.message = message or self.default_message
        self.error_code = error_code or self.default_error_code
        self.details = details or {}
        self.internal_message = internal_message
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert exception to a dictionary for API response.

        Returns:
            Dictionary with error information suitable for JSON serialization.
        """
        response = {
            "success": False,
            "error": self.message,
            "error_code": self.error_code.value,
        }
        if self.details:
            response["details"] = self.details
        return response

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"error_code={self.error_code.value!r}, "
            f"status_code={self.status_code})"
        )


# =============================================================================
# Authentication Errors (401 Unauthorized)
# =============================================================================

class AuthenticationError(QuotaProxyException):
    """Raised when the request carries no verified caller identity."""

    status_code = 401
    default_error_code = ErrorCode.UNAUTHENTICATED
    default_message = "Unauthenticated"


# =============================================================================
# Invalid Argument Errors (400 Bad Request)
# =============================================================================

class InvalidArgumentError(QuotaProxyException):
    """
    Raised when the request body is malformed.

    Only the shape the proxy itself relies on is checked. Message contents
    are validated by the upstream API.
    """

    status_code = 400
    default_error_code = ErrorCode.INVALID_ARGUMENT
    default_message = "Invalid request data"

    def __init__(
        self,
        message: Optional[str] = None,
        field: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        internal_message: Optional[str] = None,
    ):
        details = details or {}
        if field:
            details["field"] = field

        super().__init__(
            message=message,
            details=details,
            internal_message=internal_message,
        )


# =============================================================================
# Internal Errors (500 Internal Server Error)
# =============================================================================

class InternalError(QuotaProxyException):
    """
    Raised for any failure the caller cannot fix.

    The base for upstream, store and tier lookup failures.
    """

    status_code = 500
    default_error_code = ErrorCode.INTERNAL
    default_message = "Internal error"

    def __init__(
        self,
        message: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        internal_message: Optional[str] = None,
        original_error: Optional[BaseException] = None,
    ):
        self.original_error = original_error

        super().__init__(
            message=message,
            details=details,
            internal_message=internal_message or (str(original_error) if original_error else None),
        )


class UpstreamError(InternalError):
    """
    Raised when the upstream LLM call fails.

    Covers non-2xx responses, transport errors, timeouts and malformed
    responses. The message is returned to the caller for diagnostics.
    """

    default_message = "LLM call failed"

    def __init__(
        self,
        message: Optional[str] = None,
        status_code: Optional[int] = None,
        original_error: Optional[BaseException] = None,
    ):
        self.upstream_status = status_code
        details = {"service": "openai"}
        super().__init__(
            message=message,
            details=details,
            original_error=original_error,
        )


class TierLookupError(InternalError):
    """Raised when the subscription tier of a user cannot be determined."""

    default_message = "Could not determine subscription tier"


class UsageStoreError(InternalError):
    """
    Raised when the usage store cannot be read or written.

    Store details are never exposed to clients, only logged.
    """

    default_message = "Usage could not be determined"

    def __init__(
        self,
        message: Optional[str] = None,
        operation: Optional[str] = None,
        original_error: Optional[BaseException] = None,
        internal_message: Optional[str] = None,
    ):
        super().__init__(
            message=message,
            internal_message=internal_message or (
                f"Usage store operation '{operation}' failed: {original_error}"
                if operation and original_error
                else None
            ),
            original_error=original_error,
        )


class TransactionConflictError(UsageStoreError):
    """Raised when an optimistic transaction keeps conflicting past its retry budget."""

    default_message = "Usage is being updated concurrently, please retry"

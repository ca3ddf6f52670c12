"""Custom exceptions for the secure tool gateway.

Provides a closed hierarchy of errors. Only ``safe_message`` (and an
optional HTTP-like status) is ever exposed to callers; ``details`` is
for internal logging and never leaves the process.
"""

from enum import Enum
from typing import Any, Optional


class ErrorKind(str, Enum):
    """Classification of a gateway error."""
    VALIDATION = "validation"
    SECURITY = "security"
    TRANSPORT = "transport"
    SERVER = "server"


# ==================== Safe messages ====================

MSG_AUTHENTICATION_FAILED = "Authentication failed. Please check your API key."
MSG_PERMISSION_DENIED = "Access denied. Insufficient permissions."
MSG_NOT_FOUND = "The requested resource was not found."
MSG_UPSTREAM_RATE_LIMITED = "Rate limit exceeded. Please try again later."
MSG_SERVER_ERROR = "Server error. Please try again later."
MSG_REQUEST_FAILED = "Request failed. Please check your input and try again."


class SecureError(Exception):
    """Base exception for all gateway errors."""

    kind: ErrorKind = ErrorKind.SERVER
    retryable: bool = True

    def __init__(
        self,
        message: str,
        http_status: Optional[int] = None,
        details: Optional[dict[str, Any]] = None
    ):
        """Initialize the exception.

        Args:
            message: Caller-safe, human-readable error message.
            http_status: Optional HTTP-like status for classification.
            details: Optional internal context, logged but never returned.
        """
        super().__init__(message)
        self.safe_message = message
        self.http_status = http_status
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert to the caller-visible error shape."""
        result: dict[str, Any] = {
            "kind": self.kind.value,
            "message": self.safe_message,
        }
        if self.http_status is not None:
            result["status"] = self.http_status
        return result


class ValidationError(SecureError):
    """Raised when caller input is malformed. Never retried."""

    kind = ErrorKind.VALIDATION
    retryable = False

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        http_status: Optional[int] = None
    ):
        super().__init__(
            message,
            http_status=http_status,
            details={"field": field} if field else None
        )
        self.field = field


class SecurityError(SecureError):
    """Raised on suspicious, oversized, rate-limited or leaking input.

    Never retried automatically.
    """

    kind = ErrorKind.SECURITY
    retryable = False


class TransportError(SecureError):
    """Raised when a downstream request fails in transit or is refused."""

    kind = ErrorKind.TRANSPORT


class ServerError(SecureError):
    """Raised when the downstream service answers with a 5xx status."""

    kind = ErrorKind.SERVER


def is_retryable(error: BaseException) -> bool:
    """Return True if ``error`` may be retried by the outbound client."""
    if isinstance(error, SecureError):
        return error.retryable
    return True

"""Core module for the secure tool gateway.

The pipeline lives in ``core.pipeline`` and the security building blocks
in ``core.security``; only the error taxonomy is re-exported here.
"""

from core.exceptions import (
    ErrorKind,
    SecureError,
    SecurityError,
    ServerError,
    TransportError,
    ValidationError,
    is_retryable,
)

__all__ = [
    "ErrorKind",
    "SecureError",
    "SecurityError",
    "ServerError",
    "TransportError",
    "ValidationError",
    "is_retryable",
]

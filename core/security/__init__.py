"""Security components for the secure tool gateway.

This package provides the secure request pipeline building blocks:

- PatternLibrary: Data-driven token, suspicious-content and key rule tables
- StructuredObjectGuard: Size, depth and prototype-key limits for objects
- SecurityScanner: Rejects injection, traversal and oversized input
- TokenRedactor: Redacts credentials and refuses credential passthrough
- SecureLogger: Logger wrapper with automatic redaction
- SchemaValidator: Per-tool JSON Schema plus domain field rules
- RateLimiter: Fixed-window counters per operation and identifier
- SessionStore: Ephemeral sessions with sliding expiry
- EndpointAllowlist: Closed set of outbound path templates
- RetryPolicy: Exponential backoff with jitter
- ResilientClient: aiohttp client combining all of the above
"""

from core.security.endpoint_allowlist import AllowlistRule, EndpointAllowlist
from core.security.object_guard import StructuredObjectGuard, nesting_depth
from core.security.patterns import (
    DEFAULT_PATTERN_LIBRARY,
    REDACTION_MARKER,
    PatternLibrary,
    RedactionStrategy,
    SuspiciousRule,
    TokenRule,
)
from core.security.rate_limiter import RateLimiter, RateLimitEntry, make_key
from core.security.resilient_client import ResilientClient, classify_status
from core.security.retry_policy import RetryPolicy
from core.security.schema_validator import (
    FieldRule,
    SchemaValidator,
    ToolSchema,
    sanitize_text,
)
from core.security.secure_logger import SecureLogger
from core.security.security_scanner import SecurityScanner
from core.security.session_store import Session, SessionStore
from core.security.token_redactor import TokenRedactor

__all__ = [
    # Patterns
    "DEFAULT_PATTERN_LIBRARY",
    "REDACTION_MARKER",
    "PatternLibrary",
    "RedactionStrategy",
    "SuspiciousRule",
    "TokenRule",
    # Input validation
    "FieldRule",
    "SchemaValidator",
    "ToolSchema",
    "sanitize_text",
    "StructuredObjectGuard",
    "nesting_depth",
    "SecurityScanner",
    # Redaction
    "TokenRedactor",
    "SecureLogger",
    # Throttling and sessions
    "RateLimiter",
    "RateLimitEntry",
    "make_key",
    "Session",
    "SessionStore",
    # Outbound
    "AllowlistRule",
    "EndpointAllowlist",
    "RetryPolicy",
    "ResilientClient",
    "classify_status",
]

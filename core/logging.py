"""Structured logging configuration for the secure tool gateway.

Provides JSON-formatted logging with a per-invocation correlation ID
(request_id). Output goes to stderr so that stdout stays free for the
tool protocol.
"""

import logging
import secrets
import string
import sys
import time
from contextvars import ContextVar
from typing import Any, Optional

from pythonjsonlogger import jsonlogger


# Context variable for storing the current request_id across async operations
_request_id_context: ContextVar[Optional[str]] = ContextVar(
    "request_id", default=None
)


def get_request_id() -> Optional[str]:
    """Get the current request_id from context."""
    return _request_id_context.get()


def set_request_id(request_id: Optional[str]) -> None:
    """Set the request_id in context for the current async task.

    Args:
        request_id: The request_id to set, or None to clear.
    """
    _request_id_context.set(request_id)


_BASE36_DIGITS = string.digits + string.ascii_lowercase


def to_base36(number: int) -> str:
    """Encode a non-negative integer in lowercase base 36."""
    if number < 0:
        raise ValueError("number must be non-negative")
    if number == 0:
        return "0"
    digits = []
    while number:
        number, remainder = divmod(number, 36)
        digits.append(_BASE36_DIGITS[remainder])
    return "".join(reversed(digits))


def generate_request_id() -> str:
    """Create a correlation id of the form ``req_<base36 ms>_<hex>``."""
    return f"req_{to_base36(int(time.time() * 1000))}_{secrets.token_hex(6)}"


class CorrelationIdFilter(logging.Filter):
    """Logging filter that adds the correlation ID to log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        request_id = get_request_id()
        if request_id is None:
            request_id = getattr(record, "request_id", None)

        record.request_id = request_id or "N/A"
        return True


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """JSON formatter with service and correlation fields."""

    def __init__(
        self,
        *args: Any,
        service_name: str = "secure-tool-gateway",
        **kwargs: Any
    ):
        super().__init__(*args, **kwargs)
        self.service_name = service_name

    def add_fields(
        self,
        log_record: dict[str, Any],
        record: logging.LogRecord,
        message_dict: dict[str, Any]
    ) -> None:
        """Add custom fields to the log record.

        Args:
            log_record: The dict that will be serialized to JSON.
            record: The original LogRecord.
            message_dict: Dict from the log message if it was a dict.
        """
        super().add_fields(log_record, record, message_dict)

        log_record["time"] = log_record.pop("asctime", None) or self.formatTime(record)
        log_record["level"] = record.levelname
        log_record["logger"] = record.name
        log_record["service"] = self.service_name

        request_id = getattr(record, "request_id", None)
        if request_id and request_id != "N/A":
            log_record["request_id"] = request_id

        if record.exc_info:
            log_record["exception"] = self.formatException(record.exc_info)

        log_record.pop("levelname", None)
        log_record.pop("name", None)


class TextFormatter(logging.Formatter):
    """Text formatter with correlation ID support for development."""

    def format(self, record: logging.LogRecord) -> str:
        request_id = getattr(record, "request_id", None)
        if request_id and request_id != "N/A":
            original_msg = record.msg
            record.msg = f"[request_id={request_id}] {original_msg}"
            result = super().format(record)
            record.msg = original_msg
            return result
        return super().format(record)


def configure_logging(
    level: str = "INFO",
    fmt: str = "json",
    service_name: str = "secure-tool-gateway"
) -> logging.Logger:
    """Configure structured logging for the gateway.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        fmt: Log format ('json' or 'text').
        service_name: Service name for log identification.

    Returns:
        The root logger configured with the specified settings.
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(log_level)

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(log_level)
    handler.addFilter(CorrelationIdFilter())

    if fmt == "json":
        formatter: logging.Formatter = CustomJsonFormatter(
            "%(asctime)s %(name)s %(levelname)s %(message)s",
            service_name=service_name
        )
    else:
        formatter = TextFormatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        )

    handler.setFormatter(formatter)
    root_logger.addHandler(handler)

    # Reduce noise from third-party libraries
    logging.getLogger("aiohttp").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)

    return root_logger


class LogContext:
    """Context manager for setting request_id during a block of code.

    Usage:
        with LogContext(request_id="req_abc"):
            logger.info("This log will include request_id")
    """

    def __init__(self, request_id: Optional[str] = None):
        self.request_id = request_id
        self._token: Any = None

    def __enter__(self) -> "LogContext":
        if self.request_id:
            self._token = _request_id_context.set(self.request_id)
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        if self._token is not None:
            _request_id_context.reset(self._token)
            self._token = None

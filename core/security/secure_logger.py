"""Logging wrapper with automatic token redaction.

This module provides the SecureLogger class that wraps a standard Python
logger so that messages, arguments, ``extra`` fields and formatted
tracebacks pass through the TokenRedactor before they are emitted.
"""

import logging
import sys
import traceback
from typing import Any, Optional

from core.security.token_redactor import TokenRedactor


class SecureLogger:
    """Logger wrapper that redacts credentials from all output."""

    def __init__(
        self,
        logger: logging.Logger,
        redactor: Optional[TokenRedactor] = None,
    ):
        """Wrap an existing logger with redaction.

        Args:
            logger: The underlying Python logger to wrap.
            redactor: TokenRedactor used on every message.
        """
        self._logger = logger
        self._redactor = redactor or TokenRedactor()

    @property
    def name(self) -> str:
        """Get the name of the underlying logger."""
        return self._logger.name

    def _sanitize_args(self, args: tuple) -> tuple:
        sanitized: list[Any] = []
        for arg in args:
            if isinstance(arg, (str, dict, list, tuple)):
                sanitized.append(self._redactor.redact(arg))
            else:
                sanitized.append(self._redactor.redact_text(str(arg)))
        return tuple(sanitized)

    def _sanitize_kwargs(self, kwargs: dict) -> dict:
        result: dict[str, Any] = {}
        for key, value in kwargs.items():
            if key == "extra" and isinstance(value, dict):
                result[key] = self._redactor.redact(value)
            elif key in ("exc_info", "stack_info", "stacklevel"):
                result[key] = value
            else:
                result[key] = self._redactor.redact(value)
        return result

    def _format_exception_info(self, exc_info: Any) -> Optional[str]:
        """Format an exception and redact the resulting traceback text."""
        if exc_info is True:
            exc_info = sys.exc_info()
        if not exc_info or exc_info[0] is None:
            return None
        formatted = "".join(traceback.format_exception(*exc_info))
        return self._redactor.redact_text(formatted)

    def log(self, level: int, msg: str, *args: Any, **kwargs: Any) -> None:
        """Log at ``level`` with redaction.

        Exception information is formatted here and appended to the
        message, so the raw traceback never reaches a handler.
        """
        if not self._logger.isEnabledFor(level):
            return
        sanitized_msg = self._redactor.redact_text(str(msg))
        sanitized_args = self._sanitize_args(args)
        sanitized_kwargs = self._sanitize_kwargs(kwargs)

        exc_info = sanitized_kwargs.pop("exc_info", None)
        if exc_info:
            formatted = self._format_exception_info(exc_info)
            if formatted:
                sanitized_msg = f"{sanitized_msg}\n{formatted}"

        self._logger.log(level, sanitized_msg, *sanitized_args, **sanitized_kwargs)

    def debug(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self.log(logging.DEBUG, msg, *args, **kwargs)

    def info(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self.log(logging.INFO, msg, *args, **kwargs)

    def warning(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self.log(logging.WARNING, msg, *args, **kwargs)

    def error(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self.log(logging.ERROR, msg, *args, **kwargs)

    def exception(self, msg: str, *args: Any, **kwargs: Any) -> None:
        """Log an error with the current exception's redacted traceback."""
        kwargs.setdefault("exc_info", True)
        self.log(logging.ERROR, msg, *args, **kwargs)

    def isEnabledFor(self, level: int) -> bool:
        return self._logger.isEnabledFor(level)

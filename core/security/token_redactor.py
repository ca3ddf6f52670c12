"""Sensitive-token detection and redaction.

This module provides the TokenRedactor class that detects secrets in
arbitrary nested values. It is used in both directions: to redact tool
output (never raises) and to refuse tool input that would carry a
credential downstream (raises SecurityError).
"""

import logging
from collections.abc import Mapping
from typing import Any, List, Optional

from core.exceptions import SecurityError
from core.security.patterns import (
    DEFAULT_PATTERN_LIBRARY,
    REDACTION_MARKER,
    PatternLibrary,
)


logger = logging.getLogger(__name__)

# Upper bound on content passes per string; one pass normally suffices
MAX_REDACTION_PASSES = 10

# Sensitive-key values this short are not treated as a leaked credential
MIN_SENSITIVE_VALUE_LENGTH = 8


class TokenRedactor:
    """Detects and redacts credentials from nested values.

    Two mechanisms are applied:
    - field-name based: values under a sensitive key are replaced whole
    - content based: token-shaped spans inside strings are replaced,
      keeping any field-name/separator prefix the rule captured

    Structure is always preserved: mappings and sequences are rebuilt
    element-wise, other scalars pass through untouched.
    """

    def __init__(
        self,
        patterns: Optional[PatternLibrary] = None,
        placeholder: str = REDACTION_MARKER,
    ):
        """Initialize the redactor.

        Args:
            patterns: Rule tables. Defaults to the built-in library.
            placeholder: Marker substituted for sensitive values.
        """
        self._patterns = patterns or DEFAULT_PATTERN_LIBRARY
        self._placeholder = placeholder

    @property
    def placeholder(self) -> str:
        return self._placeholder

    def redact(self, value: Any) -> Any:
        """Return a redacted copy of ``value``. Never raises."""
        try:
            return self._redact(value)
        except RecursionError:
            logger.error("Value too deeply nested to redact; replaced as a whole")
            return self._placeholder

    def _redact(self, value: Any) -> Any:
        if value is None:
            return None
        if isinstance(value, str):
            return self.redact_text(value)
        if isinstance(value, Mapping):
            redacted = {}
            for key, item in value.items():
                clean_key = self._redact_key(key)
                if clean_key != key:
                    logger.warning("Token-shaped mapping key detected and redacted")
                    redacted[clean_key] = self._placeholder
                elif self._patterns.is_sensitive_field(key):
                    if item != self._placeholder:
                        logger.warning(f"Sensitive field detected and redacted: {key}")
                    redacted[key] = self._placeholder
                else:
                    redacted[key] = self._redact(item)
            return redacted
        if isinstance(value, tuple):
            return tuple(self._redact(item) for item in value)
        if isinstance(value, list):
            return [self._redact(item) for item in value]
        return value

    def redact_text(self, text: str) -> str:
        """Replace every token-shaped span in ``text``.

        Rules are re-applied until the text stops changing, so redacting
        an already redacted string is a no-op.
        """
        if not text:
            return text

        result = text
        for _ in range(MAX_REDACTION_PASSES):
            previous = result
            for rule in self._patterns.token_rules:
                result = rule.pattern.sub(
                    lambda match, rule=rule: rule.replace(match, self._placeholder),
                    result,
                )
            if result == previous:
                break
        return result

    def _redact_key(self, key: Any) -> Any:
        return self.redact_text(key) if isinstance(key, str) else key

    def sanitize_output(self, value: Any) -> Any:
        """Final key-based pass over tool output.

        Uses the broader output key list (anything containing "key",
        "auth", "token", ...). Returns a new value.
        """
        if isinstance(value, Mapping):
            sanitized = {}
            for key, item in value.items():
                clean_key = self._redact_key(key)
                if clean_key != key or self._patterns.is_output_sensitive_key(key):
                    sanitized[clean_key] = self._placeholder
                else:
                    sanitized[key] = self.sanitize_output(item)
            return sanitized
        if isinstance(value, tuple):
            return tuple(self.sanitize_output(item) for item in value)
        if isinstance(value, list):
            return [self.sanitize_output(item) for item in value]
        return value

    def detect_tokens(self, value: Any) -> List[str]:
        """List the kinds of credential found in ``value`` without changing it."""
        found: List[str] = []
        stack = [value]
        while stack:
            node = stack.pop()
            if isinstance(node, str):
                found.extend(self._patterns.find_tokens(node))
            elif isinstance(node, Mapping):
                for key, item in node.items():
                    found.extend(self._patterns.find_tokens(str(key)))
                    if (
                        self._patterns.is_sensitive_field(key)
                        and isinstance(item, str)
                        and len(item) > MIN_SENSITIVE_VALUE_LENGTH
                        and item != self._placeholder
                    ):
                        found.append("sensitive_field")
                    stack.append(item)
            elif isinstance(node, (list, tuple)):
                stack.extend(node)
        return found

    def contains_tokens(self, value: Any) -> bool:
        return bool(self.detect_tokens(value))

    def assert_no_token_passthrough(self, value: Any, context: str) -> None:
        """Raise SecurityError if ``value`` carries a credential.

        Same detector as :meth:`redact`, but fails loudly instead of
        fixing the value. The value itself is never modified.
        """
        tokens = self.detect_tokens(value)
        if tokens:
            logger.error(
                f"Token passthrough attempt detected in {context}: "
                f"{', '.join(sorted(set(tokens)))}"
            )
            raise SecurityError(
                f"Token passthrough detected in {context}. "
                "Sensitive data cannot be passed through the gateway."
            )

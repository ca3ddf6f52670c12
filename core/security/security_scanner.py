"""Adversarial-pattern detection for untrusted tool input.

The scanner is a coarse second line of defense behind per-field
validation: it measures the serialized value, then tests every key and
string inside it and rejects the input outright on the first suspicious
match. It never tries to clean the input.
"""

import logging
from collections.abc import Mapping
from typing import Any, Optional

from core.exceptions import SecurityError
from core.security.object_guard import nesting_depth, serialize
from core.security.patterns import (
    DEFAULT_PATTERN_LIBRARY,
    PatternLibrary,
    SuspiciousRule,
)


logger = logging.getLogger(__name__)


class SecurityScanner:
    """Detects injection, traversal and resource-abuse shapes in input.

    Checks, in order:
    - nesting depth against a global ceiling
    - serialized length against a global ceiling
    - every suspicious rule of the pattern library
    """

    def __init__(
        self,
        patterns: Optional[PatternLibrary] = None,
        max_chars: int = 50000,
        max_depth: int = 10,
    ):
        """Initialize the scanner.

        Args:
            patterns: Rule tables to scan with. Defaults to the built-in library.
            max_chars: Ceiling on the serialized length of the input.
            max_depth: Ceiling on nesting depth.
        """
        self._patterns = patterns or DEFAULT_PATTERN_LIBRARY
        self.max_chars = max_chars
        self.max_depth = max_depth

    def scan(self, value: Any, context: str) -> None:
        """Raise SecurityError if ``value`` looks hostile.

        Args:
            value: Arbitrary nested input.
            context: Label used in log lines and the error message.

        Raises:
            SecurityError: On the first suspicious match, or if the input
                is too large or too deeply nested.
        """
        depth = nesting_depth(value, limit=self.max_depth)
        if depth > self.max_depth:
            logger.error(f"Deeply nested object detected in {context}: depth > {self.max_depth}")
            raise SecurityError(
                f"Object nesting too deep in {context}. Maximum depth exceeded."
            )

        text = serialize(value)

        if len(text) > self.max_chars:
            logger.error(f"Oversized input detected in {context}: {len(text)} characters")
            raise SecurityError(
                f"Input too large in {context}. Maximum size exceeded."
            )

        rule = self._first_suspicious(value)
        if rule is not None:
            logger.error(
                f"Suspicious content detected in {context}: "
                f"rule {rule.category}/{rule.name} matched"
            )
            raise SecurityError(
                f"Suspicious content detected in {context}. "
                "Content may contain malicious patterns."
            )

    def is_safe(self, value: Any) -> bool:
        """Non-raising variant of :meth:`scan`."""
        try:
            self.scan(value, "probe")
        except SecurityError:
            return False
        return True

    def _first_suspicious(self, value: Any) -> Optional[SuspiciousRule]:
        """Test every string key and value, not the JSON punctuation around them."""
        stack = [value]
        while stack:
            node = stack.pop()
            if isinstance(node, str):
                rule = self._patterns.find_suspicious(node)
                if rule is not None:
                    return rule
            elif isinstance(node, Mapping):
                for key, item in node.items():
                    rule = self._patterns.find_suspicious(str(key))
                    if rule is not None:
                        return rule
                    stack.append(item)
            elif isinstance(node, (list, tuple)):
                stack.extend(node)
            elif node is not None and not isinstance(node, (bool, int, float)):
                stack.append(str(node))
        return None

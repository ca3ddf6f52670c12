"""Size, depth and key guards for structured (JSON-like) values.

The depth walk is iterative and stops as soon as the ceiling is passed,
so hostile nesting cannot exhaust the interpreter stack before it is
rejected.
"""

import json
import logging
from collections.abc import Mapping
from typing import Any, FrozenSet, Iterator, Optional

from core.exceptions import SecurityError, ValidationError
from core.security.patterns import PROTOTYPE_POLLUTION_KEYS


logger = logging.getLogger(__name__)


def _children(node: Any) -> Iterator[Any]:
    if isinstance(node, Mapping):
        return iter(node.values())
    if isinstance(node, (list, tuple)):
        return iter(node)
    return iter(())


def nesting_depth(value: Any, limit: Optional[int] = None) -> int:
    """Return the maximum nesting depth of ``value``.

    Scalars are depth 0; each enclosing mapping or sequence adds one.
    When ``limit`` is given the walk returns early with the first depth
    that exceeds it.
    """
    deepest = 0
    stack = [(value, 0)]
    while stack:
        node, depth = stack.pop()
        if depth > deepest:
            deepest = depth
            if limit is not None and deepest > limit:
                return deepest
        for child in _children(node):
            stack.append((child, depth + 1))
    return deepest


def find_forbidden_key(value: Any, forbidden: FrozenSet[str]) -> Optional[str]:
    """Return the first forbidden key found at any nesting level."""
    stack = [value]
    while stack:
        node = stack.pop()
        if isinstance(node, Mapping):
            for key in node:
                if str(key) in forbidden:
                    return str(key)
        stack.extend(_children(node))
    return None


def serialize(value: Any) -> str:
    """Serialize ``value`` the way the guards measure and scan it."""
    return json.dumps(value, ensure_ascii=False, default=str)


class StructuredObjectGuard:
    """Rejects oversized, deeply nested or prototype-polluting objects."""

    def __init__(
        self,
        max_bytes: int = 100 * 1024,
        max_depth: int = 10,
        forbidden_keys: FrozenSet[str] = PROTOTYPE_POLLUTION_KEYS,
    ):
        self.max_bytes = max_bytes
        self.max_depth = max_depth
        self.forbidden_keys = forbidden_keys

    def check(self, value: Any, context: str = "input") -> Any:
        """Validate ``value`` and return a detached, JSON-normalized copy.

        Strings are parsed as JSON first. ``None`` passes through.

        Raises:
            ValidationError: If a string is not valid JSON.
            SecurityError: If the object is too large, too deep or
                carries a forbidden key.
        """
        if value is None:
            return None

        if isinstance(value, str):
            self._check_size(len(value.encode("utf-8")), context)
            try:
                value = json.loads(value)
            except json.JSONDecodeError:
                raise ValidationError("Invalid JSON input", field=context)

        depth = nesting_depth(value, limit=self.max_depth)
        if depth > self.max_depth:
            logger.error(f"Deeply nested object rejected in {context}: depth > {self.max_depth}")
            raise SecurityError("JSON nesting too deep")

        serialized = serialize(value)
        self._check_size(len(serialized.encode("utf-8")), context)

        key = find_forbidden_key(value, self.forbidden_keys)
        if key is not None:
            logger.error(f"Prototype pollution key rejected in {context}: {key}")
            raise SecurityError(f"Dangerous key detected: {key}")

        return json.loads(serialized)

    def _check_size(self, size: int, context: str) -> None:
        if size > self.max_bytes:
            logger.error(f"Oversized object rejected in {context}: {size} bytes")
            raise SecurityError(
                f"JSON input too large. Maximum size: {self.max_bytes} bytes"
            )

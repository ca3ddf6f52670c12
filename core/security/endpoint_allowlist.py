"""Outbound path allowlist.

Every path the ResilientClient is asked to call is tested here before
any network activity. Only fixed-shape templates are accepted; anything
else, including traversal sequences, is rejected.
"""

import logging
import re
from dataclasses import dataclass
from typing import Any, Iterable, Optional, Tuple

from core.exceptions import SecurityError, ValidationError


logger = logging.getLogger(__name__)


_SLUG = r"[A-Z]{3}"
_TASK = r"[A-Z]{3}-\d+"


@dataclass(frozen=True)
class AllowlistRule:
    """A named, anchored path template."""

    name: str
    pattern: "re.Pattern[str]"

    @classmethod
    def compile(cls, name: str, template: str) -> "AllowlistRule":
        return cls(name=name, pattern=re.compile(f"^{template}$"))

    def matches(self, path: str) -> bool:
        return self.pattern.match(path) is not None


DEFAULT_RULES: Tuple[AllowlistRule, ...] = (
    AllowlistRule.compile("project_by_slug", rf"/project/slug/{_SLUG}"),
    AllowlistRule.compile("project_first_task", rf"/project/slug/{_SLUG}/first-task"),
    AllowlistRule.compile("project_list", r"/project/list"),
    AllowlistRule.compile("task_by_number", rf"/task/number/{_TASK}"),
    AllowlistRule.compile("task_prompt", rf"/task/number/{_TASK}/prompt"),
    AllowlistRule.compile("task_next", rf"/task/number/{_TASK}/next"),
    AllowlistRule.compile("tasks_by_project", rf"/task/project/slug/{_SLUG}"),
    AllowlistRule.compile("health", r"/api/health"),
)


class EndpointAllowlist:
    """Validates outbound API paths against a closed set of templates."""

    def __init__(self, rules: Optional[Iterable[AllowlistRule]] = None):
        self._rules = tuple(rules) if rules is not None else DEFAULT_RULES
        if not self._rules:
            raise ValueError("Endpoint allowlist cannot be empty")

    @property
    def rules(self) -> Tuple[AllowlistRule, ...]:
        return self._rules

    def validate(self, endpoint: Any) -> str:
        """Return the trimmed endpoint if it is allowlisted.

        The rejected path is never echoed in the error message.

        Raises:
            ValidationError: If ``endpoint`` is not a string.
            SecurityError: On traversal sequences, a relative path, or a
                path matching no template.
        """
        if not isinstance(endpoint, str):
            raise ValidationError("Endpoint must be a string")

        path = endpoint.strip()

        if ".." in path or "//" in path:
            logger.error("Path traversal attempt detected in endpoint")
            raise SecurityError("Invalid endpoint: path traversal detected")

        if not path.startswith("/"):
            logger.error("Relative endpoint rejected")
            raise SecurityError("Invalid endpoint: must start with /")

        for rule in self._rules:
            if rule.matches(path):
                return path

        logger.error("Endpoint rejected: no allowlist rule matched")
        raise SecurityError("Endpoint not allowed")

    def is_allowed(self, endpoint: Any) -> bool:
        try:
            self.validate(endpoint)
        except (SecurityError, ValidationError):
            return False
        return True

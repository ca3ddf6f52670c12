"""Per-tool input validation and normalization.

Each tool declares its input as a JSON Schema (Draft 7) plus a mapping
of field name to a domain rule (identifier formats, status enumeration,
free text, structured object). Domain rules normalize a deep copy of the
caller's arguments; the JSON Schema is then checked against the
normalized copy. The caller's original value is never mutated.
"""

import copy
import logging
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from jsonschema import Draft7Validator
from jsonschema.exceptions import ValidationError as JsonSchemaValidationError

from core.exceptions import SecurityError, ValidationError
from core.security.object_guard import StructuredObjectGuard, nesting_depth


logger = logging.getLogger(__name__)


PROJECT_SLUG_PATTERN = re.compile(r"^[A-Za-z]{3}$")
TASK_NUMBER_PATTERN = re.compile(r"^([A-Za-z]{3})-(\d+)$")
TASK_STATUSES: Tuple[str, ...] = ("to-do", "in-progress", "in-review", "done", "completed")

MAX_TEXT_LENGTH = 5000

_SCRIPT_TAG = re.compile(r"<script\b[^<]*(?:(?!</script>)<[^<]*)*</script>", re.IGNORECASE)
_JAVASCRIPT_URI = re.compile(r"javascript:", re.IGNORECASE)
_EVENT_HANDLER = re.compile(r"\bon\w+\s*=", re.IGNORECASE)
_DATA_URI = re.compile(r"data:", re.IGNORECASE)


class FieldRule(Enum):
    """Domain validators that can be attached to a schema field."""
    PROJECT_SLUG = "project_slug"
    TASK_NUMBER = "task_number"
    TASK_STATUS = "task_status"
    TEXT = "text"
    JSON_OBJECT = "json_object"


@dataclass(frozen=True)
class ToolSchema:
    """Declarative input shape of one tool."""

    json_schema: Dict[str, Any]
    field_rules: Dict[str, FieldRule] = field(default_factory=dict)


def sanitize_text(text: str, max_length: int = MAX_TEXT_LENGTH) -> str:
    """Strip active content from free text and cap its length.

    Removes script elements, ``javascript:``/``data:`` schemes and inline
    event-handler attributes until none remain, trims surrounding
    whitespace, then silently truncates to ``max_length``.
    """
    sanitized = text
    while True:
        previous = sanitized
        sanitized = _SCRIPT_TAG.sub("", sanitized)
        sanitized = _JAVASCRIPT_URI.sub("", sanitized)
        sanitized = _EVENT_HANDLER.sub("", sanitized)
        sanitized = _DATA_URI.sub("", sanitized)
        if sanitized == previous:
            break
    sanitized = sanitized.strip()

    if len(sanitized) > max_length:
        sanitized = sanitized[:max_length]
        logger.warning(f"Text truncated to {max_length} characters")

    return sanitized


# Lower number wins when several schema errors are reported at the same depth
_ERROR_PRIORITY = {
    "additionalProperties": 0,
    "required": 1,
    "type": 2,
    "enum": 3,
    "pattern": 4,
}


class SchemaValidator:
    """Validates and normalizes tool arguments against a ToolSchema."""

    def __init__(
        self,
        object_guard: Optional[StructuredObjectGuard] = None,
        max_text_length: int = MAX_TEXT_LENGTH,
    ):
        """Initialize the validator.

        Args:
            object_guard: Guard applied to structured-object fields.
            max_text_length: Free text is truncated beyond this length.
        """
        self._guard = object_guard or StructuredObjectGuard()
        self.max_text_length = max_text_length
        self._compiled: Dict[int, Tuple[ToolSchema, Draft7Validator]] = {}

    def validate(self, schema: ToolSchema, arguments: Any) -> Dict[str, Any]:
        """Return a normalized copy of ``arguments``.

        Raises:
            ValidationError: Naming the first offending field.
            SecurityError: If a structured field or the arguments as a
                whole exceed the size/depth ceilings.
        """
        if arguments is None:
            arguments = {}
        if not isinstance(arguments, Mapping):
            raise ValidationError("Tool arguments must be an object")

        if nesting_depth(arguments, limit=self._guard.max_depth) > self._guard.max_depth:
            raise SecurityError("Object nesting too deep. Maximum depth exceeded.")

        data = copy.deepcopy(dict(arguments))

        for name, rule in schema.field_rules.items():
            if name in data:
                data[name] = self.apply_rule(rule, name, data[name])

        error = self._first_schema_error(schema, data)
        if error is not None:
            field_name, message = self._describe(error)
            logger.info(f"Schema validation failed on field '{field_name}'")
            raise ValidationError(message, field=field_name)

        return data

    def apply_rule(self, rule: FieldRule, name: str, value: Any) -> Any:
        """Run one domain rule on one field value."""
        if rule is FieldRule.PROJECT_SLUG:
            return self.validate_project_slug(value, name)
        if rule is FieldRule.TASK_NUMBER:
            return self.validate_task_number(value, name)
        if rule is FieldRule.TASK_STATUS:
            return self.validate_task_status(value, name)
        if rule is FieldRule.TEXT:
            return self.sanitize_text_field(value, name)
        if rule is FieldRule.JSON_OBJECT:
            return self._guard.check(value, context=name)
        raise ValueError(f"Unknown field rule: {rule}")

    def validate_project_slug(self, slug: Any, name: str = "slug") -> str:
        """Exactly three letters, returned uppercased."""
        if not slug or not isinstance(slug, str):
            raise ValidationError(f"{name} is required and must be a string", field=name)

        clean = slug.strip()
        if not PROJECT_SLUG_PATTERN.match(clean):
            raise ValidationError(f"{name} must be exactly 3 letters", field=name)

        return clean.upper()

    def validate_task_number(self, number: Any, name: str = "number") -> str:
        """``ABC-123`` form, letter segment uppercased."""
        if not number or not isinstance(number, str):
            raise ValidationError(f"{name} is required and must be a string", field=name)

        match = TASK_NUMBER_PATTERN.match(number.strip())
        if not match:
            raise ValidationError(
                f"{name} must follow format: ABC-123 (3 letters, hyphen, numbers)",
                field=name,
            )

        return f"{match.group(1).upper()}-{match.group(2)}"

    def validate_task_status(self, status: Any, name: str = "status") -> str:
        if not status or not isinstance(status, str):
            raise ValidationError(f"{name} is required and must be a string", field=name)

        clean = status.strip().lower()
        if clean not in TASK_STATUSES:
            raise ValidationError(
                f"{name} must be one of: {', '.join(TASK_STATUSES)}", field=name
            )
        return clean

    def sanitize_text_field(self, text: Any, name: str = "description") -> str:
        if text is None:
            return ""
        if not isinstance(text, str):
            raise ValidationError(f"{name} must be a string", field=name)
        return sanitize_text(text, self.max_text_length)

    def _first_schema_error(
        self, schema: ToolSchema, data: Dict[str, Any]
    ) -> Optional[JsonSchemaValidationError]:
        cached = self._compiled.get(id(schema))
        if cached is None or cached[0] is not schema:
            cached = (schema, Draft7Validator(schema.json_schema))
            self._compiled[id(schema)] = cached
        validator = cached[1]

        errors = list(validator.iter_errors(data))
        if not errors:
            return None
        errors.sort(
            key=lambda e: (len(e.absolute_path), _ERROR_PRIORITY.get(e.validator, 99))
        )
        return errors[0]

    @staticmethod
    def _describe(error: JsonSchemaValidationError) -> Tuple[str, str]:
        """Build a caller-safe message; raw values are never echoed."""
        path = ".".join(str(part) for part in error.absolute_path) or "input"
        validator = error.validator
        value = error.validator_value

        if validator == "required" and isinstance(error.instance, Mapping):
            missing = [name for name in value if name not in error.instance]
            name = missing[0] if missing else path
            return name, f"{name} is required"

        if validator == "additionalProperties" and isinstance(error.instance, Mapping):
            known = set(error.schema.get("properties", {}))
            extras = sorted(str(k) for k in error.instance if k not in known)
            return path, f"Unexpected field(s): {', '.join(extras)}"

        if validator in ("anyOf", "oneOf"):
            fields: List[str] = []
            for sub in value:
                fields.extend(sub.get("required", []))
            if fields:
                return path, (
                    "At least one field to update must be provided: "
                    + ", ".join(fields)
                )

        if validator == "type":
            return path, f"{path} must be of type {value}"
        if validator == "enum":
            return path, f"{path} must be one of: {', '.join(map(str, value))}"
        if validator == "pattern":
            return path, f"{path} has an invalid format"
        if validator in ("maxLength", "maxItems", "maximum"):
            return path, f"{path} must be at most {value}"
        if validator in ("minLength", "minItems", "minimum"):
            return path, f"{path} must be at least {value}"
        return path, f"{path} is invalid"

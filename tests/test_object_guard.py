"""Unit tests for the structured-object guard and depth walk."""

import pytest

from core.exceptions import SecurityError, ValidationError
from core.security.object_guard import (
    StructuredObjectGuard,
    find_forbidden_key,
    nesting_depth,
)
from core.security.patterns import PROTOTYPE_POLLUTION_KEYS


@pytest.fixture
def guard():
    return StructuredObjectGuard()


class TestNestingDepth:

    @pytest.mark.parametrize(
        "value, expected",
        [
            ("scalar", 0),
            (None, 0),
            ({"a": 1}, 1),
            ([1, 2, 3], 1),
            ({"a": {"b": [1]}}, 3),
            ({"shallow": 1, "deep": [[["x"]]]}, 4),
        ],
    )
    def test_depth(self, value, expected):
        assert nesting_depth(value) == expected

    def test_limit_stops_early(self):
        value = "x"
        for _ in range(50):
            value = [value]
        assert nesting_depth(value, limit=5) == 6


class TestForbiddenKeys:

    def test_nested_key_is_found(self):
        value = {"a": [{"b": {"__proto__": {}}}]}
        assert find_forbidden_key(value, PROTOTYPE_POLLUTION_KEYS) == "__proto__"

    def test_clean_object(self):
        assert find_forbidden_key({"a": {"b": 1}}, PROTOTYPE_POLLUTION_KEYS) is None


class TestStructuredObjectGuard:

    def test_none_passes_through(self, guard):
        assert guard.check(None) is None

    def test_json_string_is_parsed(self, guard):
        assert guard.check('{"layers": ["api", "db"]}') == {"layers": ["api", "db"]}

    def test_invalid_json_string(self, guard):
        with pytest.raises(ValidationError) as exc_info:
            guard.check("{not json", context="project_knowledge")
        assert exc_info.value.field == "project_knowledge"

    def test_returns_detached_copy(self, guard):
        original = {"a": {"b": [1, 2]}}
        result = guard.check(original)
        assert result == original
        result["a"]["b"].append(3)
        assert original == {"a": {"b": [1, 2]}}

    def test_too_deep(self, guard):
        value = {}
        cursor = value
        for _ in range(11):
            cursor["n"] = {"leaf": 1}
            cursor = cursor["n"]
        with pytest.raises(SecurityError) as exc_info:
            guard.check(value)
        assert exc_info.value.safe_message == "JSON nesting too deep"

    def test_too_large_object(self):
        guard = StructuredObjectGuard(max_bytes=1024)
        with pytest.raises(SecurityError) as exc_info:
            guard.check({"blob": "x" * 2000})
        assert "Maximum size: 1024 bytes" in exc_info.value.safe_message

    def test_too_large_string_rejected_before_parsing(self):
        guard = StructuredObjectGuard(max_bytes=1024)
        with pytest.raises(SecurityError):
            guard.check("[" + "1," * 1000 + "1]")

    @pytest.mark.parametrize("key", ["__proto__", "constructor", "prototype"])
    def test_prototype_pollution_keys(self, guard, key):
        with pytest.raises(SecurityError) as exc_info:
            guard.check({"ok": [{key: {"polluted": True}}]})
        assert exc_info.value.safe_message == f"Dangerous key detected: {key}"

"""Tests for the outbound endpoint allowlist."""

import pytest
from hypothesis import given, strategies as st

from core.exceptions import SecurityError, ValidationError
from core.security.endpoint_allowlist import AllowlistRule, EndpointAllowlist


@pytest.fixture
def allowlist():
    return EndpointAllowlist()


class TestAllowedShapes:

    @pytest.mark.parametrize(
        "endpoint",
        [
            "/project/slug/CRD",
            "/project/slug/CRD/first-task",
            "/project/list",
            "/task/number/CRD-1",
            "/task/number/CRD-1234/prompt",
            "/task/number/CRD-1/next",
            "/task/project/slug/CRD",
            "/api/health",
        ],
    )
    def test_allowed(self, allowlist, endpoint):
        assert allowlist.validate(endpoint) == endpoint

    def test_surrounding_whitespace_is_trimmed(self, allowlist):
        assert allowlist.validate("  /api/health\n") == "/api/health"


class TestRejectedShapes:

    @pytest.mark.parametrize(
        "endpoint",
        [
            "/task/number/crd-1",
            "/project/slug/CRDX",
            "/project/slug/CRD/settings",
            "/task/number/CRD-1/delete",
            "/admin",
            "/api/health?x=1",
            "/",
            "",
        ],
    )
    def test_unknown_shape(self, allowlist, endpoint):
        with pytest.raises(SecurityError):
            allowlist.validate(endpoint)

    def test_relative_path(self, allowlist):
        with pytest.raises(SecurityError) as exc_info:
            allowlist.validate("task/number/CRD-1")
        assert "must start with /" in exc_info.value.safe_message

    @pytest.mark.parametrize("endpoint", [None, 42, b"/api/health", ["/api/health"]])
    def test_non_string(self, allowlist, endpoint):
        with pytest.raises(ValidationError):
            allowlist.validate(endpoint)

    def test_rejected_endpoint_is_not_echoed(self, allowlist):
        with pytest.raises(SecurityError) as exc_info:
            allowlist.validate("/secret-internal-path")
        assert "secret-internal-path" not in exc_info.value.safe_message

    @given(prefix=st.text(max_size=20), marker=st.sampled_from(["..", "//"]), suffix=st.text(max_size=20))
    def test_traversal_sequences_are_always_rejected(self, prefix, marker, suffix):
        with pytest.raises(SecurityError):
            EndpointAllowlist().validate(f"/{prefix}{marker}{suffix}")

    def test_is_allowed(self, allowlist):
        assert allowlist.is_allowed("/project/list") is True
        assert allowlist.is_allowed("/project/../list") is False
        assert allowlist.is_allowed(None) is False


class TestCustomRules:

    def test_custom_rules_replace_defaults(self):
        allowlist = EndpointAllowlist([AllowlistRule.compile("status", r"/status")])
        assert allowlist.validate("/status") == "/status"
        with pytest.raises(SecurityError):
            allowlist.validate("/api/health")

    def test_empty_rules_rejected(self):
        with pytest.raises(ValueError):
            EndpointAllowlist([])

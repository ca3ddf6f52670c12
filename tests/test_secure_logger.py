"""Tests for SecureLogger and the structured logging setup."""

import io
import json
import logging
import re
import sys

import pytest

from core.logging import (
    CorrelationIdFilter,
    CustomJsonFormatter,
    LogContext,
    TextFormatter,
    configure_logging,
    generate_request_id,
    get_request_id,
    to_base36,
)
from core.security.secure_logger import SecureLogger


BEARER = "Bearer abcdefghijklmnopqrstuvwxyz012345"


@pytest.fixture
def stream():
    return io.StringIO()


@pytest.fixture
def base_logger(stream):
    logger = logging.getLogger("tests.secure_logger")
    logger.handlers.clear()
    logger.propagate = False
    logger.setLevel(logging.DEBUG)
    handler = logging.StreamHandler(stream)
    handler.setFormatter(logging.Formatter("%(levelname)s %(message)s %(extra_note)s"))
    handler.addFilter(_DefaultExtra())
    logger.addHandler(handler)
    yield logger
    logger.handlers.clear()


class _DefaultExtra(logging.Filter):
    def filter(self, record):
        if not hasattr(record, "extra_note"):
            record.extra_note = "-"
        return True


@pytest.fixture
def secure(base_logger):
    return SecureLogger(base_logger)


class TestSecureLogger:

    def test_message_is_redacted(self, secure, stream):
        secure.info(f"Calling upstream with {BEARER}")
        output = stream.getvalue()
        assert "Bearer [REDACTED]" in output
        assert "abcdefghijklmnopqrstuvwxyz012345" not in output

    def test_args_are_redacted(self, secure, stream):
        secure.warning("Headers: %s", {"authorization": "abc", "accept": "json"})
        output = stream.getvalue()
        assert "[REDACTED]" in output
        assert "json" in output
        assert "'abc'" not in output

    def test_extra_is_redacted(self, secure, stream):
        secure.error("Request failed", extra={"extra_note": "password=hunter2secret"})
        output = stream.getvalue()
        assert "hunter2secret" not in output
        assert "password=[REDACTED]" in output

    def test_traceback_is_redacted(self, secure, stream):
        try:
            raise RuntimeError(f"upstream said {BEARER}")
        except RuntimeError:
            secure.exception("Unexpected failure")
        output = stream.getvalue()
        assert "Traceback" in output
        assert "RuntimeError" in output
        assert "abcdefghijklmnopqrstuvwxyz012345" not in output

    def test_disabled_level_is_skipped(self, base_logger, secure, stream):
        base_logger.setLevel(logging.WARNING)
        secure.debug("never shown")
        assert stream.getvalue() == ""
        assert secure.isEnabledFor(logging.DEBUG) is False

    def test_name(self, secure):
        assert secure.name == "tests.secure_logger"


class TestRequestIds:

    @pytest.mark.parametrize("number, expected", [(0, "0"), (35, "z"), (36, "10"), (1295, "zz")])
    def test_to_base36(self, number, expected):
        assert to_base36(number) == expected

    def test_to_base36_rejects_negative(self):
        with pytest.raises(ValueError):
            to_base36(-1)

    def test_generate_request_id(self):
        first, second = generate_request_id(), generate_request_id()
        assert re.fullmatch(r"req_[0-9a-z]+_[0-9a-f]{12}", first)
        assert first != second

    def test_log_context_sets_and_restores(self):
        assert get_request_id() is None
        with LogContext(request_id="req_abc_123"):
            assert get_request_id() == "req_abc_123"
        assert get_request_id() is None


class TestJsonFormatter:

    def test_record_fields(self, stream):
        logger = logging.getLogger("tests.json_formatter")
        logger.handlers.clear()
        logger.propagate = False
        logger.setLevel(logging.INFO)
        handler = logging.StreamHandler(stream)
        handler.addFilter(CorrelationIdFilter())
        handler.setFormatter(CustomJsonFormatter("%(asctime)s %(name)s %(levelname)s %(message)s"))
        logger.addHandler(handler)

        try:
            with LogContext(request_id="req_abc_123"):
                logger.info("Tool completed")
        finally:
            logger.handlers.clear()

        record = json.loads(stream.getvalue())
        assert record["message"] == "Tool completed"
        assert record["level"] == "INFO"
        assert record["logger"] == "tests.json_formatter"
        assert record["service"] == "secure-tool-gateway"
        assert record["request_id"] == "req_abc_123"
        assert "levelname" not in record


class TestConfigureLogging:

    @pytest.fixture
    def restore_root(self):
        root = logging.getLogger()
        handlers, level = root.handlers[:], root.level
        yield
        root.handlers[:] = handlers
        root.setLevel(level)

    @pytest.mark.parametrize("fmt, formatter_type", [("json", CustomJsonFormatter), ("text", TextFormatter)])
    def test_single_stderr_handler(self, restore_root, fmt, formatter_type):
        root = configure_logging(level="debug", fmt=fmt)

        assert root.level == logging.DEBUG
        assert len(root.handlers) == 1
        handler = root.handlers[0]
        assert handler.stream is sys.stderr
        assert isinstance(handler.formatter, formatter_type)
        assert logging.getLogger("aiohttp").level == logging.WARNING

"""Tests for SessionStore: sliding expiry, bounds, redaction and sweeping."""

import asyncio
import re
from unittest.mock import MagicMock

import pytest

from core.exceptions import SecurityError
from core.security.patterns import REDACTION_MARKER
from core.security.session_store import SessionStore, generate_session_id


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(clock):
    return SessionStore(timeout_seconds=30 * 60, max_sessions=3, clock=clock)


class TestSessionIds:

    def test_format(self):
        session_id = generate_session_id(1_700_000_000.0)
        assert re.fullmatch(r"sess_[0-9a-z]+_[0-9a-f]{64}", session_id)

    def test_ids_are_unique(self, store):
        ids = {store.create() for _ in range(3)}
        assert len(ids) == 3


class TestSlidingExpiry:

    def test_validate_within_timeout_slides_expiry(self, store, clock):
        session_id = store.create({"tool": "update_task"})
        clock.advance(29 * 60)

        assert store.validate(session_id) is True
        assert store.get(session_id).expires_at == clock.now + 30 * 60

        clock.advance(29 * 60)
        assert store.validate(session_id) is True

    def test_expired_session_is_invalid_and_removed(self, store, clock):
        session_id = store.create()
        clock.advance(30 * 60 + 0.001)

        assert store.validate(session_id) is False
        assert len(store) == 0
        assert store.validate(session_id) is False

    def test_unknown_session(self, store):
        assert store.validate("sess_0_deadbeef") is False
        assert store.get_metadata("sess_0_deadbeef") is None


class TestMetadata:

    def test_metadata_is_redacted_before_storage(self, store):
        session_id = store.create(
            {"api_key": "CR_API_KEY_abcdefghijklmnop", "note": "Bearer abcdefghijklmnopqrstuvwxyz"}
        )
        metadata = store.get_metadata(session_id)
        assert metadata == {"api_key": REDACTION_MARKER, "note": "Bearer [REDACTED]"}

    def test_returned_metadata_is_a_copy(self, store):
        session_id = store.create({"step": 1})
        store.get_metadata(session_id)["step"] = 99
        assert store.get_metadata(session_id) == {"step": 1}

    def test_nested_metadata_cannot_be_changed_through_a_read(self, store):
        session_id = store.create({"profile": {"name": "a"}})

        store.get_metadata(session_id)["profile"]["token"] = "ghp_" + "a" * 36
        store.get(session_id).metadata["profile"]["name"] = "b"

        assert store.get_metadata(session_id) == {"profile": {"name": "a"}}

    def test_stored_metadata_does_not_alias_caller_objects(self, store):
        tags = {"labels": ["x"]}
        session_id = store.create({"tags": tags})
        store.update_metadata(session_id, {"extra": tags})

        tags["labels"].append("ghp_" + "a" * 36)

        assert store.get_metadata(session_id) == {
            "tags": {"labels": ["x"]},
            "extra": {"labels": ["x"]},
        }

    def test_unredactable_metadata_is_refused(self, clock):
        redactor = MagicMock()
        redactor.redact.return_value = REDACTION_MARKER
        store = SessionStore(redactor=redactor, clock=clock)

        with pytest.raises(SecurityError):
            store.create({"deep": {}})
        assert len(store) == 0

    def test_unredactable_update_is_refused(self, clock):
        redactor = MagicMock()
        redactor.redact.return_value = {"step": 1}
        store = SessionStore(redactor=redactor, clock=clock)
        session_id = store.create({"step": 1})

        redactor.redact.return_value = REDACTION_MARKER
        with pytest.raises(SecurityError):
            store.update_metadata(session_id, {"deep": {}})
        assert store.get_metadata(session_id) == {"step": 1}

    def test_update_metadata_merges_redacted_values(self, store):
        session_id = store.create({"step": 1})
        assert store.update_metadata(session_id, {"step": 2, "password": "hunter22"}) is True
        assert store.get_metadata(session_id) == {"step": 2, "password": REDACTION_MARKER}

    def test_update_metadata_on_expired_session(self, store, clock):
        session_id = store.create()
        clock.advance(31 * 60)
        assert store.update_metadata(session_id, {"x": 1}) is False


class TestLifecycle:

    def test_destroy(self, store):
        session_id = store.create()
        assert store.destroy(session_id) is True
        assert store.destroy(session_id) is False
        assert store.validate(session_id) is False

    def test_limit_is_enforced(self, store):
        for _ in range(3):
            store.create()
        with pytest.raises(SecurityError):
            store.create()

    def test_limit_triggers_eager_sweep(self, store, clock):
        for _ in range(3):
            store.create()
        clock.advance(31 * 60)
        store.create()
        assert len(store) == 1

    def test_sweep_and_stats(self, store, clock):
        store.create()
        clock.advance(20 * 60)
        store.create()
        clock.advance(15 * 60)

        assert store.stats() == {"total": 2, "active": 1, "expired": 1}
        assert store.sweep() == 1
        assert store.stats() == {"total": 1, "active": 1, "expired": 0}

    def test_no_sweep_task_without_event_loop(self, store):
        store.create()
        assert store.sweep_running is False


class TestBackgroundSweep:

    @pytest.mark.asyncio
    async def test_sweep_starts_on_create_and_stops_when_empty(self, clock):
        store = SessionStore(
            timeout_seconds=60, max_sessions=10, sweep_interval_seconds=0.01, clock=clock
        )
        assert store.sweep_running is False

        store.create()
        assert store.sweep_running is True

        clock.advance(61)
        for _ in range(50):
            await asyncio.sleep(0.01)
            if not store.sweep_running:
                break

        assert len(store) == 0
        assert store.sweep_running is False

    @pytest.mark.asyncio
    async def test_sweep_keeps_running_while_sessions_live(self, clock):
        store = SessionStore(
            timeout_seconds=60, max_sessions=10, sweep_interval_seconds=0.01, clock=clock
        )
        store.create()
        await asyncio.sleep(0.05)
        assert store.sweep_running is True
        await store.close()

    @pytest.mark.asyncio
    async def test_close_cancels_sweep_and_clears(self, clock):
        store = SessionStore(sweep_interval_seconds=10, clock=clock)
        store.create()
        await store.close()
        assert store.sweep_running is False
        assert len(store) == 0

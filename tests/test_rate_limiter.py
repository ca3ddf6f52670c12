"""Tests for fixed-window rate limiting."""

import threading

import pytest

from core.exceptions import SecurityError
from core.security.rate_limiter import RateLimiter, make_key


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def limiter(clock):
    return RateLimiter(max_per_window=5, window_seconds=60.0, clock=clock)


class TestFixedWindow:

    def test_allows_requests_up_to_limit(self, limiter):
        for _ in range(5):
            limiter.check("update_task:CRD-1")
        assert limiter.get_entry("update_task:CRD-1").count == 5

    def test_rejects_request_over_limit(self, limiter):
        for _ in range(5):
            limiter.check("update_task:CRD-1")
        with pytest.raises(SecurityError) as exc_info:
            limiter.check("update_task:CRD-1")
        assert "Rate limit exceeded" in exc_info.value.safe_message
        assert exc_info.value.http_status == 429

    def test_rejected_request_does_not_count(self, limiter):
        for _ in range(5):
            limiter.check("k")
        for _ in range(3):
            with pytest.raises(SecurityError):
                limiter.check("k")
        assert limiter.get_entry("k").count == 5

    def test_window_resets_after_expiry(self, limiter, clock):
        for _ in range(5):
            limiter.check("k")
        with pytest.raises(SecurityError):
            limiter.check("k")

        clock.advance(60.001)
        limiter.check("k")

        entry = limiter.get_entry("k")
        assert entry.count == 1
        assert entry.window_reset_at == pytest.approx(clock.now + 60.0)

    def test_window_boundary_is_inclusive(self, limiter, clock):
        for _ in range(5):
            limiter.check("k")
        clock.advance(60.0)
        with pytest.raises(SecurityError):
            limiter.check("k")

    def test_keys_are_independent(self, limiter):
        for _ in range(5):
            limiter.check("update_task:CRD-1")
        limiter.check("update_task:CRD-2")
        assert limiter.get_entry("update_task:CRD-2").count == 1

    def test_first_request_opens_window(self, limiter, clock):
        limiter.check("k")
        entry = limiter.get_entry("k")
        assert entry.count == 1
        assert entry.window_reset_at == clock.now + 60.0


class TestMaintenance:

    def test_cleanup_removes_expired_entries(self, limiter, clock):
        limiter.check("old")
        clock.advance(61)
        limiter.check("fresh")
        assert limiter.cleanup() == 1
        assert limiter.get_entry("old") is None
        assert limiter.get_entry("fresh") is not None

    def test_periodic_cleanup_runs_every_n_checks(self, clock):
        limiter = RateLimiter(max_per_window=100, window_seconds=1.0, clock=clock, cleanup_interval=3)
        limiter.check("a")
        clock.advance(2)
        limiter.check("b")
        limiter.check("b")
        assert limiter.get_entry("a") is None

    def test_reset_single_key_and_all(self, limiter):
        limiter.check("a")
        limiter.check("b")
        limiter.reset("a")
        assert limiter.get_entry("a") is None
        limiter.reset()
        assert limiter.stats()["total_keys"] == 0

    def test_stats(self, limiter, clock):
        limiter.check("a")
        clock.advance(61)
        limiter.check("b")
        assert limiter.stats() == {"total_keys": 2, "active_keys": 1, "max_per_window": 5}

    @pytest.mark.parametrize("kwargs", [{"max_per_window": 0}, {"window_seconds": 0}])
    def test_invalid_configuration(self, kwargs):
        with pytest.raises(ValueError):
            RateLimiter(**kwargs)


class TestKeys:

    def test_make_key(self):
        assert make_key("update_task", "CRD-1") == "update_task:CRD-1"

    def test_missing_identifier_falls_back_to_shared_bucket(self):
        assert make_key("update_task") == "update_task:unknown"
        assert make_key("update_task", "") == "update_task:unknown"


class TestThreadSafety:

    def test_concurrent_checks_never_exceed_limit(self, clock):
        limiter = RateLimiter(max_per_window=50, window_seconds=60.0, clock=clock)
        rejected = []

        def worker():
            for _ in range(20):
                try:
                    limiter.check("shared")
                except SecurityError:
                    rejected.append(1)

        threads = [threading.Thread(target=worker) for _ in range(5)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert limiter.get_entry("shared").count == 50
        assert len(rejected) == 50

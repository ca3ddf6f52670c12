"""Fixed-window rate limiting keyed by operation and identifier.

Two independent limiters are used by the gateway: a coarse one owned by
the outbound HTTP client, and a finer one guarding mutating tools keyed
by ``tool_name:resource_identifier``. Entries live in memory and are
dropped by a periodic cleanup once their window has expired.
"""

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from core.exceptions import SecurityError


logger = logging.getLogger(__name__)

UNKNOWN_IDENTIFIER = "unknown"


@dataclass
class RateLimitEntry:
    """Counter for one key within its current window."""

    count: int
    window_reset_at: float


def make_key(operation: str, identifier: Optional[str] = None) -> str:
    """Compose a limiter key, falling back to a shared bucket.

    Callers without a resource identifier all share the ``unknown``
    bucket for that operation.
    """
    return f"{operation}:{identifier or UNKNOWN_IDENTIFIER}"


class RateLimiter:
    """In-memory fixed-window rate limiter.

    The first request for a key opens a window of ``window_seconds``.
    Requests beyond ``max_per_window`` inside that window are rejected;
    the first request after the window has passed opens a fresh one.
    """

    def __init__(
        self,
        max_per_window: int = 10,
        window_seconds: float = 60.0,
        clock: Callable[[], float] = time.time,
        cleanup_interval: int = 100,
        name: str = "tool",
    ):
        """Initialize rate limiter.

        Args:
            max_per_window: Maximum requests allowed per key per window.
            window_seconds: Window length in seconds.
            clock: Source of the current time in seconds.
            cleanup_interval: Expired entries are dropped every N checks.
            name: Label used in log lines.
        """
        if max_per_window < 1:
            raise ValueError("max_per_window must be at least 1")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be positive")

        self.max_per_window = max_per_window
        self.window_seconds = window_seconds
        self.name = name
        self._clock = clock
        self._entries: Dict[str, RateLimitEntry] = {}
        self._lock = threading.Lock()
        self._cleanup_counter = 0
        self._cleanup_interval = cleanup_interval

    def check(self, key: str) -> None:
        """Count one request for ``key``.

        Raises:
            SecurityError: If the key has used up its window.
        """
        now = self._clock()

        with self._lock:
            entry = self._entries.get(key)

            if entry is None or now > entry.window_reset_at:
                self._entries[key] = RateLimitEntry(
                    count=1, window_reset_at=now + self.window_seconds
                )
            elif entry.count >= self.max_per_window:
                retry_after = max(1, int(entry.window_reset_at - now) + 1)
                logger.warning(
                    f"Rate limit exceeded on {self.name} limiter",
                    extra={
                        "rate_limit_key": key,
                        "limit": self.max_per_window,
                        "retry_after_seconds": retry_after,
                    },
                )
                raise SecurityError(
                    "Rate limit exceeded. Please wait before making more requests.",
                    http_status=429,
                    details={"retry_after_seconds": retry_after},
                )
            else:
                entry.count += 1

            self._cleanup_counter += 1
            if self._cleanup_counter >= self._cleanup_interval:
                self._cleanup_counter = 0
                self._cleanup_locked(now)

    def cleanup(self) -> int:
        """Drop every entry whose window has expired. Returns the count."""
        with self._lock:
            return self._cleanup_locked(self._clock())

    def _cleanup_locked(self, now: float) -> int:
        stale_keys = [
            key for key, entry in self._entries.items()
            if now > entry.window_reset_at
        ]
        for key in stale_keys:
            del self._entries[key]

        if stale_keys:
            logger.debug(f"Cleaned up {len(stale_keys)} stale rate limit entries")
        return len(stale_keys)

    def get_entry(self, key: str) -> Optional[RateLimitEntry]:
        """Return a copy of the entry for ``key``, if any."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            return RateLimitEntry(entry.count, entry.window_reset_at)

    def reset(self, key: Optional[str] = None) -> None:
        """Forget one key, or every key when ``key`` is None."""
        with self._lock:
            if key is None:
                self._entries.clear()
            else:
                self._entries.pop(key, None)

    def stats(self) -> Dict[str, int]:
        now = self._clock()
        with self._lock:
            active = sum(
                1 for entry in self._entries.values()
                if now <= entry.window_reset_at
            )
            return {
                "total_keys": len(self._entries),
                "active_keys": active,
                "max_per_window": self.max_per_window,
            }

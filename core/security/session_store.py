"""Ephemeral, size-bounded session storage with sliding expiry.

Sessions map an opaque identifier to metadata that has already been
passed through the TokenRedactor, so nothing retrieved from the store
can carry a credential. Expired sessions are removed on read and by a
background sweep that only runs while the store is non-empty.
"""

import asyncio
import copy
import logging
import secrets
import threading
import time
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional

from core.exceptions import SecurityError
from core.logging import to_base36
from core.security.token_redactor import TokenRedactor


logger = logging.getLogger(__name__)


def generate_session_id(now: float) -> str:
    """``sess_<base36 ms timestamp>_<64 hex chars>`` from a CSPRNG."""
    return f"sess_{to_base36(int(now * 1000))}_{secrets.token_hex(32)}"


@dataclass
class Session:
    id: str
    created_at: float
    last_accessed_at: float
    expires_at: float
    metadata: Dict[str, Any] = field(default_factory=dict)


class SessionStore:
    """In-memory session map with sliding expiry and a bounded size.

    Thread-safe: every operation takes the store lock. The periodic
    sweep is an asyncio task that starts with the first session created
    inside a running event loop and exits once the store is empty.
    """

    def __init__(
        self,
        redactor: Optional[TokenRedactor] = None,
        timeout_seconds: float = 30 * 60,
        max_sessions: int = 1000,
        sweep_interval_seconds: float = 5 * 60,
        clock: Callable[[], float] = time.time,
    ):
        """Initialize the store.

        Args:
            redactor: Applied to metadata before it is stored.
            timeout_seconds: Idle time after which a session expires.
            max_sessions: Upper bound on stored sessions.
            sweep_interval_seconds: Period of the background sweep.
            clock: Source of the current time in seconds.
        """
        self._redactor = redactor or TokenRedactor()
        self.timeout_seconds = timeout_seconds
        self.max_sessions = max_sessions
        self.sweep_interval_seconds = sweep_interval_seconds
        self._clock = clock
        self._sessions: Dict[str, Session] = {}
        self._lock = threading.Lock()
        self._sweep_task: Optional[asyncio.Task] = None

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def create(self, metadata: Optional[Dict[str, Any]] = None) -> str:
        """Store redacted ``metadata`` under a new session id.

        Raises:
            SecurityError: If the store is full even after an eager sweep,
                or the metadata cannot be redacted into a mapping.
        """
        redacted = self._redact_metadata(metadata or {})
        now = self._clock()
        with self._lock:
            if len(self._sessions) >= self.max_sessions:
                self._sweep_locked(now)
                if len(self._sessions) >= self.max_sessions:
                    logger.error(
                        "Session limit reached",
                        extra={"max_sessions": self.max_sessions},
                    )
                    raise SecurityError(
                        "Maximum number of sessions reached. Please try again later."
                    )

            session_id = generate_session_id(now)
            while session_id in self._sessions:
                session_id = generate_session_id(now)

            self._sessions[session_id] = Session(
                id=session_id,
                created_at=now,
                last_accessed_at=now,
                expires_at=now + self.timeout_seconds,
                metadata=redacted,
            )

        logger.debug("Session created")
        self._ensure_sweep_task()
        return session_id

    def validate(self, session_id: str) -> bool:
        """Return whether the session is live, sliding its expiry if so.

        An expired session is deleted.
        """
        now = self._clock()
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                return False
            if now > session.expires_at:
                del self._sessions[session_id]
                logger.debug("Expired session removed on validate")
                return False
            session.last_accessed_at = now
            session.expires_at = now + self.timeout_seconds
            return True

    def get(self, session_id: str) -> Optional[Session]:
        """Return a snapshot of a live session without sliding its expiry."""
        now = self._clock()
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None or now > session.expires_at:
                return None
            return Session(
                id=session.id,
                created_at=session.created_at,
                last_accessed_at=session.last_accessed_at,
                expires_at=session.expires_at,
                metadata=copy.deepcopy(session.metadata),
            )

    def get_metadata(self, session_id: str) -> Optional[Dict[str, Any]]:
        if not self.validate(session_id):
            return None
        with self._lock:
            session = self._sessions.get(session_id)
            return copy.deepcopy(session.metadata) if session is not None else None

    def update_metadata(self, session_id: str, metadata: Dict[str, Any]) -> bool:
        """Merge redacted ``metadata`` into a live session."""
        if not self.validate(session_id):
            return False
        redacted = self._redact_metadata(metadata)
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                return False
            session.metadata.update(redacted)
            return True

    def _redact_metadata(self, metadata: Mapping) -> Dict[str, Any]:
        redacted = self._redactor.redact(dict(metadata))
        if not isinstance(redacted, Mapping):
            logger.error("Session metadata could not be redacted into a mapping")
            raise SecurityError("Session metadata could not be stored safely.")
        # Stored values must not alias anything the caller still holds
        return copy.deepcopy(dict(redacted))

    def destroy(self, session_id: str) -> bool:
        with self._lock:
            removed = self._sessions.pop(session_id, None) is not None
        if removed:
            logger.debug("Session destroyed")
        return removed

    def sweep(self) -> int:
        """Delete every expired session. Returns how many were removed."""
        with self._lock:
            return self._sweep_locked(self._clock())

    def _sweep_locked(self, now: float) -> int:
        expired = [
            session_id for session_id, session in self._sessions.items()
            if now > session.expires_at
        ]
        for session_id in expired:
            del self._sessions[session_id]
        if expired:
            logger.info(f"Swept {len(expired)} expired sessions")
        return len(expired)

    def stats(self) -> Dict[str, int]:
        now = self._clock()
        with self._lock:
            expired = sum(1 for s in self._sessions.values() if now > s.expires_at)
            total = len(self._sessions)
        return {"total": total, "active": total - expired, "expired": expired}

    @property
    def sweep_running(self) -> bool:
        return self._sweep_task is not None and not self._sweep_task.done()

    def _ensure_sweep_task(self) -> None:
        if self.sweep_running:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No loop: expiry is still enforced on every read
            return
        self._sweep_task = loop.create_task(self._sweep_loop())

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self.sweep_interval_seconds)
            self.sweep()
            if len(self) == 0:
                logger.debug("Session store empty; sweep stopped")
                return

    async def close(self) -> None:
        """Cancel the background sweep and drop every session."""
        task = self._sweep_task
        self._sweep_task = None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        with self._lock:
            self._sessions.clear()

"""
Per-session serialization for read-derive-persist sequences.

Two companion passes racing on the same session can both see the same
"trade exists" snapshot and both add a companion, defeating the dedup
window. Callers hold the session's lock for the whole sequence.
"""

import threading
from collections.abc import Hashable, Iterator
from contextlib import contextmanager


class SessionLockRegistry:
    """Hands out one re-entrant lock per session id."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[Hashable, threading.RLock] = {}

    def lock_for(self, session_id: Hashable) -> threading.RLock:
        with self._guard:
            lock = self._locks.get(session_id)
            if lock is None:
                lock = threading.RLock()
                self._locks[session_id] = lock
            return lock

    @contextmanager
    def hold(self, session_id: Hashable) -> Iterator[None]:
        """Hold the session's lock for the duration of the block."""
        lock = self.lock_for(session_id)
        with lock:
            yield

    def discard(self, session_id: Hashable) -> None:
        """Forget a finished session's lock."""
        with self._guard:
            self._locks.pop(session_id, None)

    def __len__(self) -> int:
        return len(self._locks)


_default_registry: SessionLockRegistry | None = None
_default_registry_guard = threading.Lock()


def get_session_locks() -> SessionLockRegistry:
    """Get or create the process-wide lock registry."""
    global _default_registry
    with _default_registry_guard:
        if _default_registry is None:
            _default_registry = SessionLockRegistry()
        return _default_registry

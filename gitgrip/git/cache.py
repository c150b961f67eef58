"""Short-lived status cache shared by one command invocation."""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

__all__ = ["DEFAULT_TTL", "CachedStatus", "StatusCache", "status_cache"]

DEFAULT_TTL = 5.0


@dataclass(frozen=True, slots=True)
class CachedStatus:
    """Snapshot of a repository's working-copy status."""

    current_branch: str
    is_clean: bool
    staged: int
    modified: int
    untracked: int
    ahead: int
    behind: int


@dataclass(frozen=True, slots=True)
class _Entry:
    status: CachedStatus
    inserted_at: float


class StatusCache:
    """Path-keyed TTL cache; the lock is never held across git calls."""

    def __init__(self, ttl: float = DEFAULT_TTL, *, clock: Callable[[], float] = time.monotonic) -> None:
        self._ttl = ttl
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: dict[Path, _Entry] = {}

    @property
    def ttl(self) -> float:
        return self._ttl

    def get(self, path: Path) -> CachedStatus | None:
        now = self._clock()
        with self._lock:
            entry = self._entries.get(path)
            if entry is None:
                return None
            if now - entry.inserted_at >= self._ttl:
                del self._entries[path]
                return None
            return entry.status

    def put(self, path: Path, status: CachedStatus) -> None:
        now = self._clock()
        with self._lock:
            self._entries[path] = _Entry(status=status, inserted_at=now)

    def invalidate(self, path: Path) -> None:
        with self._lock:
            self._entries.pop(path, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


# Process-wide instance; lifetime is the enclosing command.
status_cache = StatusCache()

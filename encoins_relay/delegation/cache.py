"""Latest published delegation state, shared with readers.

The scanner is the only writer. Each publish replaces the whole Snapshot
in one assignment under a lock, so a reader sees either the previous
cycle or the new one, never a mix. Reads never wait on a scan.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Callable

from .errors import StalenessExceeded
from .models import Snapshot


@dataclass(frozen=True)
class CacheRead:
    """A snapshot together with its synchronization status."""

    snapshot: Snapshot | None
    stale: bool
    age: float | None  # seconds since publish, None before the first publish


class StateCache:
    """Holder of the last fully published Snapshot."""

    def __init__(self, max_delay: float, clock: Callable[[], float] = time.time):
        self.max_delay = max_delay
        self._clock = clock
        self._lock = threading.Lock()
        self._snapshot: Snapshot | None = None
        self._published_at: float | None = None

    def publish(self, snapshot: Snapshot) -> None:
        with self._lock:
            self._snapshot = snapshot
            self._published_at = self._clock()

    def get(self) -> CacheRead:
        with self._lock:
            snapshot, published_at = self._snapshot, self._published_at
        if published_at is None:
            return CacheRead(snapshot=None, stale=True, age=None)
        age = self._clock() - published_at
        return CacheRead(snapshot=snapshot, stale=age > self.max_delay, age=age)

    def get_fresh(self) -> Snapshot:
        """The current snapshot, or StalenessExceeded if it is too old or missing."""
        read = self.get()
        if read.stale or read.snapshot is None:
            raise StalenessExceeded(read.age, self.max_delay)
        return read.snapshot

    @property
    def is_stale(self) -> bool:
        return self.get().stale


__all__ = ["CacheRead", "StateCache"]

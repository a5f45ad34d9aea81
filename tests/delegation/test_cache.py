"""Tests for StateCache staleness and publication."""

import threading
from datetime import datetime, timezone

import pytest

from encoins_relay.delegation.cache import StateCache
from encoins_relay.delegation.errors import StalenessExceeded
from encoins_relay.delegation.models import Progress, Snapshot


class FakeClock:

    def __init__(self, now: float = 1_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def _snapshot(endpoints: dict | None = None) -> Snapshot:
    now = datetime.now(timezone.utc)
    return Snapshot(
        progress=Progress(last_tx_id="ab" * 32),
        endpoints=endpoints or {},
        progress_at=now,
        published_at=now,
    )


class TestStateCache:

    def test_empty_cache_is_stale(self):
        cache = StateCache(max_delay=60, clock=FakeClock())

        read = cache.get()

        assert read.snapshot is None
        assert read.stale
        assert read.age is None
        with pytest.raises(StalenessExceeded):
            cache.get_fresh()

    def test_fresh_within_max_delay(self):
        clock = FakeClock()
        cache = StateCache(max_delay=60, clock=clock)
        snapshot = _snapshot({"a.com": 3})
        cache.publish(snapshot)

        clock.advance(60)

        assert not cache.is_stale
        assert cache.get_fresh() is snapshot

    def test_stale_past_max_delay(self):
        clock = FakeClock()
        cache = StateCache(max_delay=60, clock=clock)
        cache.publish(_snapshot())

        clock.advance(61)

        read = cache.get()
        assert read.stale
        assert read.age == 61
        assert read.snapshot is not None
        with pytest.raises(StalenessExceeded) as exc_info:
            cache.get_fresh()
        assert exc_info.value.age == 61

    def test_publish_resets_age(self):
        clock = FakeClock()
        cache = StateCache(max_delay=60, clock=clock)
        cache.publish(_snapshot({"a.com": 1}))
        clock.advance(100)

        cache.publish(_snapshot({"a.com": 2}))

        assert not cache.is_stale
        assert cache.get_fresh().endpoints == {"a.com": 2}

    def test_readers_see_whole_snapshots(self):
        cache = StateCache(max_delay=60)
        cache.publish(_snapshot({"a.com": 0, "b.com": 0}))
        seen = []
        done = threading.Event()

        def reader():
            while True:
                endpoints = cache.get().snapshot.endpoints
                seen.append(len(set(endpoints.values())))
                if done.is_set():
                    break

        t = threading.Thread(target=reader)
        t.start()
        for i in range(1, 200):
            cache.publish(_snapshot({"a.com": i, "b.com": i}))
        done.set()
        t.join()

        assert seen
        assert set(seen) == {1}

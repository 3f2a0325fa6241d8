"""Tests for CleanupScheduler -- background expiry sweeps."""

import threading
import time
from unittest.mock import patch

import pytest

from chatcache.cache.eviction import EvictionEngine
from chatcache.cache.item import CacheOptions, ItemOptions
from chatcache.cache.scheduler import CleanupScheduler
from chatcache.cache.store import CacheStore
from chatcache.config import DictConfigProvider
from chatcache.exceptions import SchedulerError


def _wait_for(predicate, timeout: float = 2.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


@pytest.fixture
def store(clock) -> CacheStore:
    return CacheStore(
        "sessions",
        options=CacheOptions(max_items=10, ttl_seconds=5, check_interval_seconds=0.05),
        eviction=EvictionEngine(DictConfigProvider()),
        clock=clock,
    )


@pytest.fixture
def scheduler(store: CacheStore):
    sched = CleanupScheduler(store)
    yield sched
    sched.stop()


class TestLifecycle:
    def test_start_and_stop(self, scheduler: CleanupScheduler) -> None:
        scheduler.start()
        assert scheduler.is_running is True
        scheduler.stop()
        assert scheduler.is_running is False

    def test_double_start_raises(self, scheduler: CleanupScheduler) -> None:
        scheduler.start()
        with pytest.raises(SchedulerError):
            scheduler.start()

    def test_stop_is_idempotent(self, scheduler: CleanupScheduler) -> None:
        scheduler.stop()
        scheduler.start()
        scheduler.stop()
        scheduler.stop()
        assert scheduler.is_running is False

    def test_restart_after_stop(self, scheduler: CleanupScheduler) -> None:
        scheduler.start()
        scheduler.stop()
        scheduler.start()
        assert scheduler.is_running is True

    def test_non_positive_interval_rejected(self, store: CacheStore) -> None:
        with pytest.raises(SchedulerError):
            CleanupScheduler(store, interval_seconds=0)

    def test_interval_defaults_to_store_option(self, scheduler: CleanupScheduler) -> None:
        assert scheduler.stats()["interval_seconds"] == 0.05


class TestSweeping:
    def test_expired_items_removed_without_reads(
        self, store: CacheStore, scheduler: CleanupScheduler, clock
    ) -> None:
        store.set("short", 1, ItemOptions(ttl_seconds=1))
        store.set("long", 2, ItemOptions(ttl_seconds=100))
        clock.advance(2)

        scheduler.start()
        assert _wait_for(lambda: store.size() == 1)
        assert store.keys() == ["long"]
        assert store.get_stats().evictions == 1
        assert store.get_stats().hits == 0

    def test_run_once(self, store: CacheStore, scheduler: CleanupScheduler, clock) -> None:
        store.set("a", 1)
        store.set("b", 2)
        clock.advance(10)
        assert scheduler.run_once() == 2
        stats = scheduler.stats()
        assert stats["sweeps"] == 1
        assert stats["items_removed"] == 2

    def test_stopped_scheduler_no_longer_sweeps(
        self, store: CacheStore, scheduler: CleanupScheduler, clock
    ) -> None:
        scheduler.start()
        scheduler.stop()
        store.set("a", 1)
        clock.advance(10)
        time.sleep(0.2)
        assert store.size() == 1

    def test_sweep_error_is_logged_and_loop_continues(
        self, store: CacheStore, scheduler: CleanupScheduler
    ) -> None:
        calls = []

        def flaky() -> int:
            calls.append(1)
            if len(calls) == 1:
                raise RuntimeError("boom")
            return 0

        with patch.object(store, "sweep_expired", side_effect=flaky):
            scheduler.start()
            assert _wait_for(lambda: len(calls) >= 2)
            scheduler.stop()

        assert scheduler.stats()["sweep_errors"] == 1


class TestConcurrentTraffic:
    def test_sweep_and_workers_respect_capacity(self) -> None:
        max_items = 5
        workers = 8
        ops_per_worker = 200
        store = CacheStore(
            "presence",
            options=CacheOptions(
                max_items=max_items, ttl_seconds=0.02, check_interval_seconds=0.005
            ),
            eviction=EvictionEngine(DictConfigProvider()),
        )
        scheduler = CleanupScheduler(store)
        violations = []
        done = threading.Event()

        def monitor() -> None:
            while not done.is_set():
                size = store.size()
                if size > max_items:
                    violations.append(size)

        def worker(worker_id: int) -> None:
            for i in range(ops_per_worker):
                key = f"w{worker_id}-{i % 7}"
                store.set(key, i)
                store.get(key)
                store.has(f"w{(worker_id + 1) % workers}-{i % 7}")

        watcher = threading.Thread(target=monitor)
        threads = [threading.Thread(target=worker, args=(n,)) for n in range(workers)]
        scheduler.start()
        watcher.start()
        try:
            for t in threads:
                t.start()
            for t in threads:
                t.join(timeout=10.0)
        finally:
            done.set()
            watcher.join(timeout=2.0)
            scheduler.stop()

        assert violations == []
        assert store.size() <= max_items
        stats = store.get_stats()
        assert stats.sets == workers * ops_per_worker
        assert stats.hits + stats.misses <= workers * ops_per_worker
        assert scheduler.stats()["sweep_errors"] == 0

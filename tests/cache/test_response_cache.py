"""Tests for the response cache: expiry, eviction, recency and persistence."""

from __future__ import annotations

import pytest
from conftest import FakeClock, MemoryPersistence

from xcplane.cache.responses import ResponseCache
from xcplane.core.errors import InputError
from xcplane.core.scheduling import DelayedTaskQueue


@pytest.fixture
def cache(clock: FakeClock) -> ResponseCache:
    return ResponseCache(clock=clock, max_age_sec=60, max_entries=3)


class TestStoreAndGet:
    def test_get_after_store_returns_stored_data(self, cache: ResponseCache, clock: FakeClock) -> None:
        handle = cache.store(
            "xcodebuild-build",
            stdout="out",
            stderr="err",
            exit_code=65,
            command="xcodebuild build",
            metadata={"scheme": "App", "success": False, "duration_ms": 12, "sdk": None},
        )

        entry = cache.get(handle)

        assert entry is not None
        assert entry.handle == handle
        assert entry.created_at == clock.now
        assert entry.tool == "xcodebuild-build"
        assert (entry.stdout, entry.stderr, entry.exit_code) == ("out", "err", 65)
        assert entry.command == "xcodebuild build"
        assert entry.metadata == {"scheme": "App", "success": False, "duration_ms": 12, "sdk": None}

    def test_handles_are_unique(self, clock: FakeClock) -> None:
        cache = ResponseCache(clock=clock, max_entries=1000)

        handles = {cache.store("t", stdout=str(i)) for i in range(200)}

        assert len(handles) == 200

    def test_unknown_handle_is_none(self, cache: ResponseCache) -> None:
        assert cache.get("nope") is None

    def test_nested_metadata_rejected(self, cache: ResponseCache) -> None:
        with pytest.raises(InputError):
            cache.store("t", stdout="", metadata={"nested": {"a": 1}})  # type: ignore[dict-item]

        assert len(cache) == 0


class TestExpiry:
    def test_entry_reachable_until_max_age(self, cache: ResponseCache, clock: FakeClock) -> None:
        handle = cache.store("t", stdout="x")

        clock.advance(59.9)
        assert cache.get(handle) is not None

    def test_expired_entry_is_removed_on_lookup(self, cache: ResponseCache, clock: FakeClock) -> None:
        handle = cache.store("t", stdout="x")

        clock.advance(60)

        assert len(cache) == 1
        assert cache.get(handle) is None
        assert len(cache) == 0

    def test_store_purges_expired_entries(self, cache: ResponseCache, clock: FakeClock) -> None:
        cache.store("t", stdout="old")
        clock.advance(61)

        cache.store("t", stdout="new")

        assert len(cache) == 1


class TestEviction:
    def test_capacity_keeps_most_recent(self, cache: ResponseCache, clock: FakeClock) -> None:
        handles = []
        for i in range(5):
            handles.append(cache.store("t", stdout=str(i)))
            clock.advance(1)

        assert len(cache) == 3
        assert [cache.get(h) is not None for h in handles] == [False, False, True, True, True]

    def test_same_timestamp_evicts_in_insertion_order(self, cache: ResponseCache) -> None:
        handles = [cache.store("t", stdout=str(i)) for i in range(4)]

        assert cache.get(handles[0]) is None
        assert all(cache.get(h) is not None for h in handles[1:])


class TestRecentByTool:
    def test_returns_newest_first_truncated(self, clock: FakeClock) -> None:
        cache = ResponseCache(clock=clock)
        first = cache.store("build", stdout="1")
        clock.advance(1)
        second = cache.store("build", stdout="2")
        clock.advance(1)
        cache.store("test", stdout="t")
        third = cache.store("build", stdout="3")

        recent = cache.get_recent_by_tool("build", 2)

        assert [e.handle for e in recent] == [third, second]
        assert first not in [e.handle for e in recent]

    def test_default_limit_is_five(self, clock: FakeClock) -> None:
        cache = ResponseCache(clock=clock)
        for i in range(8):
            cache.store("build", stdout=str(i))

        assert len(cache.get_recent_by_tool("build")) == 5

    def test_expired_entries_excluded(self, cache: ResponseCache, clock: FakeClock) -> None:
        cache.store("build", stdout="old")
        clock.advance(61)

        assert cache.get_recent_by_tool("build") == []


class TestDeleteClearStats:
    def test_delete(self, cache: ResponseCache) -> None:
        handle = cache.store("t", stdout="x")

        assert cache.delete(handle) is True
        assert cache.delete(handle) is False
        assert cache.get(handle) is None

    def test_clear_and_stats(self, clock: FakeClock) -> None:
        cache = ResponseCache(clock=clock)
        cache.store("build", stdout="1")
        cache.store("build", stdout="2")
        cache.store("simctl-list", stdout="3")

        assert cache.get_stats() == {
            "total_entries": 3,
            "by_tool": {"build": 2, "simctl-list": 1},
        }

        cache.clear()
        assert cache.get_stats()["total_entries"] == 0


class TestPersistence:
    def test_disabled_store_is_never_touched(self, clock: FakeClock, tasks: DelayedTaskQueue) -> None:
        store = MemoryPersistence(enabled=False)
        cache = ResponseCache(persistence=store, tasks=tasks, clock=clock)

        handle = cache.store("t", stdout="x")
        cache.delete(handle)
        tasks.flush()

        assert store.loads == []
        assert store.saves == []
        assert tasks.pending() == []

    def test_load_is_scheduled_not_inline(self, clock: FakeClock, tasks: DelayedTaskQueue) -> None:
        store = MemoryPersistence()

        ResponseCache(persistence=store, tasks=tasks, clock=clock)

        assert store.loads == []
        assert tasks.pending() == ["load:responses"]
        tasks.flush()
        assert store.loads == ["responses"]

    def test_mutations_coalesce_into_one_save(
        self, clock: FakeClock, tasks: DelayedTaskQueue, persistence: MemoryPersistence
    ) -> None:
        cache = ResponseCache(persistence=persistence, tasks=tasks, clock=clock)
        tasks.flush("load:")

        for i in range(10):
            cache.store("t", stdout=str(i))
        tasks.flush()

        assert persistence.saves == ["responses"]
        assert len(persistence.state["responses"]["entries"]) == 10

    def test_round_trip_through_store(
        self, clock: FakeClock, tasks: DelayedTaskQueue, persistence: MemoryPersistence
    ) -> None:
        cache = ResponseCache(persistence=persistence, tasks=tasks, clock=clock)
        handle = cache.store("build", stdout="full log", metadata={"scheme": "App"})
        tasks.flush()

        other_tasks = DelayedTaskQueue()
        restored = ResponseCache(persistence=persistence, tasks=other_tasks, clock=clock)
        other_tasks.flush("load:")

        entry = restored.get(handle)
        assert entry is not None
        assert entry.stdout == "full log"
        assert entry.metadata == {"scheme": "App"}

    def test_restored_entries_merge_beneath_new_ones(
        self, clock: FakeClock, tasks: DelayedTaskQueue
    ) -> None:
        old = {
            "handle": "old-1",
            "tool": "build",
            "created_at": clock.now - 10,
            "stdout": "old",
            "stderr": "",
            "exit_code": 0,
            "command": "",
            "metadata": {},
        }
        store = MemoryPersistence(state={"responses": {"entries": [old]}})
        cache = ResponseCache(persistence=store, tasks=tasks, clock=clock, max_entries=2)
        new_a = cache.store("build", stdout="a")
        new_b = cache.store("build", stdout="b")

        tasks.flush("load:")

        # capacity 2: the restored entry is older than both new ones
        assert cache.get("old-1") is None
        assert cache.get(new_a) is not None
        assert cache.get(new_b) is not None

    def test_expired_persisted_entries_dropped_on_load(
        self, clock: FakeClock, tasks: DelayedTaskQueue
    ) -> None:
        stale = {"handle": "stale", "tool": "t", "created_at": clock.now - 10_000, "stdout": ""}
        store = MemoryPersistence(state={"responses": {"entries": [stale]}})
        cache = ResponseCache(persistence=store, tasks=tasks, clock=clock)

        tasks.flush("load:")

        assert len(cache) == 0

    def test_load_failure_leaves_cache_usable(
        self, clock: FakeClock, tasks: DelayedTaskQueue
    ) -> None:
        store = MemoryPersistence()

        def broken_load(key: str) -> None:
            raise OSError("disk gone")

        store.load_state = broken_load  # type: ignore[method-assign]
        cache = ResponseCache(persistence=store, tasks=tasks, clock=clock)
        tasks.flush("load:")

        handle = cache.store("t", stdout="x")
        assert cache.get(handle) is not None

    def test_save_failure_is_swallowed(self, clock: FakeClock, tasks: DelayedTaskQueue) -> None:
        store = MemoryPersistence()

        def broken_save(key: str, blob: dict) -> None:
            raise OSError("read-only")

        store.save_state = broken_save  # type: ignore[method-assign]
        cache = ResponseCache(persistence=store, tasks=tasks, clock=clock)

        cache.store("t", stdout="x")
        assert tasks.flush() == 2
        assert len(cache) == 1

    def test_malformed_persisted_entries_skipped(
        self, clock: FakeClock, tasks: DelayedTaskQueue
    ) -> None:
        good = {"handle": "good", "tool": "t", "created_at": clock.now, "stdout": "ok"}
        store = MemoryPersistence(state={"responses": {"entries": [{"tool": "no handle"}, good]}})
        cache = ResponseCache(persistence=store, tasks=tasks, clock=clock)

        tasks.flush("load:")

        assert cache.get("good") is not None
        assert len(cache) == 1

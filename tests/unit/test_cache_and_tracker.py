"""Unit tests for MemoryCacheProvider, StatusTracker and IngestionWorkerPool."""

from __future__ import annotations

import asyncio

import pytest

from docrag.models.document import DocumentStatus
from docrag.pipeline.status_tracker import StatusTracker
from docrag.pipeline.worker_pool import IngestionWorkerPool
from docrag.providers.cache.memory_cache import MemoryCacheProvider


# ======================================================================
# MemoryCacheProvider
# ======================================================================


class TestMemoryCacheProvider:
    @pytest.fixture()
    def cache(self) -> MemoryCacheProvider:
        return MemoryCacheProvider(max_size=3)

    @pytest.mark.asyncio
    async def test_get_missing_key_returns_none(self, cache: MemoryCacheProvider) -> None:
        assert await cache.get("nonexistent") is None

    @pytest.mark.asyncio
    async def test_set_and_get(self, cache: MemoryCacheProvider) -> None:
        await cache.set("key1", [0.1, 0.2])
        assert await cache.get("key1") == [0.1, 0.2]

    @pytest.mark.asyncio
    async def test_delete_removes_key(self, cache: MemoryCacheProvider) -> None:
        await cache.set("key1", "value1")
        await cache.delete("key1")
        assert await cache.exists("key1") is False

    @pytest.mark.asyncio
    async def test_delete_nonexistent_is_noop(self, cache: MemoryCacheProvider) -> None:
        await cache.delete("nonexistent")

    @pytest.mark.asyncio
    async def test_clear(self, cache: MemoryCacheProvider) -> None:
        await cache.set("a", 1)
        await cache.set("b", 2)
        await cache.clear()
        assert cache.size() == 0

    @pytest.mark.asyncio
    async def test_default_cache_never_evicts(self) -> None:
        cache = MemoryCacheProvider()
        for i in range(5000):
            await cache.set(f"k{i}", i)

        assert cache.size() == 5000
        assert await cache.get("k0") == 0

        await cache.clear()
        assert cache.size() == 0

    @pytest.mark.asyncio
    async def test_lru_eviction(self, cache: MemoryCacheProvider) -> None:
        for key in ("a", "b", "c"):
            await cache.set(key, key)
        await cache.get("a")  # refresh "a"
        await cache.set("d", "d")

        assert cache.size() == 3
        assert await cache.exists("a") is True
        assert await cache.exists("b") is False


# ======================================================================
# StatusTracker
# ======================================================================


class TestStatusTracker:
    @pytest.fixture()
    def tracker(self) -> StatusTracker:
        return StatusTracker()

    @pytest.mark.asyncio
    async def test_history_is_ordered(self, tracker: StatusTracker) -> None:
        for status in (DocumentStatus.PENDING, DocumentStatus.PROCESSING, DocumentStatus.COMPLETED):
            await tracker.record("doc-1", status)

        assert tracker.get_history("doc-1") == [
            DocumentStatus.PENDING,
            DocumentStatus.PROCESSING,
            DocumentStatus.COMPLETED,
        ]
        assert tracker.get_status("doc-1") == {"status": "COMPLETED", "message": ""}

    def test_untracked_document(self, tracker: StatusTracker) -> None:
        assert tracker.get_history("missing") == []
        assert tracker.get_status("missing") == {"status": None, "message": ""}

    @pytest.mark.asyncio
    async def test_sync_and_async_listeners(self, tracker: StatusTracker) -> None:
        sync_events: list[tuple] = []
        async_events: list[tuple] = []

        def on_sync(document_id, status, message):
            sync_events.append((document_id, status, message))

        async def on_async(document_id, status, message):
            async_events.append((document_id, status, message))

        tracker.register_listener(on_sync, "doc-1")
        tracker.register_listener(on_async)

        await tracker.record("doc-1", DocumentStatus.FAILED, "boom")
        await tracker.record("doc-2", DocumentStatus.PENDING)

        assert sync_events == [("doc-1", DocumentStatus.FAILED, "boom")]
        assert [e[0] for e in async_events] == ["doc-1", "doc-2"]

    @pytest.mark.asyncio
    async def test_duplicate_registration_notifies_once(self, tracker: StatusTracker) -> None:
        events: list[str] = []

        def listener(document_id, status, message):
            events.append(document_id)

        tracker.register_listener(listener)
        tracker.register_listener(listener)
        await tracker.record("doc-1", DocumentStatus.PENDING)
        assert events == ["doc-1"]

    @pytest.mark.asyncio
    async def test_unregister_listener(self, tracker: StatusTracker) -> None:
        events: list[str] = []

        def listener(document_id, status, message):
            events.append(document_id)

        tracker.register_listener(listener, "doc-1")
        tracker.unregister_listener(listener, "doc-1")
        await tracker.record("doc-1", DocumentStatus.PENDING)
        assert events == []

    @pytest.mark.asyncio
    async def test_listener_error_is_contained(self, tracker: StatusTracker) -> None:
        events: list[str] = []

        def broken(document_id, status, message):
            raise RuntimeError("listener bug")

        def healthy(document_id, status, message):
            events.append(document_id)

        tracker.register_listener(broken)
        tracker.register_listener(healthy)
        await tracker.record("doc-1", DocumentStatus.PENDING)

        assert events == ["doc-1"]
        assert tracker.get_history("doc-1") == [DocumentStatus.PENDING]

    @pytest.mark.asyncio
    async def test_finished_histories_are_bounded(self) -> None:
        tracker = StatusTracker(max_finished=2)
        await tracker.record("active", DocumentStatus.PENDING)
        for document_id in ("doc-1", "doc-2", "doc-3"):
            await tracker.record(document_id, DocumentStatus.PENDING)
            await tracker.record(document_id, DocumentStatus.PROCESSING)
            await tracker.record(document_id, DocumentStatus.COMPLETED)

        assert tracker.get_history("doc-1") == []
        assert tracker.get_history("doc-2")[-1] == DocumentStatus.COMPLETED
        assert tracker.get_status("doc-3") == {"status": "COMPLETED", "message": ""}
        assert tracker.get_history("active") == [DocumentStatus.PENDING]

    @pytest.mark.asyncio
    async def test_document_listeners_dropped_after_terminal_status(
        self, tracker: StatusTracker
    ) -> None:
        events: list[DocumentStatus] = []

        def listener(document_id, status, message):
            events.append(status)

        tracker.register_listener(listener, "doc-1")
        await tracker.record("doc-1", DocumentStatus.PROCESSING)
        await tracker.record("doc-1", DocumentStatus.FAILED, "boom")
        await tracker.record("doc-1", DocumentStatus.FAILED, "again")

        assert events == [DocumentStatus.PROCESSING, DocumentStatus.FAILED]
        assert tracker.get_status("doc-1") == {"status": "FAILED", "message": "again"}

    @pytest.mark.asyncio
    async def test_forget(self, tracker: StatusTracker) -> None:
        await tracker.record("doc-1", DocumentStatus.PENDING)
        tracker.forget("doc-1")
        assert tracker.get_history("doc-1") == []


# ======================================================================
# IngestionWorkerPool
# ======================================================================


class TestIngestionWorkerPool:
    @pytest.mark.asyncio
    async def test_submit_starts_pool_and_processes(self) -> None:
        processed: list[str] = []

        async def handler(document_id: str) -> None:
            processed.append(document_id)

        pool = IngestionWorkerPool(handler, workers=2)
        assert pool.is_running is False

        for i in range(5):
            pool.submit(f"doc-{i}")
        assert pool.is_running is True

        await pool.join()
        assert sorted(processed) == [f"doc-{i}" for i in range(5)]
        assert pool.pending == 0
        await pool.shutdown()
        assert pool.is_running is False

    @pytest.mark.asyncio
    async def test_concurrency_is_bounded(self) -> None:
        active = 0
        peak = 0

        async def handler(document_id: str) -> None:
            nonlocal active, peak
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(0.01)
            active -= 1

        pool = IngestionWorkerPool(handler, workers=2)
        for i in range(6):
            pool.submit(f"doc-{i}")
        await pool.shutdown()

        assert peak == 2

    @pytest.mark.asyncio
    async def test_handler_crash_does_not_stop_worker(self) -> None:
        processed: list[str] = []

        async def handler(document_id: str) -> None:
            if document_id == "bad":
                raise RuntimeError("crash")
            processed.append(document_id)

        pool = IngestionWorkerPool(handler, workers=1)
        pool.submit("bad")
        pool.submit("good")
        await pool.join()

        assert processed == ["good"]
        await pool.shutdown()

    @pytest.mark.asyncio
    async def test_shutdown_without_start_is_noop(self) -> None:
        async def handler(document_id: str) -> None:
            return None

        pool = IngestionWorkerPool(handler)
        await pool.shutdown()
        await pool.join()
        assert pool.pending == 0

    def test_invalid_worker_count(self) -> None:
        async def handler(document_id: str) -> None:
            return None

        with pytest.raises(ValueError):
            IngestionWorkerPool(handler, workers=0)

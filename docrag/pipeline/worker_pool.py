"""Bounded asyncio worker pool for document processing.

Uploads return as soon as the document is persisted PENDING; the document
ID is put on an ``asyncio.Queue`` and one of ``workers`` long-lived tasks
picks it up and runs the handler (``IngestionService.process``).  The
queue lives in memory only: jobs do not survive a process restart.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable

import structlog

logger = structlog.get_logger(logger_name=__name__)


class IngestionWorkerPool:
    """Runs ``handler(document_id)`` for queued IDs on a fixed set of tasks.

    Parameters
    ----------
    handler:
        Coroutine function processing one document.  Exceptions it raises
        are logged; they never stop a worker.
    workers:
        Number of concurrent worker tasks.
    """

    def __init__(
        self,
        handler: Callable[[str], Awaitable[None]],
        workers: int = 2,
    ) -> None:
        if workers < 1:
            raise ValueError("workers must be at least 1")
        self._handler = handler
        self._worker_count = workers
        self._queue: asyncio.Queue[str] | None = None
        self._tasks: list[asyncio.Task[None]] = []

    @property
    def is_running(self) -> bool:
        return bool(self._tasks)

    @property
    def pending(self) -> int:
        return self._queue.qsize() if self._queue is not None else 0

    def start(self) -> None:
        """Spawn the worker tasks.  Must be called from a running event loop."""
        if self._tasks:
            return
        self._queue = asyncio.Queue()
        self._tasks = [
            asyncio.create_task(self._worker(i), name=f"ingestion-worker-{i}")
            for i in range(self._worker_count)
        ]
        logger.info("worker_pool_started", workers=self._worker_count)

    def submit(self, document_id: str) -> None:
        """Queue *document_id* for processing, starting the pool if needed."""
        if not self._tasks:
            self.start()
        assert self._queue is not None
        self._queue.put_nowait(document_id)
        logger.debug("job_submitted", document_id=document_id, queued=self._queue.qsize())

    async def join(self) -> None:
        """Wait until every queued job has been processed."""
        if self._queue is not None:
            await self._queue.join()

    async def shutdown(self) -> None:
        """Drain the queue, then stop the workers."""
        if not self._tasks:
            return
        await self.join()
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        self._queue = None
        logger.info("worker_pool_stopped")

    async def _worker(self, index: int) -> None:
        assert self._queue is not None
        queue = self._queue
        while True:
            document_id = await queue.get()
            try:
                await self._handler(document_id)
            except Exception as exc:
                logger.error(
                    "ingestion_job_crashed",
                    worker=index,
                    document_id=document_id,
                    error=str(exc),
                )
            finally:
                queue.task_done()

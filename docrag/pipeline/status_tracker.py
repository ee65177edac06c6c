"""Document status tracking with callback-based listener notification.

Records every status transition the ingestion service persists and
broadcasts it to registered listeners.  Listeners are keyed by document ID,
with ``None`` meaning "every document", so the CLI can wait on one upload
while a log sink watches them all.

# ─── HOW STATUS TRACKING WORKS ────────────────────────────────────────
#
# Observer pattern:
#
#   IngestionService ──record()──→ StatusTracker ──callback()──→ CLI waiter
#                                                ──callback()──→ (any other listener)
#
#   - The tracker keeps the ordered status history per document, which is
#     what tests use to assert PENDING → PROCESSING → COMPLETED.
#   - Once a document reaches COMPLETED or FAILED and its listeners have
#     run, its history moves to a bounded LRU of finished documents and its
#     per-document listeners are dropped.
#   - Listener errors are caught and logged; they never reach the worker.
#   - Both sync and async callbacks are supported.
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass, field

import structlog
from cachetools import LRUCache

from docrag.models.document import DocumentStatus
from docrag.utils.logging import get_logger

_TERMINAL = frozenset({DocumentStatus.COMPLETED, DocumentStatus.FAILED})


@dataclass
class _DocumentHistory:
    """Internal status history for a single document."""

    statuses: list[DocumentStatus] = field(default_factory=list)
    message: str = ""


class StatusTracker:
    """Tracks and broadcasts document status transitions.

    Parameters
    ----------
    max_finished:
        How many COMPLETED or FAILED histories to keep for inspection; the
        least recently used is dropped first.
    """

    def __init__(self, max_finished: int = 1000) -> None:
        self._histories: dict[str, _DocumentHistory] = {}
        self._finished: LRUCache[str, _DocumentHistory] = LRUCache(maxsize=max_finished)
        # None key = listeners for every document.
        self._listeners: dict[str | None, list[Callable]] = {}
        self._logger: structlog.BoundLogger = get_logger(__name__)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def record(self, document_id: str, status: DocumentStatus, message: str = "") -> None:
        """Append *status* to the document's history and notify listeners.

        Parameters
        ----------
        document_id:
            The document whose status changed.
        status:
            The status just persisted.
        message:
            Error message for FAILED, otherwise free text.
        """
        history = self._histories.get(document_id) or self._finished.pop(document_id, None)
        if history is None:
            history = _DocumentHistory()
        self._histories[document_id] = history
        history.statuses.append(status)
        history.message = message

        self._logger.debug(
            "document_status",
            document_id=document_id,
            status=status.value,
            message=message,
        )
        await self._notify_listeners(document_id, status, message)

        if status in _TERMINAL:
            finished = self._histories.pop(document_id, None)
            if finished is not None:
                self._finished[document_id] = finished
            self._listeners.pop(document_id, None)

    def register_listener(self, callback: Callable, document_id: str | None = None) -> None:
        """Register a callback ``(document_id, status, message)``.

        Parameters
        ----------
        callback:
            Sync or async callable.
        document_id:
            Only notify for this document; ``None`` for every document.
        """
        listeners = self._listeners.setdefault(document_id, [])
        if callback not in listeners:
            listeners.append(callback)

    def unregister_listener(self, callback: Callable, document_id: str | None = None) -> None:
        listeners = self._listeners.get(document_id, [])
        if callback in listeners:
            listeners.remove(callback)

    def get_history(self, document_id: str) -> list[DocumentStatus]:
        """Return every status recorded for the document, oldest first."""
        history = self._lookup(document_id)
        return list(history.statuses) if history else []

    def get_status(self, document_id: str) -> dict:
        """Return the latest status and message, or empty values if untracked."""
        history = self._lookup(document_id)
        if history is None or not history.statuses:
            return {"status": None, "message": ""}
        return {"status": history.statuses[-1].value, "message": history.message}

    def forget(self, document_id: str) -> None:
        """Drop the history and per-document listeners of a deleted document."""
        self._histories.pop(document_id, None)
        self._finished.pop(document_id, None)
        self._listeners.pop(document_id, None)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _lookup(self, document_id: str) -> _DocumentHistory | None:
        history = self._histories.get(document_id)
        if history is None:
            history = self._finished.get(document_id)
        return history

    async def _notify_listeners(
        self,
        document_id: str,
        status: DocumentStatus,
        message: str,
    ) -> None:
        listeners = [*self._listeners.get(document_id, []), *self._listeners.get(None, [])]
        for callback in listeners:
            try:
                result = callback(document_id, status, message)
                if asyncio.iscoroutine(result):
                    await result
            except Exception as exc:
                self._logger.warning(
                    "listener_callback_error",
                    document_id=document_id,
                    error=str(exc),
                    callback=getattr(callback, "__name__", repr(callback)),
                )

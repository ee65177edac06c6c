"""Orchestrator for document ingestion.

Pipeline stages: **validate -> dedup -> store blob -> queue -> extract ->
chunk -> embed -> persist**.

:meth:`IngestionService.upload` runs synchronously for the caller up to the
point where the document is persisted PENDING; everything after that runs
on the :class:`~docrag.pipeline.worker_pool.IngestionWorkerPool` and is
observable only through the document's status and ``error_message``::

    upload() ──▶ PENDING ──queue──▶ process() ──▶ PROCESSING
                                                    │
                     extract → chunk → embed → add_fragments
                                                    │
                                   COMPLETED ◀──────┴──────▶ FAILED

A document's fragments are committed all at once: every fragment is
embedded first, then a single storage transaction writes the whole set.
Any failure before that commit leaves the document FAILED with no
fragments.
"""

from __future__ import annotations

import asyncio
import mimetypes
import re
import uuid
from pathlib import PurePath

import structlog

from docrag.config.settings import DEFAULT_ALLOWED_CONTENT_TYPES
from docrag.interfaces.blob_store import IBlobStore
from docrag.interfaces.document_store import IDocumentStore
from docrag.interfaces.text_extractor import ITextExtractor
from docrag.models.document import Document, DocumentStatus, Fragment
from docrag.pipeline.status_tracker import StatusTracker
from docrag.pipeline.worker_pool import IngestionWorkerPool
from docrag.services.embedding_service import EmbeddingService
from docrag.services.ingestion.chunker import TextChunker
from docrag.utils.concurrency import throttled_gather
from docrag.utils.errors import (
    DocRagError,
    DocumentValidationError,
    EmbeddingError,
    ExtractionError,
    InvalidTransitionError,
    StorageError,
)
from docrag.utils.hashing import sha256_bytes

logger = structlog.get_logger(logger_name=__name__)

mimetypes.add_type("text/markdown", ".md")
mimetypes.add_type("text/markdown", ".markdown")
mimetypes.add_type("application/rtf", ".rtf")

_GENERIC_CONTENT_TYPE = "application/octet-stream"
_SAFE_EXTENSION = re.compile(r"\.[a-z0-9]{1,10}")
_NO_TEXT_MESSAGE = "No text content extracted"
_INTERRUPTED_MESSAGE = "Processing interrupted"


class IngestionService:
    """Owns the document lifecycle from upload to COMPLETED / FAILED.

    Parameters
    ----------
    store:
        Document and fragment persistence.
    blob_store:
        Storage for the original uploaded bytes.
    extractor:
        Plain-text extraction.
    chunker:
        Splits extracted text into fragments.
    embedding_service:
        Embeds fragment text (cached, retrying).
    tracker:
        Receives every persisted status transition.
    max_upload_bytes:
        Uploads larger than this are rejected.
    allowed_content_types:
        Normalised MIME types accepted by :meth:`upload`.
    embedding_concurrency:
        Maximum embedding calls in flight for one document.
    workers:
        Number of background processing tasks.
    """

    def __init__(
        self,
        store: IDocumentStore,
        blob_store: IBlobStore,
        extractor: ITextExtractor,
        chunker: TextChunker,
        embedding_service: EmbeddingService,
        tracker: StatusTracker | None = None,
        max_upload_bytes: int = 50 * 1024 * 1024,
        allowed_content_types: list[str] | None = None,
        embedding_concurrency: int = 4,
        workers: int = 2,
    ) -> None:
        self._store = store
        self._blob_store = blob_store
        self._extractor = extractor
        self._chunker = chunker
        self._embedding_service = embedding_service
        self._tracker = tracker or StatusTracker()
        self._max_upload_bytes = max_upload_bytes
        self._allowed_content_types = frozenset(
            t.lower() for t in (allowed_content_types or DEFAULT_ALLOWED_CONTENT_TYPES)
        )
        self._embedding_concurrency = max(1, embedding_concurrency)
        self._pool = IngestionWorkerPool(self.process, workers=workers)
        self._upload_lock = asyncio.Lock()

    @property
    def tracker(self) -> StatusTracker:
        return self._tracker

    # ------------------------------------------------------------------
    # Upload
    # ------------------------------------------------------------------

    async def upload(
        self,
        data: bytes,
        filename: str,
        scope_id: str,
        content_type: str | None = None,
    ) -> Document:
        """Validate, de-duplicate and queue a document for processing.

        Returns the existing document unchanged when the same bytes were
        already uploaded to *scope_id*.

        Raises
        ------
        DocumentValidationError
            Empty upload, upload over the size limit, or unsupported type.
        StorageError
            If the blob or the document row cannot be written.
        """
        if not data:
            raise DocumentValidationError("No file provided")
        if len(data) > self._max_upload_bytes:
            limit_mb = self._max_upload_bytes // (1024 * 1024)
            raise DocumentValidationError(f"File too large. Maximum size is {limit_mb} MB")

        normalized_type = self.normalize_content_type(content_type, filename)
        if normalized_type not in self._allowed_content_types:
            raise DocumentValidationError(f"Unsupported file type: {normalized_type}")

        content_hash = sha256_bytes(data)

        # Serialises the find-then-insert so concurrent identical uploads
        # resolve to one document.
        async with self._upload_lock:
            existing = await self._store.find_by_hash(content_hash, scope_id)
            if existing is not None:
                logger.info(
                    "upload_deduplicated",
                    document_id=existing.document_id,
                    scope_id=scope_id,
                    filename=filename,
                )
                return existing

            stored_filename = f"{uuid.uuid4()}{self._safe_extension(filename)}"
            await self._blob_store.save(stored_filename, data)

            document = Document(
                scope_id=scope_id,
                original_filename=filename,
                stored_filename=stored_filename,
                content_type=normalized_type,
                size_bytes=len(data),
                content_hash=content_hash,
            )
            try:
                await self._store.add_document(document)
            except StorageError:
                await self._remove_blob(stored_filename)
                raise

        await self._tracker.record(document.document_id, DocumentStatus.PENDING)
        self._pool.submit(document.document_id)
        logger.info(
            "document_uploaded",
            document_id=document.document_id,
            scope_id=scope_id,
            filename=filename,
            content_type=normalized_type,
            size_bytes=len(data),
        )
        return document

    # ------------------------------------------------------------------
    # Processing (runs on the worker pool)
    # ------------------------------------------------------------------

    async def process(self, document_id: str) -> None:
        """Drive one PENDING document to COMPLETED or FAILED.

        Never raises: every failure is recorded on the document.
        """
        try:
            document = await self._store.get_document(document_id)
        except StorageError as exc:
            logger.error("process_lookup_failed", document_id=document_id, error=str(exc))
            return

        if document is None:
            logger.warning("process_document_not_found", document_id=document_id)
            return
        if document.status != DocumentStatus.PENDING:
            logger.warning(
                "process_document_not_pending",
                document_id=document_id,
                status=document.status.value,
            )
            return

        try:
            document = await self._transition(document, DocumentStatus.PROCESSING)
        except (StorageError, InvalidTransitionError) as exc:
            logger.error("process_start_failed", document_id=document_id, error=str(exc))
            return

        try:
            fragment_count = await self._extract_chunk_embed_store(document)
            document = await self._transition(
                document, DocumentStatus.COMPLETED, fragment_count=fragment_count
            )
        except (ExtractionError, EmbeddingError, StorageError) as exc:
            await self._fail(document, str(exc))
            return
        except Exception as exc:
            logger.exception("process_unexpected_error", document_id=document_id)
            await self._fail(document, f"Unexpected error: {exc}")
            return

        logger.info(
            "document_processed",
            document_id=document_id,
            fragments=fragment_count,
            filename=document.original_filename,
        )

    async def _extract_chunk_embed_store(self, document: Document) -> int:
        data = await self._blob_store.load(document.stored_filename)
        text = await asyncio.to_thread(
            self._extractor.extract, data, document.original_filename, document.content_type
        )
        if not text or not text.strip():
            raise ExtractionError(_NO_TEXT_MESSAGE)

        chunks = self._chunker.chunk(text)
        if not chunks:
            raise ExtractionError(_NO_TEXT_MESSAGE)

        semaphore = asyncio.Semaphore(self._embedding_concurrency)
        vectors = await throttled_gather(
            [self._embedding_service.embed(c.content) for c in chunks],
            semaphore=semaphore,
        )

        dimensions = {len(v) for v in vectors}
        if len(dimensions) != 1:
            raise EmbeddingError(
                f"Inconsistent embedding dimensions within document: {sorted(dimensions)}"
            )

        fragments = [
            Fragment(
                document_id=document.document_id,
                order=chunk.order,
                content=chunk.content,
                token_estimate=chunk.token_estimate,
                embedding=vector,
            )
            for chunk, vector in zip(chunks, vectors)
        ]
        await self._store.add_fragments(fragments)
        logger.debug(
            "fragments_persisted",
            document_id=document.document_id,
            **self._chunker.get_chunk_stats(chunks),
        )
        return len(fragments)

    async def _transition(
        self,
        document: Document,
        status: DocumentStatus,
        *,
        error_message: str | None = None,
        fragment_count: int | None = None,
    ) -> Document:
        updated = document.transition_to(
            status, error_message=error_message, fragment_count=fragment_count
        )
        await self._store.update_status(
            updated.document_id,
            updated.status,
            error_message=updated.error_message if status == DocumentStatus.FAILED else None,
            fragment_count=fragment_count,
            processed_at=updated.processed_at,
        )
        await self._tracker.record(updated.document_id, status, updated.error_message or "")
        return updated

    async def _fail(self, document: Document, message: str) -> None:
        logger.warning("document_failed", document_id=document.document_id, error=message)
        try:
            await self._transition(document, DocumentStatus.FAILED, error_message=message)
        except (StorageError, InvalidTransitionError) as exc:
            logger.error(
                "document_failure_not_recorded",
                document_id=document.document_id,
                error=str(exc),
            )

    # ------------------------------------------------------------------
    # Queries and maintenance
    # ------------------------------------------------------------------

    async def get_document(self, document_id: str) -> Document | None:
        return await self._store.get_document(document_id)

    async def list_documents(self, scope_id: str | None = None) -> list[Document]:
        """Return documents newest first."""
        return await self._store.list_documents(scope_id)

    async def document_counts(self, scope_id: str | None = None) -> dict[str, int]:
        """Return the number of documents per status."""
        return {
            status.value: await self._store.count_documents(scope_id, status)
            for status in DocumentStatus
        }

    async def delete(self, document_id: str) -> bool:
        """Delete a document, its fragments and (best effort) its blob."""
        document = await self._store.get_document(document_id)
        if document is None:
            return False

        deleted = await self._store.delete_document(document_id)
        await self._remove_blob(document.stored_filename)
        self._tracker.forget(document_id)
        logger.info("document_removed", document_id=document_id, scope_id=document.scope_id)
        return deleted

    async def get_content(self, document_id: str) -> str | None:
        """Return the text of a COMPLETED document, fragments joined by blank lines."""
        document = await self._store.get_document(document_id)
        if document is None or document.status != DocumentStatus.COMPLETED:
            return None
        fragments = await self._store.get_fragments(document_id)
        return "\n\n".join(f.content for f in fragments).strip()

    async def get_all_content(self, scope_id: str) -> str:
        """Return the text of every COMPLETED document in *scope_id*.

        Documents appear newest first, each followed by a ``---`` rule.
        Storage failures are logged and produce an empty string.
        """
        try:
            documents = await self._store.list_documents(scope_id)
            parts: list[str] = []
            for document in documents:
                if document.status != DocumentStatus.COMPLETED:
                    continue
                for fragment in await self._store.get_fragments(document.document_id):
                    parts.append(fragment.content + "\n\n")
                parts.append("---\n\n")
        except DocRagError as exc:
            logger.error("get_all_content_failed", scope_id=scope_id, error=str(exc))
            return ""
        return "".join(parts).strip()

    async def recover_pending(self) -> dict[str, int]:
        """Re-queue PENDING documents and fail interrupted PROCESSING ones.

        Meant to be called once at start-up against a persistent database,
        before any upload in this process; a document found PROCESSING at
        that point was cut off by a previous shutdown.
        """
        interrupted = await self._store.list_by_status(DocumentStatus.PROCESSING)
        for document in interrupted:
            await self._fail(document, _INTERRUPTED_MESSAGE)

        pending = await self._store.list_by_status(DocumentStatus.PENDING)
        for document in pending:
            self._pool.submit(document.document_id)

        logger.info("recovery_complete", resubmitted=len(pending), interrupted=len(interrupted))
        return {"resubmitted": len(pending), "interrupted": len(interrupted)}

    async def wait_until_idle(self) -> None:
        """Wait until every queued document has been processed."""
        await self._pool.join()

    async def shutdown(self) -> None:
        """Finish queued work, then stop the workers."""
        await self._pool.shutdown()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def normalize_content_type(content_type: str | None, filename: str) -> str:
        """Strip MIME parameters and lower-case; guess from *filename* if absent."""
        if content_type and content_type.strip():
            return content_type.split(";", 1)[0].strip().lower()
        guessed, _ = mimetypes.guess_type(filename)
        return (guessed or _GENERIC_CONTENT_TYPE).lower()

    @staticmethod
    def _safe_extension(filename: str) -> str:
        suffix = PurePath(filename).suffix.lower()
        return suffix if _SAFE_EXTENSION.fullmatch(suffix) else ""

    async def _remove_blob(self, key: str) -> None:
        try:
            await self._blob_store.delete(key)
        except StorageError as exc:
            logger.warning("blob_delete_failed", key=key, error=str(exc))

"""Abstract base classes for document and fragment persistence.

``IDocumentStore`` is the relational side: documents, their status and their
ordered fragments.  ``IVectorSearchStore`` is an optional capability a store
adds when its backend can run a similarity query itself; the composition
root checks for it with ``isinstance`` to pick the native retrieval strategy.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime

from docrag.models.document import Document, DocumentStatus, Fragment
from docrag.models.rag import RetrievedFragment


class IDocumentStore(ABC):
    """Contract for storing documents and fragments.

    Every method raises :class:`~docrag.utils.errors.StorageError` when the
    backend fails.
    """

    @abstractmethod
    async def initialize(self) -> None:
        """Create tables / collections.  Idempotent."""

    @abstractmethod
    async def close(self) -> None:
        """Release backend resources."""

    @abstractmethod
    async def add_document(self, document: Document) -> None:
        """Insert a new document row."""

    @abstractmethod
    async def get_document(self, document_id: str) -> Document | None:
        """Return the document or ``None``."""

    @abstractmethod
    async def find_by_hash(self, content_hash: str, scope_id: str) -> Document | None:
        """Return the document with *content_hash* in *scope_id*, if any."""

    @abstractmethod
    async def list_documents(self, scope_id: str | None = None) -> list[Document]:
        """Return documents, newest first, optionally limited to one scope."""

    @abstractmethod
    async def list_by_status(self, status: DocumentStatus) -> list[Document]:
        """Return every document currently in *status*, oldest first."""

    @abstractmethod
    async def count_documents(
        self,
        scope_id: str | None = None,
        status: DocumentStatus | None = None,
    ) -> int:
        """Count documents, optionally filtered by scope and status."""

    @abstractmethod
    async def update_status(
        self,
        document_id: str,
        status: DocumentStatus,
        *,
        error_message: str | None = None,
        fragment_count: int | None = None,
        processed_at: datetime | None = None,
    ) -> None:
        """Persist a status transition in a single statement."""

    @abstractmethod
    async def add_fragments(self, fragments: list[Fragment]) -> None:
        """Insert all *fragments* in one transaction (all or none)."""

    @abstractmethod
    async def get_fragments(self, document_id: str) -> list[Fragment]:
        """Return the document's fragments ordered by ``order``."""

    @abstractmethod
    async def get_embedded_fragments(
        self,
        scope_id: str | None,
        status: DocumentStatus = DocumentStatus.COMPLETED,
    ) -> list[tuple[Fragment, Document]]:
        """Return fragments with an embedding whose document has *status*.

        ``scope_id=None`` spans every scope.
        """

    @abstractmethod
    async def delete_document(self, document_id: str) -> bool:
        """Delete the document and, by cascade, its fragments."""


class IVectorSearchStore(ABC):
    """Capability: similarity search executed by the storage backend."""

    @abstractmethod
    async def find_similar(
        self,
        scope_id: str | None,
        query_vector: list[float],
        max_distance: float,
        limit: int,
        status: DocumentStatus = DocumentStatus.COMPLETED,
    ) -> list[RetrievedFragment]:
        """Return fragments with cosine distance below *max_distance*.

        Results are ordered by ascending distance and capped at *limit*.
        ``scope_id=None`` spans every scope.
        """

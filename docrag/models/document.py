"""Document and fragment models.

A :class:`Document` is one uploaded file within a scope; its text is split
into ordered :class:`Fragment` records that carry the embedding vectors used
for retrieval.  Both models are frozen -- a status change produces a new
Document via :meth:`Document.transition_to`.

Document lifecycle::

    PENDING ──▶ PROCESSING ──▶ COMPLETED
                     │
                     └───────▶ FAILED

No other transition is legal.  COMPLETED and FAILED are terminal.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from docrag.utils.errors import InvalidTransitionError


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid.uuid4())


class DocumentStatus(str, Enum):
    """Processing status of an uploaded document."""

    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


_ALLOWED_TRANSITIONS: dict[DocumentStatus, frozenset[DocumentStatus]] = {
    DocumentStatus.PENDING: frozenset({DocumentStatus.PROCESSING}),
    DocumentStatus.PROCESSING: frozenset({DocumentStatus.COMPLETED, DocumentStatus.FAILED}),
    DocumentStatus.COMPLETED: frozenset(),
    DocumentStatus.FAILED: frozenset(),
}


class Document(BaseModel):
    """An uploaded document and its processing state."""

    model_config = ConfigDict(frozen=True)

    document_id: str = Field(default_factory=_new_id)
    scope_id: str = Field(description="Conversation / namespace the document belongs to.")
    original_filename: str
    # Blob key: random UUID plus the original extension, never the user's name.
    stored_filename: str
    content_type: str
    size_bytes: int = Field(ge=0)
    content_hash: str = Field(description="SHA-256 hex digest of the raw bytes.")
    status: DocumentStatus = DocumentStatus.PENDING
    fragment_count: int = Field(default=0, ge=0)
    error_message: str | None = None
    created_at: datetime = Field(default_factory=_utc_now)
    processed_at: datetime | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in (DocumentStatus.COMPLETED, DocumentStatus.FAILED)

    def can_transition_to(self, status: DocumentStatus) -> bool:
        return status in _ALLOWED_TRANSITIONS[self.status]

    def transition_to(
        self,
        status: DocumentStatus,
        *,
        error_message: str | None = None,
        fragment_count: int | None = None,
    ) -> Document:
        """Return a copy of this document moved to *status*.

        COMPLETED and FAILED stamp ``processed_at``.  FAILED records
        *error_message*; COMPLETED records *fragment_count*.

        Raises
        ------
        InvalidTransitionError
            If the move is not PENDING→PROCESSING or
            PROCESSING→COMPLETED/FAILED.
        """
        if not self.can_transition_to(status):
            raise InvalidTransitionError(
                f"Document {self.document_id}: cannot move from "
                f"{self.status.value} to {status.value}"
            )

        update: dict[str, object] = {"status": status}
        if status in (DocumentStatus.COMPLETED, DocumentStatus.FAILED):
            update["processed_at"] = _utc_now()
        if status == DocumentStatus.FAILED:
            update["error_message"] = error_message or "Processing failed"
        if status == DocumentStatus.COMPLETED and fragment_count is not None:
            update["fragment_count"] = fragment_count
        return self.model_copy(update=update)


class Fragment(BaseModel):
    """One ordered, embedded slice of a document's text.

    Holds only the parent ``document_id``; the parent is looked up through
    the document store when its name or scope is needed.
    """

    model_config = ConfigDict(frozen=True)

    fragment_id: str = Field(default_factory=_new_id)
    document_id: str
    order: int = Field(ge=0, description="0-based position within the document.")
    content: str
    token_estimate: int = Field(default=0, ge=0)
    embedding: list[float] | None = None

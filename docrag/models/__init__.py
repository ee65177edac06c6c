"""Pydantic models for documents, fragments and retrieval results."""

from docrag.models.document import Document, DocumentStatus, Fragment
from docrag.models.rag import (
    Citation,
    EmbeddingStats,
    RetrievalResult,
    RetrievedFragment,
    TextChunk,
)

__all__ = [
    "Citation",
    "Document",
    "DocumentStatus",
    "EmbeddingStats",
    "Fragment",
    "RetrievalResult",
    "RetrievedFragment",
    "TextChunk",
]

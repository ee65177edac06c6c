"""Retrieval-side data models.

Defines the chunker output (:class:`TextChunk`), a scored search hit
(:class:`RetrievedFragment`), the citation list handed to the downstream
generator (:class:`Citation`, :class:`RetrievalResult`) and the embedding
service counters (:class:`EmbeddingStats`).  All models are frozen.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


# ---------------------------------------------------------------------------
# TextChunk -- chunker output, before embedding.
# ---------------------------------------------------------------------------
class TextChunk(BaseModel):
    """A bounded slice of normalised text produced by the chunker."""

    model_config = ConfigDict(frozen=True)

    order: int = Field(ge=0)
    content: str
    # ceil(len(content) / 4) -- rough budget for the generator's context window.
    token_estimate: int = Field(default=0, ge=0)


# ---------------------------------------------------------------------------
# RetrievedFragment -- a fragment selected for a query.
# ---------------------------------------------------------------------------
class RetrievedFragment(BaseModel):
    """A fragment returned by a retrieval strategy, with its score.

    ``similarity`` is cosine similarity; the native strategy derives it as
    ``1 - distance``.
    """

    model_config = ConfigDict(frozen=True)

    fragment_id: str
    document_id: str
    document_name: str
    order: int = Field(ge=0)
    content: str
    token_estimate: int = Field(default=0, ge=0)
    similarity: float

    @property
    def distance(self) -> float:
        return 1.0 - self.similarity


class Citation(BaseModel):
    """A numbered source reference aligned with ``[Source i: ...]`` in the context."""

    model_config = ConfigDict(frozen=True)

    index: int = Field(ge=1)
    document_id: str
    document_name: str
    fragment_order: int = Field(ge=0)


class RetrievalResult(BaseModel):
    """Everything the downstream generator needs for one query."""

    model_config = ConfigDict(frozen=True)

    query: str
    scope_id: str | None = None
    fragments: list[RetrievedFragment] = Field(default_factory=list)
    context: str = ""
    citations: list[Citation] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# EmbeddingStats -- snapshot of the embedding service counters.
# ---------------------------------------------------------------------------
class EmbeddingStats(BaseModel):
    """Point-in-time counters from the embedding service."""

    model_config = ConfigDict(frozen=True)

    cache_size: int = 0
    total_embeddings: int = 0
    cache_hits: int = 0
    hit_rate: float = 0.0
    api_calls: int = 0
    api_errors: int = 0
    error_rate: float = 0.0
    provider: str = ""
    available: bool = False

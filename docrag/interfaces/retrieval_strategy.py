"""Abstract base class for fragment selection strategies.

A strategy receives an already-embedded query and returns the best
fragments, highest similarity first.  The retriever is handed exactly one
strategy at construction time.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from docrag.models.rag import RetrievedFragment


class IRetrievalStrategy(ABC):
    """Contract for top-K fragment selection."""

    @abstractmethod
    async def select(
        self,
        scope_id: str | None,
        query_vector: list[float],
        top_k: int,
        max_distance: float,
    ) -> list[RetrievedFragment]:
        """Return at most *top_k* fragments for *query_vector*.

        Parameters
        ----------
        scope_id:
            Scope to search, or ``None`` for a search across all scopes.
        query_vector:
            Embedding of the query text.
        top_k:
            Maximum number of fragments to return.
        max_distance:
            Cosine distance threshold; strategies that do not filter by
            distance ignore it.

        Raises
        ------
        docrag.utils.errors.StorageError
            If the backing store cannot be queried.
        """

    @abstractmethod
    def get_strategy_name(self) -> str:
        """Return ``"native"`` or ``"in_memory"``."""

"""Fragment selection strategies.

``NativeVectorSearchStrategy`` hands the query vector to a store that can
search its own index (:class:`IVectorSearchStore`); only fragments within
``max_distance`` come back, nearest first.

``InMemorySimilarityStrategy`` works with any :class:`IDocumentStore`: it
loads the embedded fragments of COMPLETED documents in the scope, scores
them with numpy cosine similarity and keeps the top K.  It applies no
distance threshold and refuses a corpus-wide scan (``scope_id=None``).
"""

from __future__ import annotations

import structlog

from docrag.interfaces.document_store import IDocumentStore, IVectorSearchStore
from docrag.interfaces.retrieval_strategy import IRetrievalStrategy
from docrag.models.document import DocumentStatus
from docrag.models.rag import RetrievedFragment
from docrag.utils.vector_math import cosine_similarities

logger = structlog.get_logger(logger_name=__name__)


class NativeVectorSearchStrategy(IRetrievalStrategy):
    """Delegates similarity search to the storage backend."""

    def __init__(self, store: IVectorSearchStore) -> None:
        self._store = store

    async def select(
        self,
        scope_id: str | None,
        query_vector: list[float],
        top_k: int,
        max_distance: float,
    ) -> list[RetrievedFragment]:
        return await self._store.find_similar(
            scope_id,
            query_vector,
            max_distance=max_distance,
            limit=top_k,
            status=DocumentStatus.COMPLETED,
        )

    def get_strategy_name(self) -> str:
        return "native"


class InMemorySimilarityStrategy(IRetrievalStrategy):
    """Scores every embedded fragment of a scope in process."""

    def __init__(self, store: IDocumentStore) -> None:
        self._store = store

    async def select(
        self,
        scope_id: str | None,
        query_vector: list[float],
        top_k: int,
        max_distance: float,
    ) -> list[RetrievedFragment]:
        if scope_id is None:
            logger.info("in_memory_global_search_skipped")
            return []

        rows = await self._store.get_embedded_fragments(scope_id, DocumentStatus.COMPLETED)
        if not rows:
            return []

        scores = cosine_similarities(query_vector, [fragment.embedding or [] for fragment, _ in rows])
        # Stable sort keeps storage order (document, then fragment order) on ties.
        ranked = sorted(zip(rows, scores), key=lambda item: item[1], reverse=True)[:top_k]

        logger.debug(
            "in_memory_similarity",
            scope_id=scope_id,
            candidates=len(rows),
            selected=len(ranked),
            top_score=ranked[0][1] if ranked else 0.0,
        )
        return [
            RetrievedFragment(
                fragment_id=fragment.fragment_id,
                document_id=fragment.document_id,
                document_name=document.original_filename,
                order=fragment.order,
                content=fragment.content,
                token_estimate=fragment.token_estimate,
                similarity=score,
            )
            for (fragment, document), score in ranked
        ]

    def get_strategy_name(self) -> str:
        return "in_memory"


def build_strategy(store: IDocumentStore, preference: str = "auto") -> IRetrievalStrategy:
    """Choose the retrieval strategy once, from the store's capabilities.

    Parameters
    ----------
    store:
        The configured document store.
    preference:
        ``"auto"`` (native when the store supports it), ``"native"`` or
        ``"in_memory"``.

    Raises
    ------
    ValueError
        For an unknown preference, or ``"native"`` with a store that
        cannot search vectors.
    """
    preference = preference.lower()
    if preference == "in_memory":
        return InMemorySimilarityStrategy(store)
    if preference in ("auto", "native"):
        if isinstance(store, IVectorSearchStore):
            return NativeVectorSearchStrategy(store)
        if preference == "native":
            raise ValueError(
                f"{type(store).__name__} does not support native vector search"
            )
        return InMemorySimilarityStrategy(store)
    raise ValueError(f"Unknown retrieval strategy: {preference!r}")

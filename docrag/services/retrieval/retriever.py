"""Query-time retrieval: select fragments, then build context and citations.

:class:`Retriever` is what the downstream text generator talks to.  Given a
query and a scope it returns the most relevant fragments plus a context
block and an aligned citation list::

    [Source 1: handbook.pdf]
    <fragment text>

    [Source 2: notes.md]
    <fragment text>

Citation ``i`` always refers to the block labelled ``[Source i: ...]``.
Retrieval never raises for embedding or storage failures; no context is a
valid outcome and the generator proceeds without it.
"""

from __future__ import annotations

import structlog

from docrag.interfaces.document_store import IDocumentStore
from docrag.interfaces.retrieval_strategy import IRetrievalStrategy
from docrag.models.document import DocumentStatus
from docrag.models.rag import Citation, RetrievalResult, RetrievedFragment
from docrag.services.embedding_service import EmbeddingService
from docrag.utils.errors import EmbeddingError, StorageError

logger = structlog.get_logger(logger_name=__name__)


class Retriever:
    """Scoped top-K fragment retrieval.

    Parameters
    ----------
    store:
        Used for the has-documents gate.
    embedding_service:
        Embeds the query text (shares the ingestion cache).
    strategy:
        Fragment selection, fixed for the lifetime of the retriever.
    top_k:
        Maximum fragments per query (default 5).
    max_distance:
        Cosine distance threshold for strategies that apply one (default 0.5).
    """

    def __init__(
        self,
        store: IDocumentStore,
        embedding_service: EmbeddingService,
        strategy: IRetrievalStrategy,
        top_k: int = 5,
        max_distance: float = 0.5,
    ) -> None:
        self._store = store
        self._embedding_service = embedding_service
        self._strategy = strategy
        self._top_k = top_k
        self._max_distance = max_distance

    @property
    def strategy_name(self) -> str:
        return self._strategy.get_strategy_name()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def has_documents(self, scope_id: str) -> bool:
        """Return ``True`` if the scope has at least one COMPLETED document."""
        try:
            count = await self._store.count_documents(scope_id, DocumentStatus.COMPLETED)
        except StorageError as exc:
            logger.error("has_documents_failed", scope_id=scope_id, error=str(exc))
            return False
        return count > 0

    async def find_relevant(self, query: str, scope_id: str) -> list[RetrievedFragment]:
        """Return up to ``top_k`` fragments of *scope_id* relevant to *query*."""
        if not query or not query.strip():
            return []
        if not await self.has_documents(scope_id):
            logger.debug("retrieval_no_documents", scope_id=scope_id)
            return []
        return await self._search(query, scope_id)

    async def find_relevant_global(self, query: str) -> list[RetrievedFragment]:
        """Search every scope.  Empty with the in-memory strategy."""
        if not query or not query.strip():
            return []
        return await self._search(query, None)

    async def retrieve(self, query: str, scope_id: str) -> RetrievalResult:
        """Run :meth:`find_relevant` and package context and citations."""
        fragments = await self.find_relevant(query, scope_id)
        return RetrievalResult(
            query=query,
            scope_id=scope_id,
            fragments=fragments,
            context=self.build_context(fragments),
            citations=self.build_citations(fragments),
        )

    @staticmethod
    def build_context(fragments: list[RetrievedFragment]) -> str:
        """Render fragments as numbered ``[Source i: name]`` blocks."""
        return "".join(
            f"[Source {i}: {fragment.document_name}]\n{fragment.content}\n\n"
            for i, fragment in enumerate(fragments, start=1)
        )

    @staticmethod
    def build_citations(fragments: list[RetrievedFragment]) -> list[Citation]:
        """Return one citation per fragment, numbered like :meth:`build_context`."""
        return [
            Citation(
                index=i,
                document_id=fragment.document_id,
                document_name=fragment.document_name,
                fragment_order=fragment.order,
            )
            for i, fragment in enumerate(fragments, start=1)
        ]

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _search(self, query: str, scope_id: str | None) -> list[RetrievedFragment]:
        try:
            query_vector = await self._embedding_service.embed(query)
        except EmbeddingError as exc:
            logger.warning("query_embedding_failed", scope_id=scope_id, error=str(exc))
            return []

        try:
            fragments = await self._strategy.select(
                scope_id, query_vector, self._top_k, self._max_distance
            )
        except StorageError as exc:
            logger.error("retrieval_failed", scope_id=scope_id, error=str(exc))
            return []

        logger.info(
            "retrieval_complete",
            scope_id=scope_id,
            strategy=self.strategy_name,
            results=len(fragments),
            top_similarity=round(fragments[0].similarity, 4) if fragments else None,
        )
        return fragments

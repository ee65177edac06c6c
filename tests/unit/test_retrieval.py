"""Unit tests for retrieval — vector math, strategies, Retriever."""

from __future__ import annotations

from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from docrag.interfaces.document_store import IDocumentStore, IVectorSearchStore
from docrag.models.document import Document, DocumentStatus, Fragment
from docrag.models.rag import RetrievedFragment
from docrag.providers.storage.sqlite_document_store import SQLiteDocumentStore
from docrag.services.embedding_service import EmbeddingService
from docrag.services.retrieval.retriever import Retriever
from docrag.services.retrieval.strategies import (
    InMemorySimilarityStrategy,
    NativeVectorSearchStrategy,
    build_strategy,
)
from docrag.utils.errors import EmbeddingError, StorageError
from docrag.utils.vector_math import cosine_distance, cosine_similarities, cosine_similarity

QUERY = [1.0, 0.0, 0.0, 0.0, 0.0, 0.0, 0.0, 0.0]


def _hit(order: int, similarity: float, name: str = "doc.txt") -> RetrievedFragment:
    return RetrievedFragment(
        fragment_id=f"f{order}",
        document_id="d1",
        document_name=name,
        order=order,
        content=f"content {order}",
        token_estimate=2,
        similarity=similarity,
    )


async def _seed(
    store: SQLiteDocumentStore,
    vectors: list[list[float]],
    scope_id: str = "scope-1",
    name: str = "doc.txt",
) -> Document:
    doc = Document(
        scope_id=scope_id,
        original_filename=name,
        stored_filename="x.txt",
        content_type="text/plain",
        size_bytes=1,
        content_hash=f"{scope_id}{name}".ljust(64, "0"),
    )
    await store.add_document(doc)
    await store.add_fragments(
        [
            Fragment(document_id=doc.document_id, order=i, content=f"{name} {i}", embedding=v)
            for i, v in enumerate(vectors)
        ]
    )
    await store.update_status(doc.document_id, DocumentStatus.PROCESSING)
    await store.update_status(
        doc.document_id,
        DocumentStatus.COMPLETED,
        fragment_count=len(vectors),
        processed_at=datetime.now(timezone.utc),
    )
    return doc


# ======================================================================
# Vector math
# ======================================================================


class TestVectorMath:
    def test_identical_vectors(self) -> None:
        assert cosine_similarity([1.0, 2.0], [1.0, 2.0]) == pytest.approx(1.0)
        assert cosine_distance([1.0, 2.0], [1.0, 2.0]) == pytest.approx(0.0)

    def test_orthogonal_and_opposite(self) -> None:
        assert cosine_similarity([1.0, 0.0], [0.0, 1.0]) == pytest.approx(0.0)
        assert cosine_similarity([1.0, 0.0], [-1.0, 0.0]) == pytest.approx(-1.0)

    @pytest.mark.parametrize(
        ("a", "b"),
        [([], []), ([0.0, 0.0], [1.0, 1.0]), ([1.0], [1.0, 0.0])],
    )
    def test_degenerate_inputs_score_zero(self, a: list[float], b: list[float]) -> None:
        assert cosine_similarity(a, b) == 0.0

    def test_batch_scores(self) -> None:
        scores = cosine_similarities([1.0, 0.0], [[2.0, 0.0], [0.0, 3.0], [0.0, 0.0], [1.0]])
        assert scores == pytest.approx([1.0, 0.0, 0.0, 0.0])

    def test_batch_empty(self) -> None:
        assert cosine_similarities([1.0], []) == []
        assert cosine_similarities([0.0], [[1.0]]) == [0.0]


# ======================================================================
# Strategies
# ======================================================================


class TestBuildStrategy:
    def test_auto_prefers_native(self) -> None:
        store = MagicMock(spec=IVectorSearchStore)
        assert isinstance(build_strategy(store, "auto"), NativeVectorSearchStrategy)

    def test_auto_falls_back_to_in_memory(self) -> None:
        store = MagicMock(spec=IDocumentStore)
        strategy = build_strategy(store)
        assert isinstance(strategy, InMemorySimilarityStrategy)
        assert strategy.get_strategy_name() == "in_memory"

    def test_forced_in_memory(self) -> None:
        store = MagicMock(spec=IVectorSearchStore)
        assert isinstance(build_strategy(store, "IN_MEMORY"), InMemorySimilarityStrategy)

    def test_native_requires_capability(self) -> None:
        with pytest.raises(ValueError, match="native vector search"):
            build_strategy(MagicMock(spec=IDocumentStore), "native")

    def test_unknown_preference(self) -> None:
        with pytest.raises(ValueError, match="Unknown"):
            build_strategy(MagicMock(spec=IDocumentStore), "fuzzy")


class TestNativeVectorSearchStrategy:
    @pytest.mark.asyncio
    async def test_delegates_to_store(self) -> None:
        store = MagicMock(spec=IVectorSearchStore)
        store.find_similar = AsyncMock(return_value=[_hit(0, 0.9)])
        strategy = NativeVectorSearchStrategy(store)

        result = await strategy.select("scope-1", QUERY, 3, 0.4)

        assert [h.order for h in result] == [0]
        store.find_similar.assert_awaited_once_with(
            "scope-1", QUERY, max_distance=0.4, limit=3, status=DocumentStatus.COMPLETED
        )
        assert strategy.get_strategy_name() == "native"


class TestInMemorySimilarityStrategy:
    @pytest.mark.asyncio
    async def test_top_k_by_similarity(
        self, sqlite_store: SQLiteDocumentStore, make_unit_vector
    ) -> None:
        await _seed(
            sqlite_store,
            [make_unit_vector(0.2), make_unit_vector(0.9), make_unit_vector(0.5)],
        )
        strategy = InMemorySimilarityStrategy(sqlite_store)

        result = await strategy.select("scope-1", QUERY, 2, 0.5)

        assert [h.order for h in result] == [1, 2]
        assert result[0].similarity == pytest.approx(0.9)
        assert result[0].document_name == "doc.txt"

    @pytest.mark.asyncio
    async def test_no_distance_threshold(
        self, sqlite_store: SQLiteDocumentStore, make_unit_vector
    ) -> None:
        await _seed(sqlite_store, [make_unit_vector(0.1)])
        result = await InMemorySimilarityStrategy(sqlite_store).select("scope-1", QUERY, 5, 0.5)
        assert len(result) == 1

    @pytest.mark.asyncio
    async def test_ties_keep_storage_order(self, sqlite_store: SQLiteDocumentStore) -> None:
        await _seed(sqlite_store, [QUERY, QUERY, QUERY])
        result = await InMemorySimilarityStrategy(sqlite_store).select("scope-1", QUERY, 3, 0.5)
        assert [h.order for h in result] == [0, 1, 2]

    @pytest.mark.asyncio
    async def test_scope_isolation(
        self, sqlite_store: SQLiteDocumentStore, make_unit_vector
    ) -> None:
        await _seed(sqlite_store, [make_unit_vector(0.5)], scope_id="scope-1", name="mine")
        await _seed(sqlite_store, [make_unit_vector(0.99)], scope_id="scope-2", name="theirs")

        result = await InMemorySimilarityStrategy(sqlite_store).select("scope-1", QUERY, 5, 0.5)

        assert [h.document_name for h in result] == ["mine"]

    @pytest.mark.asyncio
    async def test_global_search_returns_nothing(
        self, sqlite_store: SQLiteDocumentStore, make_unit_vector
    ) -> None:
        await _seed(sqlite_store, [make_unit_vector(0.9)])
        assert await InMemorySimilarityStrategy(sqlite_store).select(None, QUERY, 5, 0.5) == []

    @pytest.mark.asyncio
    async def test_empty_scope(self, sqlite_store: SQLiteDocumentStore) -> None:
        assert await InMemorySimilarityStrategy(sqlite_store).select("empty", QUERY, 5, 0.5) == []


# ======================================================================
# Retriever
# ======================================================================


def _retriever(
    *,
    count: int = 1,
    hits: list[RetrievedFragment] | None = None,
    embed_error: Exception | None = None,
    select_error: Exception | None = None,
) -> tuple[Retriever, MagicMock, MagicMock]:
    store = MagicMock(spec=IDocumentStore)
    store.count_documents = AsyncMock(return_value=count)

    embedding_service = MagicMock(spec=EmbeddingService)
    embedding_service.embed = AsyncMock(return_value=QUERY, side_effect=embed_error)

    strategy = MagicMock()
    strategy.select = AsyncMock(return_value=hits or [], side_effect=select_error)
    strategy.get_strategy_name.return_value = "mock"

    retriever = Retriever(store, embedding_service, strategy, top_k=3, max_distance=0.4)
    return retriever, embedding_service, strategy


class TestRetriever:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("query", ["", "   "])
    async def test_blank_query_short_circuits(self, query: str) -> None:
        retriever, embedding_service, _ = _retriever(hits=[_hit(0, 0.9)])
        assert await retriever.find_relevant(query, "scope-1") == []
        embedding_service.embed.assert_not_called()

    @pytest.mark.asyncio
    async def test_scope_without_completed_documents(self) -> None:
        retriever, embedding_service, _ = _retriever(count=0)
        assert await retriever.find_relevant("hello", "scope-1") == []
        embedding_service.embed.assert_not_called()

    @pytest.mark.asyncio
    async def test_passes_parameters_to_strategy(self) -> None:
        retriever, _, strategy = _retriever(hits=[_hit(0, 0.9), _hit(1, 0.7)])

        result = await retriever.find_relevant("hello", "scope-1")

        assert [h.order for h in result] == [0, 1]
        strategy.select.assert_awaited_once_with("scope-1", QUERY, 3, 0.4)
        assert retriever.strategy_name == "mock"

    @pytest.mark.asyncio
    async def test_embedding_failure_degrades_to_empty(self) -> None:
        retriever, _, strategy = _retriever(embed_error=EmbeddingError("down"))
        assert await retriever.find_relevant("hello", "scope-1") == []
        strategy.select.assert_not_called()

    @pytest.mark.asyncio
    async def test_storage_failure_degrades_to_empty(self) -> None:
        retriever, _, _ = _retriever(select_error=StorageError("disk"))
        assert await retriever.find_relevant("hello", "scope-1") == []

    @pytest.mark.asyncio
    async def test_has_documents_storage_failure(self) -> None:
        retriever, _, _ = _retriever()
        retriever._store.count_documents = AsyncMock(side_effect=StorageError("locked"))
        assert await retriever.has_documents("scope-1") is False

    @pytest.mark.asyncio
    async def test_global_search_skips_gate(self) -> None:
        retriever, _, strategy = _retriever(count=0, hits=[_hit(0, 0.8)])
        result = await retriever.find_relevant_global("hello")
        assert len(result) == 1
        strategy.select.assert_awaited_once_with(None, QUERY, 3, 0.4)

    @pytest.mark.asyncio
    async def test_retrieve_packages_context_and_citations(self) -> None:
        hits = [_hit(2, 0.9, "a.pdf"), _hit(0, 0.8, "b.md")]
        retriever, _, _ = _retriever(hits=hits)

        result = await retriever.retrieve("hello", "scope-1")

        assert result.query == "hello"
        assert result.scope_id == "scope-1"
        assert result.fragments == hits
        assert result.context == (
            "[Source 1: a.pdf]\ncontent 2\n\n[Source 2: b.md]\ncontent 0\n\n"
        )
        assert [(c.index, c.document_name, c.fragment_order) for c in result.citations] == [
            (1, "a.pdf", 2),
            (2, "b.md", 0),
        ]

    def test_build_context_empty(self) -> None:
        assert Retriever.build_context([]) == ""
        assert Retriever.build_citations([]) == []

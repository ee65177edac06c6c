"""ChromaDB-backed document store with native vector search.

Extends :class:`SQLiteDocumentStore`: documents, status and fragment text
stay in SQLite (the source of truth), while every embedded fragment is
mirrored into a ChromaDB collection configured for cosine distance.
Similarity queries run inside ChromaDB's HNSW index, then hits are joined
back to SQLite to keep only documents in the requested status.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

# Disable ChromaDB telemetry before importing chromadb.  A version mismatch
# between ChromaDB's bundled PostHog client and the installed one raises
# "capture() takes 1 positional argument but 3 were given".
os.environ["ANONYMIZED_TELEMETRY"] = "False"

import posthog

posthog.disabled = True

import chromadb
import structlog

from docrag.interfaces.document_store import IVectorSearchStore
from docrag.models.document import DocumentStatus, Fragment
from docrag.models.rag import RetrievedFragment
from docrag.providers.storage.sqlite_document_store import SQLiteDocumentStore
from docrag.utils.errors import StorageError

logger = structlog.get_logger(logger_name=__name__)

# Hits are over-fetched so that post-filtering by document status and
# distance still leaves ``limit`` results.
_OVERFETCH_FACTOR = 4
_UPSERT_BATCH_SIZE = 500


class _NoopEmbeddingFunction(chromadb.EmbeddingFunction[list[str]]):
    """Keeps ChromaDB from loading its default ONNX model.

    All vectors are computed by the embedding service and passed in
    explicitly, so this is never called.
    """

    def __call__(self, input: list[str]) -> list[list[float]]:
        raise NotImplementedError("docrag passes pre-computed embeddings to ChromaDB")

    def name(self) -> str:
        return "noop_precomputed"


class ChromaDocumentStore(SQLiteDocumentStore, IVectorSearchStore):
    """SQLite document store plus a ChromaDB fragment index.

    Parameters
    ----------
    db_path:
        SQLite database file for documents and fragments.
    persist_directory:
        Directory for ChromaDB's on-disk index.
    collection_name:
        Name of the fragment collection.
    """

    def __init__(
        self,
        db_path: str | Path,
        persist_directory: str = "./data/chromadb",
        collection_name: str = "docrag_fragments",
    ) -> None:
        super().__init__(db_path)
        self._persist_directory = persist_directory
        self._collection_name = collection_name
        self._client = chromadb.PersistentClient(
            path=persist_directory,
            settings=chromadb.config.Settings(anonymized_telemetry=False),
        )
        try:
            self._collection = self._client.get_or_create_collection(
                name=collection_name,
                metadata={"hnsw:space": "cosine"},
                embedding_function=_NoopEmbeddingFunction(),
            )
        except ValueError:
            # Collection persisted with a different embedding function.
            self._collection = self._client.get_or_create_collection(
                name=collection_name,
                metadata={"hnsw:space": "cosine"},
            )

    def get_provider_name(self) -> str:
        return "chromadb"

    # ── Writes are mirrored into the collection ────────────────────────

    async def add_fragments(self, fragments: list[Fragment]) -> None:
        """Insert fragments into SQLite, then upsert their vectors.

        If the upsert fails the SQLite rows are removed again so the
        document keeps no partial fragment set.
        """
        await super().add_fragments(fragments)

        embedded = [f for f in fragments if f.embedding is not None]
        if not embedded:
            return

        document_id = fragments[0].document_id
        document = await self.get_document(document_id)
        scope_id = document.scope_id if document else ""

        try:
            for start in range(0, len(embedded), _UPSERT_BATCH_SIZE):
                batch = embedded[start : start + _UPSERT_BATCH_SIZE]
                self._collection.upsert(
                    ids=[f.fragment_id for f in batch],
                    embeddings=[f.embedding for f in batch],
                    documents=[f.content for f in batch],
                    metadatas=[self._fragment_metadata(f, scope_id) for f in batch],
                )
        except Exception as exc:
            await self._delete_fragments(document_id)
            self._remove_from_collection(document_id)
            raise StorageError(
                message=f"ChromaDB upsert failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        logger.info("chromadb_fragments_indexed", document_id=document_id, count=len(embedded))

    async def delete_document(self, document_id: str) -> bool:
        deleted = await super().delete_document(document_id)
        try:
            self._remove_from_collection(document_id)
        except Exception as exc:
            raise StorageError(
                message=f"ChromaDB delete failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc
        return deleted

    # ── IVectorSearchStore ─────────────────────────────────────────────

    async def find_similar(
        self,
        scope_id: str | None,
        query_vector: list[float],
        max_distance: float,
        limit: int,
        status: DocumentStatus = DocumentStatus.COMPLETED,
    ) -> list[RetrievedFragment]:
        try:
            indexed = self._collection.count()
            if indexed == 0 or limit <= 0:
                return []

            kwargs: dict[str, Any] = {
                "query_embeddings": [query_vector],
                "n_results": min(indexed, limit * _OVERFETCH_FACTOR),
                "include": ["documents", "metadatas", "distances"],
            }
            if scope_id is not None:
                kwargs["where"] = {"scope_id": scope_id}
            results = self._collection.query(**kwargs)
        except Exception as exc:
            raise StorageError(
                message=f"ChromaDB query failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        ids = results["ids"][0] if results.get("ids") else []
        if not ids:
            return []
        texts = results["documents"][0] if results.get("documents") else [""] * len(ids)
        metadatas = results["metadatas"][0] if results.get("metadatas") else [{}] * len(ids)
        distances = results["distances"][0] if results.get("distances") else [1.0] * len(ids)

        candidates = [
            (fragment_id, text, meta or {}, float(distance))
            for fragment_id, text, meta, distance in zip(ids, texts, metadatas, distances)
            if float(distance) < max_distance
        ]
        if not candidates:
            return []

        documents = await self._get_documents(
            sorted({str(meta.get("document_id", "")) for _, _, meta, _ in candidates})
        )

        hits: list[RetrievedFragment] = []
        for fragment_id, text, meta, distance in sorted(candidates, key=lambda c: c[3]):
            document = documents.get(str(meta.get("document_id", "")))
            if document is None or document.status != status:
                continue
            hits.append(
                RetrievedFragment(
                    fragment_id=fragment_id,
                    document_id=document.document_id,
                    document_name=document.original_filename,
                    order=int(meta.get("fragment_order", 0)),
                    content=text or "",
                    token_estimate=int(meta.get("token_estimate", 0)),
                    similarity=1.0 - distance,
                )
            )
            if len(hits) >= limit:
                break

        logger.info(
            "chromadb_query",
            scope_id=scope_id,
            raw_results=len(ids),
            within_distance=len(candidates),
            results_count=len(hits),
        )
        return hits

    # ── Internal helpers ───────────────────────────────────────────────

    def _remove_from_collection(self, document_id: str) -> None:
        self._collection.delete(where={"document_id": document_id})

    @staticmethod
    def _fragment_metadata(fragment: Fragment, scope_id: str) -> dict[str, str | int]:
        return {
            "scope_id": scope_id,
            "document_id": fragment.document_id,
            "fragment_order": fragment.order,
            "token_estimate": fragment.token_estimate,
        }

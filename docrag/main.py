"""docrag composition root.

Wires every provider and service together from a :class:`Settings`
instance.  ``build_services`` is the only place concrete adapters are
chosen; the rest of the code depends on the interfaces in
``docrag.interfaces``.

    Settings ──▶ build_services() ──▶ Services
                    │
                    ├─ MemoryCacheProvider ─┐
                    ├─ Gemini / OpenAI ─────┴─▶ EmbeddingService
                    ├─ ChromaDocumentStore | SQLiteDocumentStore
                    ├─ LocalBlobStore, DefaultTextExtractor, TextChunker
                    ├─ StatusTracker ──▶ IngestionService (+ worker pool)
                    └─ build_strategy() ──▶ Retriever
"""

from __future__ import annotations

from dataclasses import dataclass

import structlog

from docrag.config.settings import Settings
from docrag.interfaces.document_store import IDocumentStore
from docrag.interfaces.embedding_provider import IEmbeddingProvider
from docrag.interfaces.retrieval_strategy import IRetrievalStrategy
from docrag.pipeline.status_tracker import StatusTracker
from docrag.providers.blob.local_blob_store import LocalBlobStore
from docrag.providers.cache.memory_cache import MemoryCacheProvider
from docrag.providers.embedding.gemini_embedding_provider import GeminiEmbeddingProvider
from docrag.providers.embedding.openai_embedding_provider import OpenAIEmbeddingProvider
from docrag.providers.extraction.default_text_extractor import DefaultTextExtractor
from docrag.providers.storage.sqlite_document_store import SQLiteDocumentStore
from docrag.services.embedding_service import EmbeddingService
from docrag.services.ingestion.chunker import TextChunker
from docrag.services.ingestion.ingestion_service import IngestionService
from docrag.services.retrieval.retriever import Retriever
from docrag.services.retrieval.strategies import build_strategy
from docrag.utils.errors import ConfigurationError
from docrag.utils.logging import configure_logging

logger = structlog.get_logger(logger_name=__name__)


@dataclass
class Services:
    """Every constructed component, for the CLI and tests."""

    settings: Settings
    cache: MemoryCacheProvider | None
    embedding_provider: IEmbeddingProvider
    embedding_service: EmbeddingService
    store: IDocumentStore
    blob_store: LocalBlobStore
    extractor: DefaultTextExtractor
    chunker: TextChunker
    tracker: StatusTracker
    ingestion: IngestionService
    strategy: IRetrievalStrategy
    retriever: Retriever

    async def start(self) -> None:
        """Create database tables.  Call once before use."""
        await self.store.initialize()

    async def aclose(self) -> None:
        """Finish queued ingestion work and release clients."""
        await self.ingestion.shutdown()
        await self.store.close()
        aclose = getattr(self.embedding_provider, "aclose", None)
        if aclose is not None:
            await aclose()


def build_embedding_provider(app_settings: Settings) -> IEmbeddingProvider:
    """Select the embedding adapter named by ``embedding_provider``.

    ``auto`` prefers Gemini, then OpenAI, by which has credentials.  With
    no credentials at all, a Gemini adapter is still returned so the
    first embed call fails with a configuration error rather than start-up.
    """
    choice = app_settings.embedding_provider.lower()
    if choice == "auto":
        available = app_settings.get_available_embedding_providers()
        choice = available[0] if available else "gemini"
        if not available:
            logger.warning(
                "no_embedding_credentials",
                msg="Set GEMINI_API_KEY or OPENAI_API_KEY to enable embeddings.",
            )

    if choice == "gemini":
        return GeminiEmbeddingProvider(settings=app_settings)
    if choice == "openai":
        return OpenAIEmbeddingProvider(settings=app_settings)
    raise ConfigurationError(
        f"Unknown embedding provider: {app_settings.embedding_provider!r}"
    )


def build_document_store(app_settings: Settings) -> IDocumentStore:
    """Return the store named by ``vector_store_backend``."""
    backend = app_settings.vector_store_backend.lower()
    if backend == "sqlite":
        return SQLiteDocumentStore(db_path=app_settings.document_db_path)
    if backend == "chromadb":
        # Deferred: importing chromadb is slow and not needed for sqlite.
        from docrag.providers.storage.chromadb_document_store import ChromaDocumentStore

        return ChromaDocumentStore(
            db_path=app_settings.document_db_path,
            persist_directory=app_settings.chromadb_persist_dir,
            collection_name=app_settings.chromadb_collection,
        )
    raise ConfigurationError(
        f"Unknown vector store backend: {app_settings.vector_store_backend!r}"
    )


def build_services(
    app_settings: Settings | None = None,
    *,
    embedding_provider: IEmbeddingProvider | None = None,
    configure_logs: bool = True,
) -> Services:
    """Construct every provider and service instance.

    Parameters
    ----------
    app_settings:
        Settings to build from; read from the environment when omitted.
    embedding_provider:
        Overrides the adapter chosen from settings (tests pass a fake).
    configure_logs:
        Configure structlog from ``log_level`` / ``app_env``.
    """
    app_settings = app_settings or Settings()
    if configure_logs:
        configure_logging(
            app_settings.log_level,
            json_output=app_settings.app_env == "production",
        )

    # -- Embedding --
    cache = (
        MemoryCacheProvider(max_size=app_settings.embedding_cache_max_size)
        if app_settings.embedding_cache_enabled
        else None
    )
    provider = embedding_provider or build_embedding_provider(app_settings)
    embedding_service = EmbeddingService(
        provider=provider,
        cache=cache,
        max_retries=app_settings.embedding_max_retries,
        backoff_base=app_settings.embedding_backoff_base_seconds,
    )

    # -- Storage --
    store = build_document_store(app_settings)
    blob_store = LocalBlobStore(root=app_settings.upload_storage_path)

    # -- Ingestion --
    extractor = DefaultTextExtractor()
    chunker = TextChunker(chunk_size=app_settings.chunk_size, overlap=app_settings.chunk_overlap)
    tracker = StatusTracker()
    ingestion = IngestionService(
        store=store,
        blob_store=blob_store,
        extractor=extractor,
        chunker=chunker,
        embedding_service=embedding_service,
        tracker=tracker,
        max_upload_bytes=app_settings.max_upload_bytes,
        allowed_content_types=app_settings.allowed_content_types,
        embedding_concurrency=app_settings.embedding_concurrency,
        workers=app_settings.ingestion_workers,
    )

    # -- Retrieval --
    try:
        strategy = build_strategy(store, app_settings.retrieval_strategy)
    except ValueError as exc:
        raise ConfigurationError(str(exc)) from exc
    retriever = Retriever(
        store=store,
        embedding_service=embedding_service,
        strategy=strategy,
        top_k=app_settings.retrieval_top_k,
        max_distance=app_settings.retrieval_max_distance,
    )

    logger.info(
        "services_built",
        embedding_provider=provider.get_provider_name(),
        embedding_available=provider.is_available(),
        store=type(store).__name__,
        strategy=strategy.get_strategy_name(),
    )

    return Services(
        settings=app_settings,
        cache=cache,
        embedding_provider=provider,
        embedding_service=embedding_service,
        store=store,
        blob_store=blob_store,
        extractor=extractor,
        chunker=chunker,
        tracker=tracker,
        ingestion=ingestion,
        strategy=strategy,
        retriever=retriever,
    )

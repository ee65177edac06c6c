"""Abstract contracts for every external collaborator of the pipeline.

Business logic in ``docrag.services`` talks only to these ABCs; concrete
adapters live in ``docrag.providers`` and are wired together in
``docrag.main.build_services``.  Tests inject fakes through the same seams.

    Interface              →  Concrete implementations (in docrag/providers/)
    ──────────────────────────────────────────────────────────────────────
    IEmbeddingProvider     →  GeminiEmbeddingProvider, OpenAIEmbeddingProvider
    ICacheProvider         →  MemoryCacheProvider
    IDocumentStore         →  SQLiteDocumentStore, ChromaDocumentStore
    IVectorSearchStore     →  ChromaDocumentStore
    IBlobStore             →  LocalBlobStore
    ITextExtractor         →  DefaultTextExtractor
    IRetrievalStrategy     →  NativeVectorSearchStrategy,
                              InMemorySimilarityStrategy  (docrag/services/retrieval/)
"""

from docrag.interfaces.blob_store import IBlobStore
from docrag.interfaces.cache_provider import ICacheProvider
from docrag.interfaces.document_store import IDocumentStore, IVectorSearchStore
from docrag.interfaces.embedding_provider import IEmbeddingProvider
from docrag.interfaces.retrieval_strategy import IRetrievalStrategy
from docrag.interfaces.text_extractor import ITextExtractor

__all__ = [
    "IBlobStore",
    "ICacheProvider",
    "IDocumentStore",
    "IEmbeddingProvider",
    "IRetrievalStrategy",
    "ITextExtractor",
    "IVectorSearchStore",
]

"""docrag — document ingestion and semantic retrieval for RAG consumers."""

__version__ = "0.1.0"

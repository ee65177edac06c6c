"""Application settings loaded from environment variables via pydantic-settings.

# ─── HOW SETTINGS WORK ─────────────────────────────────────────────────
#
# Values are read from two sources, in priority order:
#
#   1. Environment variables — e.g. GEMINI_API_KEY=abc123 (always wins)
#   2. .env file — key=value lines in the project root
#
# Field ``chunk_size`` maps to env var ``CHUNK_SIZE`` and so on.  Defaults
# below apply when neither source sets a value.
#
# Copy .env.example to .env for local development.
# ──────────────────────────────────────────────────────────────────────
"""

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_ALLOWED_CONTENT_TYPES = [
    "application/pdf",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "application/msword",
    "text/plain",
    "text/markdown",
    "text/x-markdown",
    "text/html",
    "application/rtf",
    "application/octet-stream",
]


class Settings(BaseSettings):
    """docrag settings.

    Environment variables override defaults.  Loaded from .env when present.
    """

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # === Embedding providers ===
    # Empty string = "not configured".  The factory in main.py skips
    # providers without credentials.
    gemini_api_key: str = ""
    gemini_base_url: str = "https://generativelanguage.googleapis.com/v1beta"
    gemini_embedding_model: str = "text-embedding-004"
    openai_api_key: str = ""
    openai_base_url: str = ""  # OpenAI-compatible APIs (TogetherAI, Ollama /v1, ...)
    openai_embedding_model: str = ""
    embedding_provider: str = "auto"  # auto | gemini | openai

    # === Embedding service ===
    embedding_max_retries: int = Field(default=3, ge=1)
    embedding_backoff_base_seconds: float = Field(default=1.0, ge=0.0)
    embedding_timeout_seconds: float = Field(default=30.0, gt=0.0)
    embedding_cache_enabled: bool = True
    # None keeps every vector until an explicit clear; an int enables LRU eviction.
    embedding_cache_max_size: int | None = Field(default=None, ge=1)
    embedding_concurrency: int = Field(default=4, ge=1)

    # === Chunking (character based) ===
    chunk_size: int = Field(default=500, gt=0)
    chunk_overlap: int = Field(default=50, ge=0)

    # === Retrieval ===
    retrieval_top_k: int = Field(default=5, ge=1)
    retrieval_max_distance: float = Field(default=0.5, ge=0.0, le=2.0)
    retrieval_strategy: str = "auto"  # auto | native | in_memory

    # === Storage ===
    vector_store_backend: str = "chromadb"  # chromadb | sqlite
    document_db_path: str = "data/documents.db"
    chromadb_persist_dir: str = "./data/chromadb"
    chromadb_collection: str = "docrag_fragments"

    # === Uploads ===
    max_upload_bytes: int = Field(default=50 * 1024 * 1024, gt=0)
    upload_storage_path: str = "./data/uploads"
    allowed_content_types: list[str] = Field(
        default_factory=lambda: list(DEFAULT_ALLOWED_CONTENT_TYPES)
    )

    # === Ingestion workers ===
    ingestion_workers: int = Field(default=2, ge=1)

    # === App ===
    app_env: str = "development"
    log_level: str = "INFO"

    @model_validator(mode="after")
    def _check_chunking(self) -> "Settings":
        if self.chunk_overlap >= self.chunk_size:
            raise ValueError(
                f"chunk_overlap ({self.chunk_overlap}) must be less than "
                f"chunk_size ({self.chunk_size})"
            )
        return self

    def get_available_embedding_providers(self) -> list[str]:
        """Return embedding provider names that have credentials configured."""
        providers: list[str] = []
        if self.gemini_api_key:
            providers.append("gemini")
        if self.openai_api_key:
            providers.append("openai")
        return providers

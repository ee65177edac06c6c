"""Custom exception hierarchy for docrag.

All application exceptions inherit from :class:`DocRagError`, which carries
an optional ``provider_name`` so error handlers can identify which external
service (e.g. "gemini", "openai", "sqlite", "chromadb") caused the failure.

    DocRagError  (base -- catch-all for any docrag error)
    +-- DocumentValidationError     (upload rejected synchronously)
    +-- ExtractionError             (unreadable / corrupt document)
    +-- EmbeddingError              (embedding could not be produced)
    |   +-- EmbeddingConfigurationError  (credentials missing -- never retried)
    |   +-- EmbeddingAuthError           (credentials rejected -- never retried)
    |   +-- RateLimitError               (provider rate limit -- retried)
    |   +-- ProviderUnavailableError     (network / 5xx -- retried)
    +-- StorageError                (persistence failure)
    +-- InvalidTransitionError      (illegal document status change)
    +-- ConfigurationError          (invalid settings at start-up)

The split inside ``EmbeddingError`` is what the retry loop in
:class:`~docrag.services.embedding_service.EmbeddingService` keys on.
"""


class DocRagError(Exception):
    """Base exception for all docrag errors.

    Every subclass carries a human-readable ``message`` and an optional
    ``provider_name``.  ``__str__`` prefixes the provider in brackets,
    e.g. ``[gemini] Rate limit exceeded``.
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        provider_name: str | None = None,
    ) -> None:
        self._message = message
        self._provider_name = provider_name
        super().__init__(self._message)

    @property
    def message(self) -> str:
        return self._message

    @property
    def provider_name(self) -> str | None:
        return self._provider_name

    def __str__(self) -> str:
        if self._provider_name:
            return f"[{self._provider_name}] {self._message}"
        return self._message


# ---------------------------------------------------------------------------
# Upload / extraction
# ---------------------------------------------------------------------------

class DocumentValidationError(DocRagError):
    """Raised when an upload is empty, too large, or of an unsupported type."""

    def __init__(
        self,
        message: str = "Document failed validation",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class ExtractionError(DocRagError):
    """Raised when plain text cannot be extracted from a document."""

    def __init__(
        self,
        message: str = "Text extraction failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Embedding
# ---------------------------------------------------------------------------

class EmbeddingError(DocRagError):
    """Raised when an embedding vector cannot be produced.

    Raised directly for terminal failures (blank input, retries exhausted,
    malformed vectors); subclasses describe the provider-side cause.
    """

    def __init__(
        self,
        message: str = "Embedding generation failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class EmbeddingConfigurationError(EmbeddingError):
    """Raised when the embedding provider has no credentials configured."""

    def __init__(
        self,
        message: str = "Embedding provider is not configured",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class EmbeddingAuthError(EmbeddingError):
    """Raised when the provider rejects the configured credentials (401/403)."""

    def __init__(
        self,
        message: str = "Embedding provider rejected the credentials",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class RateLimitError(EmbeddingError):
    """Raised when a provider rate limit or quota is hit (HTTP 429)."""

    def __init__(
        self,
        message: str = "Rate limit exceeded",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class ProviderUnavailableError(EmbeddingError):
    """Raised when the embedding endpoint is unreachable or returns 5xx."""

    def __init__(
        self,
        message: str = "External service is unavailable",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Storage / state machine / configuration
# ---------------------------------------------------------------------------

class StorageError(DocRagError):
    """Raised when a persistence operation fails."""

    def __init__(
        self,
        message: str = "Storage operation failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class InvalidTransitionError(DocRagError):
    """Raised when a document status change violates the state machine."""

    def __init__(
        self,
        message: str = "Invalid document status transition",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class ConfigurationError(DocRagError):
    """Raised when configuration is invalid or missing at startup."""

    def __init__(
        self,
        message: str = "Invalid or missing configuration",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# Errors the embedding retry loop must not retry.
NON_RETRYABLE_EMBEDDING_ERRORS: tuple[type[EmbeddingError], ...] = (
    EmbeddingConfigurationError,
    EmbeddingAuthError,
)

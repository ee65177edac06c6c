"""Gemini embedding provider adapter.

Calls the Generative Language REST API directly with ``httpx``::

    POST {base_url}/models/{model}:embedContent?key={api_key}

Request and response bodies are the typed models in
:mod:`docrag.models.embedding`.  ``embedContent`` embeds one text per call,
so :meth:`GeminiEmbeddingProvider.embed` issues one request per input.

HTTP failures are mapped onto the error hierarchy so the embedding
service can tell retryable from terminal failures:

    401 / 403           → EmbeddingAuthError        (never retried)
    429                 → RateLimitError            (retried)
    other status / I/O  → ProviderUnavailableError  (retried)
"""

from __future__ import annotations

import httpx
import structlog
from pydantic import ValidationError

from docrag.config.settings import Settings
from docrag.interfaces.embedding_provider import IEmbeddingProvider
from docrag.models.embedding import GeminiEmbedRequest, GeminiEmbedResponse
from docrag.utils.errors import (
    EmbeddingAuthError,
    EmbeddingConfigurationError,
    EmbeddingError,
    ProviderUnavailableError,
    RateLimitError,
)

logger = structlog.get_logger(logger_name=__name__)

_PROVIDER_NAME = "gemini"

_MODEL_DIMENSIONS: dict[str, int] = {
    "text-embedding-004": 768,
    "embedding-001": 768,
}


class GeminiEmbeddingProvider(IEmbeddingProvider):
    """Embedding provider backed by Google's ``text-embedding-004``.

    Parameters
    ----------
    settings:
        Supplies the API key, base URL, model name and request timeout.
    client:
        Optional pre-built ``httpx.AsyncClient`` (tests pass one with a
        ``MockTransport``).  When omitted a client is created with the
        configured timeout.
    """

    def __init__(self, settings: Settings, client: httpx.AsyncClient | None = None) -> None:
        self._api_key = settings.gemini_api_key
        self._base_url = settings.gemini_base_url.rstrip("/")
        self._model = settings.gemini_embedding_model
        self._dimension = _MODEL_DIMENSIONS.get(self._model, 768)
        self._client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(settings.embedding_timeout_seconds)
        )

    # ------------------------------------------------------------------
    # IEmbeddingProvider implementation
    # ------------------------------------------------------------------

    async def embed(self, texts: list[str]) -> list[list[float]]:
        """Embed each text with its own ``embedContent`` request, in order."""
        vectors: list[list[float]] = []
        for text in texts:
            vectors.append(await self.embed_single(text))
        return vectors

    async def embed_single(self, text: str) -> list[float]:
        if not self.is_available():
            raise EmbeddingConfigurationError(
                message="GEMINI_API_KEY is not set",
                provider_name=_PROVIDER_NAME,
            )

        url = f"{self._base_url}/models/{self._model}:embedContent"
        body = GeminiEmbedRequest.for_text(self._model, text)

        try:
            response = await self._client.post(
                url,
                params={"key": self._api_key},
                json=body.model_dump(),
            )
        except httpx.TimeoutException as exc:
            raise ProviderUnavailableError(
                message=f"Request timed out: {exc}",
                provider_name=_PROVIDER_NAME,
            ) from exc
        except httpx.HTTPError as exc:
            raise ProviderUnavailableError(
                message=f"Request failed: {exc}",
                provider_name=_PROVIDER_NAME,
            ) from exc

        self._raise_for_status(response)

        try:
            parsed = GeminiEmbedResponse.model_validate(response.json())
        except (ValueError, ValidationError) as exc:
            raise EmbeddingError(
                message=f"Malformed embedContent response: {exc}",
                provider_name=_PROVIDER_NAME,
            ) from exc

        if not parsed.embedding.values:
            raise EmbeddingError(
                message="embedContent returned an empty vector",
                provider_name=_PROVIDER_NAME,
            )

        logger.debug("gemini_embedding", model=self._model, chars=len(text))
        return parsed.embedding.values

    def get_dimension(self) -> int:
        return self._dimension

    def get_provider_name(self) -> str:
        return _PROVIDER_NAME

    def is_available(self) -> bool:
        """Return ``True`` if an API key is configured."""
        return bool(self._api_key)

    async def aclose(self) -> None:
        await self._client.aclose()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _raise_for_status(response: httpx.Response) -> None:
        status = response.status_code
        if status < 400:
            return
        detail = response.text[:200]
        if status in (401, 403):
            raise EmbeddingAuthError(
                message=f"HTTP {status}: {detail}",
                provider_name=_PROVIDER_NAME,
            )
        if status == 429:
            raise RateLimitError(
                message=f"HTTP 429: {detail}",
                provider_name=_PROVIDER_NAME,
            )
        raise ProviderUnavailableError(
            message=f"HTTP {status}: {detail}",
            provider_name=_PROVIDER_NAME,
        )

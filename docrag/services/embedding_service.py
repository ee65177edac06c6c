"""Cached, retrying embedding service.

Sits between the pipeline and an :class:`IEmbeddingProvider` adapter and
owns four concerns the adapters do not:

1. **Content-hash cache** -- ``sha256(text) -> vector`` in an injected
   :class:`ICacheProvider`, shared by ingestion and query embedding.
2. **In-flight de-duplication** -- concurrent requests for the same text
   await a single pending call, so each distinct text reaches the API at
   most once no matter how many callers race on it.
3. **Retry with exponential backoff** -- up to ``max_retries`` attempts,
   sleeping ``backoff_base * 2 ** (attempt - 1)`` seconds in between.
   Missing or rejected credentials are never retried.
4. **Counters** -- requests, cache hits, API calls and API errors, exposed
   as :class:`~docrag.models.rag.EmbeddingStats`.
"""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable

import structlog

from docrag.interfaces.cache_provider import ICacheProvider
from docrag.interfaces.embedding_provider import IEmbeddingProvider
from docrag.models.rag import EmbeddingStats
from docrag.utils.errors import (
    NON_RETRYABLE_EMBEDDING_ERRORS,
    EmbeddingConfigurationError,
    EmbeddingError,
)
from docrag.utils.hashing import sha256_text

logger = structlog.get_logger(logger_name=__name__)


class EmbeddingService:
    """Turns text into vectors through a provider adapter.

    Parameters
    ----------
    provider:
        The embedding API adapter.
    cache:
        Cache for ``content hash -> vector``.  ``None`` disables caching
        (in-flight de-duplication still applies).
    max_retries:
        Total attempts per text, including the first.
    backoff_base:
        Seconds to wait after the first failed attempt; doubles each time.
    sleep:
        Awaitable sleep function, replaceable in tests.
    """

    def __init__(
        self,
        provider: IEmbeddingProvider,
        cache: ICacheProvider | None = None,
        max_retries: int = 3,
        backoff_base: float = 1.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if max_retries < 1:
            raise ValueError("max_retries must be at least 1")
        self._provider = provider
        self._cache = cache
        self._max_retries = max_retries
        self._backoff_base = backoff_base
        self._sleep = sleep
        self._in_flight: dict[str, asyncio.Future[list[float]]] = {}

        self._total_embeddings = 0
        self._cache_hits = 0
        self._api_calls = 0
        self._api_errors = 0

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def embed(self, text: str) -> list[float]:
        """Return the embedding vector for *text*.

        Raises
        ------
        EmbeddingError
            If *text* is blank, the vector has the wrong dimension, or every
            attempt failed (chained to the last cause).
        EmbeddingConfigurationError
            If the provider has no credentials.
        EmbeddingAuthError
            If the provider rejected the credentials.
        """
        if not text or not text.strip():
            raise EmbeddingError(
                message="Cannot embed empty text",
                provider_name=self.provider_name,
            )
        if not self._provider.is_available():
            raise EmbeddingConfigurationError(
                message="Embedding provider has no API key configured",
                provider_name=self.provider_name,
            )

        self._total_embeddings += 1
        key = self.compute_hash(text)

        if self._cache is not None:
            cached = await self._cache.get(key)
            if cached is not None:
                self._cache_hits += 1
                return list(cached)

        while key in self._in_flight:
            pending = self._in_flight[key]
            try:
                vector = await asyncio.shield(pending)
            except asyncio.CancelledError:
                # The caller that owned the request was cancelled, not us.
                if pending.cancelled():
                    continue
                raise
            self._cache_hits += 1
            return list(vector)

        future: asyncio.Future[list[float]] = asyncio.get_running_loop().create_future()
        self._in_flight[key] = future
        try:
            vector = await self._embed_with_retry(text)
            if self._cache is not None:
                await self._cache.set(key, vector)
            future.set_result(vector)
            return list(vector)
        except asyncio.CancelledError:
            future.cancel()
            raise
        except Exception as exc:
            future.set_exception(exc)
            # Mark retrieved; waiters (if any) still receive it.
            future.exception()
            raise
        finally:
            self._in_flight.pop(key, None)

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """Embed every text, returning vectors in input order."""
        if not texts:
            return []
        return list(await asyncio.gather(*(self.embed(t) for t in texts)))

    @staticmethod
    def compute_hash(text: str) -> str:
        """Return the cache key for *text* (SHA-256 hex of its UTF-8 bytes)."""
        return sha256_text(text)

    async def has_cached(self, content_hash: str) -> bool:
        if self._cache is None:
            return False
        return await self._cache.exists(content_hash)

    async def get_cached(self, content_hash: str) -> list[float] | None:
        if self._cache is None:
            return None
        cached = await self._cache.get(content_hash)
        return list(cached) if cached is not None else None

    async def clear_cache(self) -> None:
        if self._cache is not None:
            await self._cache.clear()
        logger.info("embedding_cache_cleared", provider=self.provider_name)

    def cache_stats(self) -> EmbeddingStats:
        total = self._total_embeddings
        calls = self._api_calls
        return EmbeddingStats(
            cache_size=self._cache.size() if self._cache is not None else 0,
            total_embeddings=total,
            cache_hits=self._cache_hits,
            hit_rate=self._cache_hits / total if total else 0.0,
            api_calls=calls,
            api_errors=self._api_errors,
            error_rate=self._api_errors / calls if calls else 0.0,
            provider=self.provider_name,
            available=self.is_ready(),
        )

    def get_dimension(self) -> int:
        return self._provider.get_dimension()

    def is_ready(self) -> bool:
        return self._provider.is_available()

    @property
    def provider_name(self) -> str:
        return self._provider.get_provider_name()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _embed_with_retry(self, text: str) -> list[float]:
        last_exc: Exception | None = None

        for attempt in range(1, self._max_retries + 1):
            self._api_calls += 1
            try:
                vector = await self._provider.embed_single(text)
            except NON_RETRYABLE_EMBEDDING_ERRORS:
                self._api_errors += 1
                raise
            except Exception as exc:
                self._api_errors += 1
                last_exc = exc
                logger.warning(
                    "embedding_attempt_failed",
                    provider=self.provider_name,
                    attempt=attempt,
                    max_retries=self._max_retries,
                    error=str(exc),
                )
            else:
                expected = self._provider.get_dimension()
                if len(vector) != expected:
                    raise EmbeddingError(
                        message=(
                            f"Embedding dimension mismatch: expected {expected}, "
                            f"got {len(vector)}"
                        ),
                        provider_name=self.provider_name,
                    )
                return list(vector)

            if attempt < self._max_retries:
                await self._sleep(self._backoff_base * 2 ** (attempt - 1))

        logger.error(
            "embedding_failed",
            provider=self.provider_name,
            attempts=self._max_retries,
            error=str(last_exc),
        )
        raise EmbeddingError(
            message=f"Embedding failed after {self._max_retries} attempts: {last_exc}",
            provider_name=self.provider_name,
        ) from last_exc

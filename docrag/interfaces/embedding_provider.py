"""Abstract base class for text-embedding API adapters.

An adapter performs exactly one remote call per invocation and maps
library / HTTP failures into the :mod:`docrag.utils.errors` hierarchy.
Caching, retries and in-flight de-duplication are layered on top by
:class:`~docrag.services.embedding_service.EmbeddingService`.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


# Concrete implementations:
#   GeminiEmbeddingProvider  — text-embedding-004 over the Generative Language REST API
#   OpenAIEmbeddingProvider  — text-embedding-3-small or any OpenAI-compatible endpoint
# Located in: docrag/providers/embedding/
class IEmbeddingProvider(ABC):
    """Contract for text-embedding services used by the pipeline."""

    @abstractmethod
    async def embed(self, texts: list[str]) -> list[list[float]]:
        """Generate embedding vectors for a batch of texts.

        Parameters
        ----------
        texts:
            One or more text strings to embed.

        Returns
        -------
        list[list[float]]
            Embedding vectors corresponding positionally to *texts*.

        Raises
        ------
        docrag.utils.errors.EmbeddingError
            Or one of its subclasses when the API call fails.
        """

    @abstractmethod
    async def embed_single(self, text: str) -> list[float]:
        """Generate an embedding vector for a single text string."""

    @abstractmethod
    def get_dimension(self) -> int:
        """Return the fixed dimensionality of the vectors this adapter produces."""

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a short identifier such as ``"gemini"`` or ``"openai"``."""

    @abstractmethod
    def is_available(self) -> bool:
        """Return ``True`` if credentials are configured.

        Must not perform a network call.
        """

"""Shared pytest fixtures for the docrag test suite."""

from __future__ import annotations

import asyncio
import hashlib
import math
import re
from pathlib import Path

import pytest

from docrag.config.settings import Settings
from docrag.interfaces.embedding_provider import IEmbeddingProvider
from docrag.main import Services, build_services
from docrag.providers.storage.sqlite_document_store import SQLiteDocumentStore
from docrag.utils.errors import ProviderUnavailableError

_TOKEN = re.compile(r"\w+")


# ---------------------------------------------------------------------------
# Fake embedding provider
# ---------------------------------------------------------------------------


class FakeEmbeddingProvider(IEmbeddingProvider):
    """Deterministic bag-of-words embedder.

    Each word is hashed into one of ``dimension`` buckets, so identical text
    gives identical vectors and texts sharing words score higher.  Set
    ``fail_times`` to make the next N calls raise a retryable error, or
    ``available = False`` to simulate missing credentials.
    """

    def __init__(self, dimension: int = 256, delay: float = 0.0) -> None:
        self.dimension = dimension
        self.delay = delay
        self.available = True
        self.fail_times = 0
        self.calls: list[str] = []
        self.fixed_vectors: dict[str, list[float]] = {}

    async def embed(self, texts: list[str]) -> list[list[float]]:
        return [await self.embed_single(t) for t in texts]

    async def embed_single(self, text: str) -> list[float]:
        self.calls.append(text)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail_times > 0:
            self.fail_times -= 1
            raise ProviderUnavailableError("simulated outage", provider_name="fake")
        if text in self.fixed_vectors:
            return list(self.fixed_vectors[text])
        return self.vector_for(text)

    def vector_for(self, text: str) -> list[float]:
        vector = [0.0] * self.dimension
        for word in _TOKEN.findall(text.lower()):
            bucket = int(hashlib.md5(word.encode()).hexdigest(), 16) % self.dimension
            vector[bucket] += 1.0
        if not any(vector):
            vector[0] = 1.0
        return vector

    def get_dimension(self) -> int:
        return self.dimension

    def get_provider_name(self) -> str:
        return "fake"

    def is_available(self) -> bool:
        return self.available


def unit_vector(similarity: float, dimension: int = 8) -> list[float]:
    """Return a unit vector whose cosine similarity with e0 is *similarity*."""
    vector = [0.0] * dimension
    vector[0] = similarity
    vector[1] = math.sqrt(max(0.0, 1.0 - similarity * similarity))
    return vector


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def fake_provider() -> FakeEmbeddingProvider:
    return FakeEmbeddingProvider()


@pytest.fixture
def make_settings(tmp_path: Path):
    """Build Settings isolated from the environment and pointed at tmp_path."""

    def _make(**overrides) -> Settings:
        defaults = {
            "_env_file": None,
            "gemini_api_key": "",
            "openai_api_key": "",
            "embedding_provider": "auto",
            "embedding_backoff_base_seconds": 0.0,
            "vector_store_backend": "sqlite",
            "retrieval_strategy": "auto",
            "document_db_path": str(tmp_path / "documents.db"),
            "chromadb_persist_dir": str(tmp_path / "chromadb"),
            "upload_storage_path": str(tmp_path / "uploads"),
            "chunk_size": 500,
            "chunk_overlap": 50,
            "log_level": "WARNING",
        }
        defaults.update(overrides)
        return Settings(**defaults)

    return _make


@pytest.fixture
async def sqlite_store(tmp_path: Path) -> SQLiteDocumentStore:
    store = SQLiteDocumentStore(db_path=tmp_path / "store.db")
    await store.initialize()
    return store


@pytest.fixture
async def services(make_settings, fake_provider: FakeEmbeddingProvider) -> Services:
    """Full service graph on SQLite with the fake embedder."""
    built = build_services(
        make_settings(),
        embedding_provider=fake_provider,
        configure_logs=False,
    )
    await built.start()
    yield built
    await built.aclose()


@pytest.fixture
def fake_provider_cls() -> type[FakeEmbeddingProvider]:
    return FakeEmbeddingProvider


@pytest.fixture
def make_unit_vector():
    return unit_vector

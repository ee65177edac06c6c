"""Abstract base class for storage of original uploaded bytes."""

from __future__ import annotations

from abc import ABC, abstractmethod


class IBlobStore(ABC):
    """Contract for saving and loading uploaded files by key.

    Keys are generated by the ingestion service (UUID plus extension) and
    never contain path separators.
    """

    @abstractmethod
    async def save(self, key: str, data: bytes) -> None:
        """Persist *data* under *key*.

        Raises
        ------
        docrag.utils.errors.StorageError
            If the bytes cannot be written.
        """

    @abstractmethod
    async def load(self, key: str) -> bytes:
        """Return the bytes stored under *key*.

        Raises
        ------
        docrag.utils.errors.StorageError
            If the key does not exist or cannot be read.
        """

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """Remove *key*.  Returns ``False`` when nothing was stored under it."""

"""Filesystem blob store for original uploaded bytes.

Files are written under a single root directory using the key generated
by the ingestion service (a UUID plus the original extension), so user
supplied filenames never reach the filesystem.
"""

from __future__ import annotations

import asyncio
from pathlib import Path

import structlog

from docrag.interfaces.blob_store import IBlobStore
from docrag.utils.errors import StorageError

logger = structlog.get_logger(logger_name=__name__)


class LocalBlobStore(IBlobStore):
    """Stores blobs as files in ``root`` (default ``./data/uploads``)."""

    def __init__(self, root: str | Path = "./data/uploads") -> None:
        self._root = Path(root)

    @property
    def root(self) -> Path:
        return self._root

    def get_provider_name(self) -> str:
        return "local_blob"

    async def save(self, key: str, data: bytes) -> None:
        path = self._path_for(key)
        try:
            await asyncio.to_thread(self._write, path, data)
        except OSError as exc:
            raise StorageError(
                message=f"Could not write blob {key}: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc
        logger.debug("blob_saved", key=key, size_bytes=len(data))

    async def load(self, key: str) -> bytes:
        path = self._path_for(key)
        try:
            return await asyncio.to_thread(path.read_bytes)
        except OSError as exc:
            raise StorageError(
                message=f"Could not read blob {key}: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

    async def delete(self, key: str) -> bool:
        path = self._path_for(key)
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        except OSError as exc:
            raise StorageError(
                message=f"Could not delete blob {key}: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc
        logger.debug("blob_deleted", key=key)
        return True

    def _path_for(self, key: str) -> Path:
        name = Path(key).name
        if not name or name != key:
            raise StorageError(
                message=f"Invalid blob key: {key!r}",
                provider_name=self.get_provider_name(),
            )
        return self._root / name

    @staticmethod
    def _write(path: Path, data: bytes) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)

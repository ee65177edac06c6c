"""In-memory cache provider using cachetools.

Backs the embedding cache: ``content hash -> vector`` for the lifetime of the
process.  By default the cache is unbounded, so an entry only leaves through
:meth:`delete` or :meth:`clear`.  Passing ``max_size`` switches to a
``cachetools.LRUCache`` that evicts the least-recently-used entry once full.
"""

from __future__ import annotations

import math
import threading
from typing import Any

import structlog
from cachetools import Cache, LRUCache

from docrag.interfaces.cache_provider import ICacheProvider

logger = structlog.get_logger(logger_name=__name__)


class MemoryCacheProvider(ICacheProvider):
    """Lock-guarded in-memory cache backed by ``cachetools``.

    The lock makes the cache safe to share between the event loop and
    worker threads (e.g. extraction running in an executor).

    Parameters
    ----------
    max_size:
        ``None`` (default) keeps every entry until cleared.  An integer
        bounds the cache, evicting the least-recently-used entry.
    """

    def __init__(self, max_size: int | None = None) -> None:
        self._cache: Cache[str, Any]
        if max_size is None:
            self._cache = Cache(maxsize=math.inf)
        else:
            self._cache = LRUCache(maxsize=max_size)
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # ICacheProvider implementation
    # ------------------------------------------------------------------

    async def get(self, key: str) -> Any | None:
        with self._lock:
            value = self._cache.get(key)
        logger.debug("cache_hit" if value is not None else "cache_miss", key=key)
        return value

    async def set(self, key: str, value: Any) -> None:
        with self._lock:
            self._cache[key] = value
        logger.debug("cache_set", key=key)

    async def delete(self, key: str) -> None:
        with self._lock:
            self._cache.pop(key, None)

    async def exists(self, key: str) -> bool:
        with self._lock:
            return key in self._cache

    async def clear(self) -> None:
        with self._lock:
            count = len(self._cache)
            self._cache.clear()
        logger.info("cache_cleared", entries=count)

    def size(self) -> int:
        with self._lock:
            return len(self._cache)

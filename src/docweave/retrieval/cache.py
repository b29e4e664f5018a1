"""LRU cache for search responses."""

import hashlib
import json
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable

from docweave.config import get_settings


@dataclass
class CacheEntry:
    """A cached search result with metadata."""

    project_id: str
    results: Any
    created_at: float


class QueryCache:
    """
    LRU cache for search results.

    Features:
    - Size-limited with LRU eviction
    - TTL-based expiration
    - Key covers project, mode, normalized query and top_k
    - Invalidation of one project or everything
    """

    def __init__(
        self,
        max_size: int | None = None,
        ttl_seconds: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize the query cache.

        Args:
            max_size: Maximum number of entries to cache
            ttl_seconds: Time-to-live for cache entries in seconds
            clock: Time source, replaceable in tests
        """
        settings = get_settings()
        self.max_size = max_size or settings.cache_max_size
        self.ttl_seconds = ttl_seconds if ttl_seconds is not None else settings.cache_ttl_seconds
        self._clock = clock

        self._cache: OrderedDict[str, CacheEntry] = OrderedDict()

    def _make_key(self, project_id: str, mode: str, query: str, top_k: int) -> str:
        """Generate cache key from query parameters."""
        key_data = {
            "project_id": project_id,
            "mode": mode,
            "query": " ".join(query.lower().split()),
            "top_k": top_k,
        }
        key_json = json.dumps(key_data, sort_keys=True)
        return hashlib.sha256(key_json.encode()).hexdigest()[:32]

    def get(self, project_id: str, mode: str, query: str, top_k: int) -> Any | None:
        """Cached results, or None if absent or expired."""
        key = self._make_key(project_id, mode, query, top_k)

        entry = self._cache.get(key)
        if entry is None:
            return None

        if self._clock() - entry.created_at > self.ttl_seconds:
            del self._cache[key]
            return None

        # Move to end (most recently used)
        self._cache.move_to_end(key)
        return entry.results

    def set(self, project_id: str, mode: str, query: str, top_k: int, results: Any) -> None:
        """Cache results for a query."""
        key = self._make_key(project_id, mode, query, top_k)
        self._cache.pop(key, None)

        # Evict oldest if at capacity
        while len(self._cache) >= self.max_size:
            self._cache.popitem(last=False)

        self._cache[key] = CacheEntry(
            project_id=project_id,
            results=results,
            created_at=self._clock(),
        )

    def invalidate(self, project_id: str | None = None) -> int:
        """Drop entries of one project, or all entries. Returns the number dropped."""
        if project_id is None:
            dropped = len(self._cache)
            self._cache.clear()
            return dropped

        stale = [key for key, entry in self._cache.items() if entry.project_id == project_id]
        for key in stale:
            del self._cache[key]
        return len(stale)

    @property
    def size(self) -> int:
        """Return current cache size."""
        return len(self._cache)


# Singleton instance
_cache: QueryCache | None = None


def get_query_cache() -> QueryCache:
    """Get the singleton query cache instance."""
    global _cache
    if _cache is None:
        _cache = QueryCache()
    return _cache

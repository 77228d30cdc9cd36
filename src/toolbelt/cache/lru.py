# src/toolbelt/cache/lru.py
"""
LRU (Least Recently Used) cache store for tool results.

The store provides O(1) access and update operations using an OrderedDict.
Retrieved and replaced keys move to the end (most recently used); when the
store is at capacity, inserting a new key evicts the first (least recently
used) entry.

Usage:
    store = LRUCacheStore(max_size=1000)
    store.set("Read:ab12", CacheEntry(result=data, timestamp=now_ms))
    entry = store.get("Read:ab12")
"""

from __future__ import annotations

import logging
import threading
from collections import OrderedDict

from ..config import CacheConfig
from ..exceptions import ConfigError
from .types import CacheEntry

logger = logging.getLogger(__name__)

DEFAULT_MAX_SIZE = 1000


class LRUCacheStore:
    """Thread-safe LRU cache store.

    A single re-entrant lock guards every operation, so concurrent callers
    never corrupt recency order or exceed ``max_size``.

    Attributes:
        max_size: Maximum number of entries to keep.
    """

    def __init__(self, max_size: int = DEFAULT_MAX_SIZE) -> None:
        """Initialize the store.

        Args:
            max_size: Maximum number of entries. Must be at least 1.

        Raises:
            ConfigError: If ``max_size`` is smaller than 1.
        """
        if max_size < 1:
            raise ConfigError(f"LRUCacheStore max_size must be >= 1, got {max_size}")
        self.max_size = max_size
        self._cache: OrderedDict[str, CacheEntry] = OrderedDict()
        self._lock = threading.RLock()

    @classmethod
    def from_config(cls, config: CacheConfig) -> LRUCacheStore:
        return cls(max_size=config.max_size)

    def get(self, key: str) -> CacheEntry | None:
        """Get an entry, moving it to the most recently used position.

        Args:
            key: Cache key.

        Returns:
            The cached entry or None if not found.
        """
        with self._lock:
            entry = self._cache.get(key)
            if entry is not None:
                self._cache.move_to_end(key)
            return entry

    def set(self, key: str, entry: CacheEntry) -> None:
        """Insert or replace an entry, evicting the oldest one if necessary.

        Args:
            key: Cache key.
            entry: Entry to store.
        """
        with self._lock:
            if key in self._cache:
                self._cache.move_to_end(key)
            elif len(self._cache) >= self.max_size:
                evicted, _ = self._cache.popitem(last=False)
                logger.debug(f"LRU evicted key {evicted}")
            self._cache[key] = entry

    def delete(self, key: str) -> None:
        """Remove an entry; absent keys are ignored."""
        with self._lock:
            self._cache.pop(key, None)

    def clear(self) -> None:
        """Remove all entries."""
        with self._lock:
            self._cache.clear()

    def size(self) -> int:
        """Return the number of stored entries."""
        with self._lock:
            return len(self._cache)

    def keys(self) -> list[str]:
        """Return keys ordered from least to most recently used."""
        with self._lock:
            return list(self._cache.keys())

    def __contains__(self, key: object) -> bool:
        """Check if key exists without updating LRU order."""
        with self._lock:
            return key in self._cache

    def __len__(self) -> int:
        return self.size()

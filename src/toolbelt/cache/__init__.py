# src/toolbelt/cache/__init__.py
"""
Tool result caching: LRU and Redis stores plus the ``cached()`` wrapper.
"""

from .cached import (
    DEFAULT_TTL_SECONDS,
    AsyncCachedTool,
    CachedTool,
    cached,
    default_key_generator,
)
from .lru import DEFAULT_MAX_SIZE, LRUCacheStore
from .redis import RedisCacheStore, RedisClient
from .types import CacheEntry, CacheStats, CacheStore

__all__ = [
    "DEFAULT_MAX_SIZE",
    "DEFAULT_TTL_SECONDS",
    "AsyncCachedTool",
    "CacheEntry",
    "CacheStats",
    "CacheStore",
    "CachedTool",
    "LRUCacheStore",
    "RedisCacheStore",
    "RedisClient",
    "cached",
    "default_key_generator",
]

# src/toolbelt/cache/redis.py
"""
Redis-backed cache store.

Adapts an existing Redis client (``redis.Redis`` or anything with the same
``get``/``set``/``delete``/``keys`` methods) to the ``CacheStore`` protocol.
Entries are stored as JSON under a namespacing prefix.

TTL is enforced by the ``cached()`` wrapper, not by Redis, so expiry
behaves the same for every backend. Eviction is left to the Redis server's
own ``maxmemory-policy``.

The client library is not imported here. The ``redis`` extra
(``pip install agent-toolbelt[redis]``) installs it for callers that build
the client.

Usage:
    import redis
    store = RedisCacheStore(redis.Redis(), prefix="toolbelt:")
    cached_grep = cached(grep_tool, "Grep", store=store)
"""

from __future__ import annotations

import json
import logging
from typing import Any, Protocol

from .types import CacheEntry

logger = logging.getLogger(__name__)

DEFAULT_PREFIX = "toolbelt:"


class RedisClient(Protocol):
    """Minimal interface of a synchronous Redis client."""

    def get(self, key: str) -> Any: ...

    def set(self, key: str, value: str) -> Any: ...

    def delete(self, *keys: str) -> Any: ...

    def keys(self, pattern: str) -> list[Any]: ...


class RedisCacheStore:
    """Cache store persisting entries in Redis."""

    def __init__(self, client: RedisClient, prefix: str = DEFAULT_PREFIX) -> None:
        self.client = client
        self.prefix = prefix

    def _key(self, key: str) -> str:
        return f"{self.prefix}{key}"

    def get(self, key: str) -> CacheEntry | None:
        data = self.client.get(self._key(key))
        if not data:
            return None
        if isinstance(data, bytes):
            data = data.decode("utf-8")
        try:
            return CacheEntry.model_validate_json(data)
        except ValueError as e:
            logger.warning(f"Ignoring unreadable cache entry {key}: {e}")
            return None

    def set(self, key: str, entry: CacheEntry) -> None:
        self.client.set(self._key(key), json.dumps(entry.model_dump(), default=str))

    def delete(self, key: str) -> None:
        self.client.delete(self._key(key))

    def clear(self) -> None:
        keys = self.client.keys(f"{self.prefix}*")
        if keys:
            self.client.delete(*keys)

    def size(self) -> int:
        return len(self.client.keys(f"{self.prefix}*"))

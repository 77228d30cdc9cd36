# src/toolbelt/cache/types.py
"""
Shared types for tool result caching.

Defines the cache entry stored per key, the store protocol every cache
backend implements (in-memory LRU, Redis, ...) and the statistics model
returned by cached tools.
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

from pydantic import BaseModel, ConfigDict, Field


class CacheEntry(BaseModel):
    """Cached tool result together with the time it was stored.

    Attributes:
        result: The tool result as returned by the wrapped tool.
        timestamp: Storage time in milliseconds since the epoch.
    """

    result: Any
    timestamp: int = Field(ge=0)

    model_config = ConfigDict(frozen=True)


@runtime_checkable
class CacheStore(Protocol):
    """Protocol for tool result cache backends."""

    def get(self, key: str) -> CacheEntry | None: ...

    def set(self, key: str, entry: CacheEntry) -> None: ...

    def delete(self, key: str) -> None: ...

    def clear(self) -> None: ...

    def size(self) -> int: ...


class CacheStats(BaseModel):
    """Cache statistics returned by ``get_stats()``."""

    hits: int = 0
    misses: int = 0
    hit_rate: float = 0.0
    size: int = 0

    model_config = ConfigDict(frozen=True)

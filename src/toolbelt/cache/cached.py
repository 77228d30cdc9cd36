# src/toolbelt/cache/cached.py
"""
Tool result caching.

``cached()`` wraps a tool (a callable, or an object with an ``execute``
method) so that repeated invocations with identical parameters are served
from a cache store instead of re-running the tool.

Only successful results are cached: a result must be a mapping without an
``"error"`` key. Exceptions raised by the tool propagate untouched and
nothing is stored. Entries older than the TTL are treated as misses and
overwritten on the next successful run.

The tool runs outside of any lock, so a slow miss never blocks lookups of
unrelated keys. Concurrent misses on the *same* key may each run the tool;
results are idempotent, so the last successful write wins.

Example:
    cached_read = cached(read_tool, "Read", ttl=300)
    result = cached_read({"file_path": "/tmp/a.txt"})
    print(cached_read.get_stats())
    # CacheStats(hits=0, misses=1, hit_rate=0.0, size=1)
"""

from __future__ import annotations

import hashlib
import inspect
import json
import logging
import threading
import time
from collections.abc import Mapping
from typing import Any, Callable

from ..debug import debug_end, debug_error, debug_start
from ..exceptions import ConfigError, ToolDefinitionError
from .lru import LRUCacheStore
from .types import CacheEntry, CacheStats, CacheStore

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 5 * 60

KeyGenerator = Callable[[str, Any], str]
CacheCallback = Callable[[str, str], None]


def default_key_generator(tool_name: str, params: Any) -> str:
    """Generate a deterministic cache key from tool name and params.

    Mapping keys are sorted recursively before serialization, so
    ``{"a": 1, "b": 2}`` and ``{"b": 2, "a": 1}`` produce the same key.
    The SHA256 digest is truncated to 16 hex chars for fixed-length,
    Redis-safe keys.
    """
    serialized = json.dumps(
        params, sort_keys=True, separators=(",", ":"), ensure_ascii=False, default=str
    )
    digest = hashlib.sha256(serialized.encode("utf-8")).hexdigest()[:16]
    return f"{tool_name}:{digest}"


def _resolve_execute(tool: Any, tool_name: str) -> Callable[..., Any]:
    execute = getattr(tool, "execute", None)
    if callable(execute):
        return execute
    if callable(tool):
        return tool
    raise ToolDefinitionError(tool_name)


def _is_async_callable(fn: Callable[..., Any]) -> bool:
    # instances with an `async def __call__` are not coroutine functions themselves
    return inspect.iscoroutinefunction(fn) or inspect.iscoroutinefunction(
        getattr(fn, "__call__", None)
    )


def _is_cacheable(result: Any) -> bool:
    return isinstance(result, Mapping) and "error" not in result


class _CachedToolBase:
    """Cache bookkeeping shared by the sync and async wrappers."""

    def __init__(
        self,
        tool: Any,
        tool_name: str,
        execute: Callable[..., Any],
        *,
        ttl: float,
        store: CacheStore,
        key_generator: KeyGenerator,
        on_hit: CacheCallback | None,
        on_miss: CacheCallback | None,
        clock: Callable[[], float],
    ) -> None:
        if ttl < 0:
            raise ConfigError(f"Cache ttl must be >= 0 seconds, got {ttl}")
        self.tool = tool
        self.tool_name = tool_name
        self.ttl = ttl
        self.store = store
        self._execute = execute
        self._key_generator = key_generator
        self._on_hit = on_hit
        self._on_miss = on_miss
        self._clock = clock
        self._hits = 0
        self._misses = 0
        self._stats_lock = threading.Lock()

    def __getattr__(self, name: str) -> Any:
        # Expose the wrapped tool's attributes (description, schema, ...).
        tool = self.__dict__.get("tool")
        if tool is None:
            raise AttributeError(name)
        return getattr(tool, name)

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    def _lookup(self, key: str, now_ms: int) -> tuple[bool, Any]:
        entry = self.store.get(key)
        if entry is not None and now_ms - entry.timestamp <= self.ttl * 1000:
            with self._stats_lock:
                self._hits += 1
            logger.debug(f"[Cache] HIT {self.tool_name}:{key[-8:]}")
            if self._on_hit is not None:
                self._on_hit(self.tool_name, key)
            return True, entry.result

        with self._stats_lock:
            self._misses += 1
        logger.debug(f"[Cache] MISS {self.tool_name}:{key[-8:]}")
        if self._on_miss is not None:
            self._on_miss(self.tool_name, key)
        return False, None

    def _remember(self, key: str, result: Any, now_ms: int) -> bool:
        if not _is_cacheable(result):
            return False
        self.store.set(key, CacheEntry(result=result, timestamp=now_ms))
        logger.debug(f"[Cache] STORED {self.tool_name}:{key[-8:]}")
        return True

    def get_stats(self) -> CacheStats:
        """Return hits, misses, hit rate and current store size."""
        with self._stats_lock:
            hits, misses = self._hits, self._misses
        total = hits + misses
        return CacheStats(
            hits=hits,
            misses=misses,
            hit_rate=hits / total if total > 0 else 0.0,
            size=self.store.size(),
        )

    def clear_cache(self, key: str | None = None) -> None:
        """Clear one entry, or the whole store when no key is given."""
        if key is not None:
            self.store.delete(key)
        else:
            self.store.clear()


class CachedTool(_CachedToolBase):
    """Caching wrapper around a synchronous tool."""

    def execute(self, params: Any, *args: Any, **kwargs: Any) -> Any:
        key = self._key_generator(self.tool_name, params)
        now_ms = self._now_ms()
        event_id = debug_start("cache", {"tool": self.tool_name, "key": key})
        started = time.perf_counter()

        hit, result = self._lookup(key, now_ms)
        if not hit:
            try:
                result = self._execute(params, *args, **kwargs)
            except Exception as e:
                debug_error(event_id, "cache", e)
                raise
            stored = self._remember(key, result, now_ms)
        else:
            stored = False

        debug_end(
            event_id,
            "cache",
            summary={"tool": self.tool_name, "hit": hit, "stored": stored},
            duration_ms=(time.perf_counter() - started) * 1000,
        )
        return result

    __call__ = execute


class AsyncCachedTool(_CachedToolBase):
    """Caching wrapper around a coroutine tool."""

    async def execute(self, params: Any, *args: Any, **kwargs: Any) -> Any:
        key = self._key_generator(self.tool_name, params)
        now_ms = self._now_ms()
        event_id = debug_start("cache", {"tool": self.tool_name, "key": key})
        started = time.perf_counter()

        hit, result = self._lookup(key, now_ms)
        if not hit:
            try:
                result = await self._execute(params, *args, **kwargs)
            except Exception as e:
                debug_error(event_id, "cache", e)
                raise
            stored = self._remember(key, result, now_ms)
        else:
            stored = False

        debug_end(
            event_id,
            "cache",
            summary={"tool": self.tool_name, "hit": hit, "stored": stored},
            duration_ms=(time.perf_counter() - started) * 1000,
        )
        return result

    __call__ = execute


def cached(
    tool: Any,
    tool_name: str,
    *,
    ttl: float = DEFAULT_TTL_SECONDS,
    store: CacheStore | None = None,
    key_generator: KeyGenerator | None = None,
    on_hit: CacheCallback | None = None,
    on_miss: CacheCallback | None = None,
    clock: Callable[[], float] = time.time,
) -> CachedTool | AsyncCachedTool:
    """Wrap a tool with result caching.

    Args:
        tool: A callable, or an object with a callable ``execute`` attribute.
        tool_name: Name used in cache keys and callbacks (e.g. ``"Read"``).
        ttl: Entry lifetime in seconds (default: 5 minutes).
        store: Cache store (default: a private ``LRUCacheStore(1000)``).
        key_generator: Custom ``(tool_name, params) -> key`` function.
        on_hit: Called with ``(tool_name, key)`` on every cache hit.
        on_miss: Called with ``(tool_name, key)`` on every cache miss.
        clock: Time source in seconds, injectable for tests.

    Returns:
        ``AsyncCachedTool`` when the tool is a coroutine function (or an
        object with an async ``__call__``),
        ``CachedTool`` otherwise.

    Raises:
        ToolDefinitionError: If ``tool`` has nothing to execute.
    """
    execute = _resolve_execute(tool, tool_name)
    wrapper_cls = AsyncCachedTool if _is_async_callable(execute) else CachedTool
    return wrapper_cls(
        tool,
        tool_name,
        execute,
        ttl=ttl,
        store=store if store is not None else LRUCacheStore(),
        key_generator=key_generator or default_key_generator,
        on_hit=on_hit,
        on_miss=on_miss,
        clock=clock,
    )

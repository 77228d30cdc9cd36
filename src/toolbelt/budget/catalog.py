# src/toolbelt/budget/catalog.py
"""
Remote model pricing catalog.

Fetches per-token pricing from OpenRouter's public models endpoint and keeps
the parsed map for a TTL (24 hours by default). Concurrent cold callers share a
single in-flight request across threads and event loops, so a burst of
agents starting together triggers exactly one fetch.

Failures are never papered over: a timeout, network error, non-2xx status
or unreadable body each raise their own ``PricingFetchError`` subclass, and
the previous snapshot is not served once it has expired.

Usage:
    catalog = get_pricing_catalog()
    pricing = await catalog.fetch()
    tracker = BudgetTracker(5.0, catalog_pricing=pricing)
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import logging
import math
import threading
import time
from collections.abc import Mapping
from typing import Any, Callable

import aiohttp

from ..config import DEFAULT_CATALOG_URL, PricingConfig
from ..debug import debug_end, debug_error, debug_start
from ..exceptions import (
    PricingFormatError,
    PricingHTTPError,
    PricingNetworkError,
    PricingTimeoutError,
)
from .pricing import ModelPricing

logger = logging.getLogger(__name__)

OPENROUTER_MODELS_URL = DEFAULT_CATALOG_URL
DEFAULT_CATALOG_TTL_SECONDS = 24 * 60 * 60
DEFAULT_FETCH_TIMEOUT_SECONDS = 10.0
# Caps memory use if the endpoint misbehaves; OpenRouter lists ~500 models.
MAX_MODELS = 10_000

SessionFactory = Callable[[], Any]


def _parse_rate(value: Any) -> float | None:
    """Parse a string-encoded rate; None if missing, non-numeric, negative or non-finite."""
    if value is None or isinstance(value, bool):
        return None
    try:
        rate = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(rate) or rate < 0:
        return None
    return rate


def parse_pricing_catalog(payload: Any, max_models: int = MAX_MODELS) -> dict[str, ModelPricing]:
    """Turn an OpenRouter ``/models`` response body into a pricing map.

    Entries without an id, without pricing, or with an unusable prompt or
    completion rate are skipped. An unusable cache rate is dropped on its
    own and the entry is kept.

    Raises:
        PricingFormatError: If the body has no ``data`` list.
    """
    if not isinstance(payload, Mapping) or not isinstance(payload.get("data"), list):
        raise PricingFormatError("missing data array")

    pricing_map: dict[str, ModelPricing] = {}
    skipped = 0
    for model in payload["data"][:max_models]:
        if not isinstance(model, Mapping):
            skipped += 1
            continue
        model_id = model.get("id")
        rates = model.get("pricing")
        if not model_id or not isinstance(model_id, str) or not isinstance(rates, Mapping):
            skipped += 1
            continue

        prompt = _parse_rate(rates.get("prompt"))
        completion = _parse_rate(rates.get("completion"))
        if prompt is None or completion is None:
            skipped += 1
            continue

        pricing_map[model_id.lower()] = ModelPricing(
            input_per_token=prompt,
            output_per_token=completion,
            cache_read_per_token=_parse_rate(rates.get("input_cache_read")),
            cache_write_per_token=_parse_rate(rates.get("input_cache_write")),
        )

    if skipped:
        logger.debug(f"Skipped {skipped} catalog entries with missing or invalid pricing")
    return pricing_map


class PricingCatalog:
    """TTL-cached, single-flight view of a remote pricing catalog."""

    def __init__(
        self,
        url: str = OPENROUTER_MODELS_URL,
        *,
        ttl_seconds: float = DEFAULT_CATALOG_TTL_SECONDS,
        timeout_seconds: float = DEFAULT_FETCH_TIMEOUT_SECONDS,
        max_models: int = MAX_MODELS,
        session_factory: SessionFactory | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.url = url
        self.ttl_seconds = ttl_seconds
        self.timeout_seconds = timeout_seconds
        self.max_models = max_models
        self._session_factory = session_factory or aiohttp.ClientSession
        self._clock = clock
        self._lock = threading.Lock()
        self._cache: dict[str, ModelPricing] | None = None
        self._fetched_at = 0.0
        self._inflight: concurrent.futures.Future[dict[str, ModelPricing]] | None = None
        self._loader: asyncio.Task[None] | None = None

    @classmethod
    def from_config(cls, config: PricingConfig, **kwargs: Any) -> "PricingCatalog":
        return cls(
            config.catalog_url,
            ttl_seconds=config.ttl_seconds,
            timeout_seconds=config.timeout_seconds,
            max_models=config.max_models,
            **kwargs,
        )

    def _fresh_locked(self) -> dict[str, ModelPricing] | None:
        if self._cache is not None and self._clock() - self._fetched_at < self.ttl_seconds:
            return self._cache
        return None

    def snapshot(self) -> dict[str, ModelPricing] | None:
        """Return the cached map if still within the TTL, without fetching."""
        with self._lock:
            return self._fresh_locked()

    def reset(self) -> None:
        """Forget the cached map and any in-flight request."""
        with self._lock:
            self._cache = None
            self._fetched_at = 0.0
            self._inflight = None

    async def fetch(self, force_refresh: bool = False) -> dict[str, ModelPricing]:
        """Return the pricing map, fetching it if the cache is cold or stale.

        Concurrent cold callers share one request, whichever thread or event
        loop they run on. The request runs on the loop of the caller that
        started it.

        Args:
            force_refresh: Ignore a fresh cached map and fetch again.

        Raises:
            PricingFetchError: One of its subclasses, by failure class.
        """
        loop = asyncio.get_running_loop()
        with self._lock:
            if not force_refresh:
                fresh = self._fresh_locked()
                if fresh is not None:
                    return fresh
            future = self._inflight
            if future is None or future.done():
                future = concurrent.futures.Future()
                self._inflight = future
                self._loader = loop.create_task(self._load(future))
            else:
                logger.debug("Joining in-flight pricing catalog fetch")

        # shield: one caller being cancelled must not abort the shared fetch
        return await asyncio.shield(asyncio.wrap_future(future))

    def _release(self, future: concurrent.futures.Future[dict[str, ModelPricing]]) -> None:
        with self._lock:
            if self._inflight is future:
                self._inflight = None

    async def _load(self, future: concurrent.futures.Future[dict[str, ModelPricing]]) -> None:
        event_id = debug_start("pricing", {"url": self.url})
        started = time.perf_counter()
        try:
            pricing_map = await self._request()
        except asyncio.CancelledError:
            # the owning loop is shutting down; waiters on other loops must not hang
            self._release(future)
            future.set_exception(PricingNetworkError("fetch cancelled before completing"))
            raise
        except Exception as e:
            debug_error(event_id, "pricing", e)
            logger.warning(f"Pricing catalog fetch failed: {e}")
            self._release(future)
            future.set_exception(e)
            return

        with self._lock:
            self._cache = pricing_map
            self._fetched_at = self._clock()
            if self._inflight is future:
                self._inflight = None

        logger.info(f"Loaded pricing for {len(pricing_map)} models from {self.url}")
        debug_end(
            event_id,
            "pricing",
            summary={"models": len(pricing_map)},
            duration_ms=(time.perf_counter() - started) * 1000,
        )
        future.set_result(pricing_map)

    async def _request(self) -> dict[str, ModelPricing]:
        timeout = aiohttp.ClientTimeout(total=self.timeout_seconds)
        try:
            async with self._session_factory() as session:
                async with session.get(self.url, timeout=timeout) as resp:
                    if not 200 <= resp.status < 300:
                        raise PricingHTTPError(resp.status, resp.reason or "")
                    try:
                        payload = await resp.json(content_type=None)
                    except ValueError as e:
                        raise PricingFormatError(f"body is not valid JSON: {e}") from e
        except asyncio.TimeoutError as e:
            raise PricingTimeoutError(self.timeout_seconds) from e
        except aiohttp.ClientError as e:
            raise PricingNetworkError(str(e) or type(e).__name__) from e

        return parse_pricing_catalog(payload, self.max_models)


# =============================================================================
# PROCESS-WIDE CATALOG
# =============================================================================

_catalog: PricingCatalog | None = None
_catalog_lock = threading.Lock()


def get_pricing_catalog(config: PricingConfig | None = None) -> PricingCatalog:
    """Return the shared catalog, creating it from ``config`` on first use."""
    global _catalog
    with _catalog_lock:
        if _catalog is None:
            _catalog = PricingCatalog.from_config(config or PricingConfig())
        return _catalog


def reset_pricing_catalog() -> None:
    """Drop the shared catalog and its cached data. Primarily for tests."""
    global _catalog
    with _catalog_lock:
        if _catalog is not None:
            _catalog.reset()
        _catalog = None


async def fetch_openrouter_pricing(force_refresh: bool = False) -> dict[str, ModelPricing]:
    """Fetch (or reuse) the process-wide OpenRouter pricing map."""
    return await get_pricing_catalog().fetch(force_refresh=force_refresh)

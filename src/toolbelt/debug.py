# src/toolbelt/debug.py
"""
Debug tracing for toolbelt operations.

Enable tracing via the ``TOOLBELT_DEBUG`` environment variable:

- ``TOOLBELT_DEBUG=1`` or ``TOOLBELT_DEBUG=stderr``: human readable lines on stderr
- ``TOOLBELT_DEBUG=json``: JSON lines on stderr
- ``TOOLBELT_DEBUG=memory``: events kept in memory (see ``get_debug_logs()``)
- ``TOOLBELT_DEBUG=file:/path/to/trace.jsonl``: JSON lines appended to a file

Unset, ``off`` or ``0`` disables tracing. Any other value falls back to stderr.

Nested operations (e.g. a sub-agent task running tools) are correlated with
``run_with_debug_parent``. The parent id lives in a ``ContextVar``, so every
asyncio task and thread keeps its own parent and interleaved parallel
executions never see each other's parent.

Example:
    event_id = debug_start("grep", {"pattern": "TODO"})
    try:
        result = run_grep(...)
    except Exception as e:
        debug_error(event_id, "grep", e)
        raise
    debug_end(event_id, "grep", summary={"matches": 3}, duration_ms=12)
"""

from __future__ import annotations

import inspect
import json
import logging
import os
import sys
import threading
import time
from contextvars import ContextVar
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Callable, Literal, TypeVar

from .config import DebugConfig

logger = logging.getLogger(__name__)

DEBUG_ENV_VAR = "TOOLBELT_DEBUG"

MAX_STRING_LENGTH = 1000
MAX_ARRAY_ITEMS = 10
MAX_DEPTH = 5

T = TypeVar("T")


class DebugMode(str, Enum):
    """Where debug events go."""

    OFF = "off"
    STDERR = "stderr"
    JSON = "json"
    MEMORY = "memory"
    FILE = "file"


@dataclass
class DebugEvent:
    """Debug event for one phase of an instrumented operation.

    Attributes:
        id: Correlates start/end/error events (e.g. ``"grep-1"``).
        ts: Timestamp in milliseconds.
        tool: Operation name.
        event: ``start``, ``end`` or ``error``.
        input: Summarized input (start events only).
        output: Summarized output (end events only).
        summary: Key metrics such as exit codes or match counts.
        duration_ms: Duration in milliseconds (end events only).
        parent: Id of the enclosing operation, if any.
        error: Error message (error events only).
    """

    id: str
    ts: int
    tool: str
    event: Literal["start", "end", "error"]
    input: Any = None
    output: Any = None
    summary: dict[str, Any] | None = None
    duration_ms: float | None = None
    parent: str | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Serialize, leaving out unset fields."""
        return {k: v for k, v in asdict(self).items() if v is not None}


class _DebugState:
    def __init__(self) -> None:
        self.mode = DebugMode.OFF
        self.file_path: str | None = None
        self.logs: list[DebugEvent] = []
        self.counters: dict[str, int] = {}
        self.lock = threading.Lock()


_state = _DebugState()
_parent_id: ContextVar[str | None] = ContextVar("toolbelt_debug_parent", default=None)
_depth: ContextVar[int] = ContextVar("toolbelt_debug_depth", default=0)


def parse_debug_mode(value: str | None) -> tuple[DebugMode, str | None]:
    """Map an environment value to a debug mode and optional file path."""
    if not value or value.lower() in ("off", "0", "false"):
        return DebugMode.OFF, None
    if value in ("1", "stderr"):
        return DebugMode.STDERR, None
    if value == "json":
        return DebugMode.JSON, None
    if value == "memory":
        return DebugMode.MEMORY, None
    if value.startswith("file:"):
        return DebugMode.FILE, value[len("file:"):]
    return DebugMode.STDERR, None


def _init_debug_mode() -> None:
    _state.mode, _state.file_path = parse_debug_mode(os.environ.get(DEBUG_ENV_VAR))


_init_debug_mode()


def is_debug_enabled() -> bool:
    """Check if debug tracing is on (any mode except off)."""
    return _state.mode is not DebugMode.OFF


def get_debug_mode() -> DebugMode:
    return _state.mode


def _generate_id(tool: str) -> str:
    with _state.lock:
        count = _state.counters.get(tool, 0) + 1
        _state.counters[tool] = count
    return f"{tool}-{count}"


def _truncate_string(text: str) -> str:
    if len(text) <= MAX_STRING_LENGTH:
        return text
    return (
        f"{text[:MAX_STRING_LENGTH]}... "
        f"[truncated, {len(text) - MAX_STRING_LENGTH} more chars]"
    )


def summarize(data: Any, depth: int = 0) -> Any:
    """Summarize data for debug output.

    Truncates strings to 1000 chars, limits sequences to 10 items and
    collapses anything nested deeper than 5 levels.
    """
    if depth > MAX_DEPTH:
        return "[nested object]"
    if data is None or isinstance(data, (bool, int, float)):
        return data
    if isinstance(data, str):
        return _truncate_string(data)
    if isinstance(data, (list, tuple)):
        items = [summarize(item, depth + 1) for item in data[:MAX_ARRAY_ITEMS]]
        if len(data) > MAX_ARRAY_ITEMS:
            items.append(f"[{len(data) - MAX_ARRAY_ITEMS} more items]")
        return items
    if isinstance(data, dict):
        return {str(k): summarize(v, depth + 1) for k, v in data.items()}
    if hasattr(data, "model_dump"):
        return summarize(data.model_dump(), depth)
    return _truncate_string(str(data))


def _format_human_readable(event: DebugEvent) -> str:
    indent = "  " * _depth.get()
    if event.event == "start":
        parts = []
        if isinstance(event.input, dict):
            parts = [f"{k}={json.dumps(v, default=str)}" for k, v in list(event.input.items())[:3]]
        return f"{indent}[toolbelt:{event.tool}] -> {' '.join(parts)}"
    if event.event == "end":
        parts = [f"{k}={json.dumps(v, default=str)}" for k, v in (event.summary or {}).items()]
        duration = f"{event.duration_ms:.0f}ms" if event.duration_ms is not None else ""
        return f"{indent}[toolbelt:{event.tool}] <- {duration} {' '.join(parts)}".rstrip()
    return f"{indent}[toolbelt:{event.tool}] x {event.error}"


def _emit(event: DebugEvent) -> None:
    mode = _state.mode
    if mode is DebugMode.OFF:
        return
    if mode is DebugMode.MEMORY:
        with _state.lock:
            _state.logs.append(event)
    elif mode is DebugMode.JSON:
        sys.stderr.write(json.dumps(event.to_dict(), default=str) + "\n")
    elif mode is DebugMode.FILE:
        if _state.file_path:
            with _state.lock, open(_state.file_path, "a", encoding="utf-8") as f:
                f.write(json.dumps(event.to_dict(), default=str) + "\n")
    else:
        sys.stderr.write(_format_human_readable(event) + "\n")


def _now_ms() -> int:
    return int(time.time() * 1000)


def debug_start(tool: str, input: dict[str, Any] | None = None) -> str:
    """Record the start of an operation.

    Returns:
        Event id to pass to ``debug_end``/``debug_error``, or "" when off.
    """
    if not is_debug_enabled():
        return ""

    event_id = _generate_id(tool)
    _emit(
        DebugEvent(
            id=event_id,
            ts=_now_ms(),
            tool=tool,
            event="start",
            input=summarize(input) if input else None,
            parent=_parent_id.get(),
        )
    )
    return event_id


def debug_end(
    event_id: str,
    tool: str,
    *,
    output: Any = None,
    summary: dict[str, Any] | None = None,
    duration_ms: float | None = None,
) -> None:
    """Record the successful end of an operation."""
    if not is_debug_enabled() or not event_id:
        return

    _emit(
        DebugEvent(
            id=event_id,
            ts=_now_ms(),
            tool=tool,
            event="end",
            output=summarize(output) if output else None,
            summary=summary,
            duration_ms=duration_ms,
        )
    )


def debug_error(event_id: str, tool: str, error: str | BaseException) -> None:
    """Record a failed operation."""
    if not is_debug_enabled() or not event_id:
        return

    _emit(
        DebugEvent(
            id=event_id,
            ts=_now_ms(),
            tool=tool,
            event="error",
            error=str(error),
        )
    )


def run_with_debug_parent(parent_id: str, fn: Callable[..., T], *args: Any, **kwargs: Any) -> T:
    """Run ``fn`` with ``parent_id`` as the parent of every event it emits.

    Coroutine functions get an awaitable back; the parent is bound inside
    the coroutine so each concurrently scheduled task sees only its own.
    When tracing is off or ``parent_id`` is empty, ``fn`` runs unwrapped.
    """
    if not is_debug_enabled() or not parent_id:
        return fn(*args, **kwargs)

    if inspect.iscoroutinefunction(fn):

        async def _run_async() -> Any:
            parent_token = _parent_id.set(parent_id)
            depth_token = _depth.set(_depth.get() + 1)
            try:
                return await fn(*args, **kwargs)
            finally:
                _depth.reset(depth_token)
                _parent_id.reset(parent_token)

        return _run_async()  # type: ignore[return-value]

    parent_token = _parent_id.set(parent_id)
    depth_token = _depth.set(_depth.get() + 1)
    try:
        return fn(*args, **kwargs)
    finally:
        _depth.reset(depth_token)
        _parent_id.reset(parent_token)


def current_debug_parent() -> str | None:
    """Return the parent id bound in the current context, if any."""
    return _parent_id.get()


def get_debug_logs() -> list[DebugEvent]:
    """Return a copy of the retained events (memory mode only)."""
    with _state.lock:
        return list(_state.logs)


def clear_debug_logs() -> None:
    """Clear retained events and id counters. Call between agent runs."""
    with _state.lock:
        _state.logs.clear()
        _state.counters.clear()


def reinit_debug_mode() -> None:
    """Re-read ``TOOLBELT_DEBUG`` and reset all state."""
    clear_debug_logs()
    _init_debug_mode()
    logger.debug(f"Debug tracing mode: {_state.mode.value}")


def set_debug_mode(value: str | None) -> DebugMode:
    """Switch tracing mode programmatically, using the env var's syntax.

    Passing ``None`` falls back to ``TOOLBELT_DEBUG``.
    """
    if value is None:
        reinit_debug_mode()
        return _state.mode
    clear_debug_logs()
    _state.mode, _state.file_path = parse_debug_mode(value)
    logger.debug(f"Debug tracing mode: {_state.mode.value}")
    return _state.mode


def apply_debug_config(config: DebugConfig) -> DebugMode:
    """Apply the ``[toolbelt.debug]`` section; an unset mode defers to the environment."""
    return set_debug_mode(config.mode)


__all__ = [
    "DEBUG_ENV_VAR",
    "DebugEvent",
    "DebugMode",
    "apply_debug_config",
    "clear_debug_logs",
    "current_debug_parent",
    "debug_end",
    "debug_error",
    "debug_start",
    "get_debug_logs",
    "get_debug_mode",
    "is_debug_enabled",
    "parse_debug_mode",
    "reinit_debug_mode",
    "run_with_debug_parent",
    "set_debug_mode",
    "summarize",
]

# src/toolbelt/context/status.py
"""
Context window status.

Classifies how full a model's context window is, so an agent loop can nudge
the model ("no need to rush") or trigger compaction before the window
overflows:

    status = get_context_status(messages, MODEL_CONTEXT_LIMITS["claude-sonnet-4-5"])
    if status.guidance:
        system = f"{system}\\n\\n<context_status>{status.guidance}</context_status>"
    if context_needs_compaction(status):
        result = await compact_conversation(messages, compact_config, state)
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from ..config import ContextStatusConfig
from ..exceptions import ConfigError
from .pruning import Message, estimate_messages_tokens


class ContextStatusLevel(str, Enum):
    COMFORTABLE = "comfortable"
    ELEVATED = "elevated"
    HIGH = "high"
    CRITICAL = "critical"


class ContextMetrics(BaseModel):
    """Raw usage numbers; also what custom guidance callables receive."""

    used_tokens: int = Field(ge=0)
    max_tokens: int = Field(gt=0)
    usage_percent: float = Field(description="Usage as a fraction (0-1, may exceed 1)")

    model_config = ConfigDict(frozen=True)


class ContextStatus(ContextMetrics):
    status: ContextStatusLevel
    guidance: str | None = None


def _default_high_guidance(metrics: ContextMetrics) -> str:
    used = round(metrics.usage_percent * 100)
    remaining = round((1 - metrics.usage_percent) * 100)
    return (
        f"Context usage: {used}%. You still have {remaining}% remaining, "
        "no need to rush. Continue working thoroughly."
    )


def _default_critical_guidance(metrics: ContextMetrics) -> str:
    used = round(metrics.usage_percent * 100)
    return (
        f"Context usage: {used}%. Consider wrapping up the current task "
        "or summarizing progress before continuing."
    )


def _resolve_guidance(custom: Any, default: Any, metrics: ContextMetrics) -> str:
    if callable(custom):
        return custom(metrics)
    if custom is not None:
        return custom
    return default(metrics)


def get_context_status(
    messages: Sequence[Message],
    max_tokens: int,
    config: ContextStatusConfig | Mapping[str, Any] | None = None,
) -> ContextStatus:
    """
    Get the current context window status for a conversation.

    Args:
        messages: Current conversation messages.
        max_tokens: The model's context window (see ``MODEL_CONTEXT_LIMITS``).
        config: Thresholds and optional custom guidance.

    Returns:
        ContextStatus; ``high`` and ``critical`` levels carry guidance text.

    Raises:
        ConfigError: If ``max_tokens`` is not positive.
    """
    if max_tokens <= 0:
        raise ConfigError(f"max_tokens must be positive, got {max_tokens}")

    if config is None:
        config = ContextStatusConfig()
    elif not isinstance(config, ContextStatusConfig):
        config = ContextStatusConfig.model_validate(config)

    used_tokens = estimate_messages_tokens(messages)
    metrics = ContextMetrics(
        used_tokens=used_tokens,
        max_tokens=max_tokens,
        usage_percent=used_tokens / max_tokens,
    )
    base = metrics.model_dump()

    if metrics.usage_percent < config.elevated_threshold:
        return ContextStatus(**base, status=ContextStatusLevel.COMFORTABLE)

    if metrics.usage_percent < config.high_threshold:
        return ContextStatus(**base, status=ContextStatusLevel.ELEVATED)

    if metrics.usage_percent < config.critical_threshold:
        guidance = _resolve_guidance(config.high_guidance, _default_high_guidance, metrics)
        return ContextStatus(**base, status=ContextStatusLevel.HIGH, guidance=guidance)

    guidance = _resolve_guidance(config.critical_guidance, _default_critical_guidance, metrics)
    return ContextStatus(**base, status=ContextStatusLevel.CRITICAL, guidance=guidance)


def context_needs_attention(status: ContextStatus) -> bool:
    """True for ``high`` or ``critical`` status."""
    return status.status in (ContextStatusLevel.HIGH, ContextStatusLevel.CRITICAL)


def context_needs_compaction(status: ContextStatus) -> bool:
    """True for ``critical`` status."""
    return status.status is ContextStatusLevel.CRITICAL

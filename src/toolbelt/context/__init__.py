# src/toolbelt/context/__init__.py
"""
Context window management: token estimation, pruning, status and compaction.
"""

from ..config import ContextStatusConfig, PruneConfig
from .compaction import (
    MODEL_CONTEXT_LIMITS,
    CompactConversationConfig,
    CompactConversationResult,
    CompactConversationState,
    build_summary_prompt,
    compact_conversation,
    create_compact_config,
    format_messages_for_summary,
)
from .pruning import (
    estimate_message_tokens,
    estimate_messages_tokens,
    estimate_tokens,
    prune_messages_by_tokens,
)
from .status import (
    ContextMetrics,
    ContextStatus,
    ContextStatusLevel,
    context_needs_attention,
    context_needs_compaction,
    get_context_status,
)

__all__ = [
    "MODEL_CONTEXT_LIMITS",
    "CompactConversationConfig",
    "CompactConversationResult",
    "CompactConversationState",
    "ContextMetrics",
    "ContextStatus",
    "ContextStatusConfig",
    "ContextStatusLevel",
    "PruneConfig",
    "build_summary_prompt",
    "compact_conversation",
    "context_needs_attention",
    "context_needs_compaction",
    "create_compact_config",
    "estimate_message_tokens",
    "estimate_messages_tokens",
    "estimate_tokens",
    "format_messages_for_summary",
    "get_context_status",
    "prune_messages_by_tokens",
]

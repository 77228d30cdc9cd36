# src/toolbelt/__init__.py
"""
toolbelt - cross-cutting infrastructure for LLM agent tool loops.

Provides a bounded LRU result cache with a tool-caching wrapper, model
pricing resolution backed by a remote catalog, a thread-safe budget
tracker, token-budget message pruning with context status and compaction,
and an environment-driven debug trace log.
"""

from importlib.metadata import PackageNotFoundError, version

from .budget import (
    BudgetStatus,
    BudgetTracker,
    ModelPricing,
    PricingCatalog,
    StepResult,
    StepUsage,
    calculate_step_cost,
    create_budget_tracker,
    create_budget_tracker_from_config,
    fetch_openrouter_pricing,
    find_pricing_for_model,
    get_model_match_variants,
    get_pricing_catalog,
    reset_pricing_catalog,
    search_model_in_costs,
)
from .cache import (
    AsyncCachedTool,
    CacheEntry,
    CacheStats,
    CacheStore,
    CachedTool,
    LRUCacheStore,
    RedisCacheStore,
    cached,
    default_key_generator,
)
from .config import (
    BudgetConfig,
    CacheConfig,
    ContextStatusConfig,
    DebugConfig,
    PricingConfig,
    PruneConfig,
    ToolbeltConfig,
    load_config,
)
from .context import (
    MODEL_CONTEXT_LIMITS,
    CompactConversationConfig,
    CompactConversationResult,
    CompactConversationState,
    ContextMetrics,
    ContextStatus,
    ContextStatusLevel,
    compact_conversation,
    context_needs_attention,
    context_needs_compaction,
    create_compact_config,
    estimate_message_tokens,
    estimate_messages_tokens,
    estimate_tokens,
    get_context_status,
    prune_messages_by_tokens,
)
from .debug import (
    DebugEvent,
    DebugMode,
    apply_debug_config,
    clear_debug_logs,
    debug_end,
    debug_error,
    debug_start,
    get_debug_logs,
    is_debug_enabled,
    reinit_debug_mode,
    run_with_debug_parent,
    set_debug_mode,
)
from .exceptions import (
    BudgetConfigError,
    ConfigError,
    PricingFetchError,
    PricingFormatError,
    PricingHTTPError,
    PricingNetworkError,
    PricingTimeoutError,
    ToolbeltError,
    ToolDefinitionError,
)
from .logging_config import configure_logging, log_display

try:
    __version__ = version("agent-toolbelt")
except PackageNotFoundError:
    # running from a source checkout
    __version__ = "0.0.0"

__all__ = [
    # Cache
    "AsyncCachedTool",
    "CacheEntry",
    "CacheStats",
    "CacheStore",
    "CachedTool",
    "LRUCacheStore",
    "RedisCacheStore",
    "cached",
    "default_key_generator",
    # Budget
    "BudgetStatus",
    "BudgetTracker",
    "ModelPricing",
    "PricingCatalog",
    "StepResult",
    "StepUsage",
    "calculate_step_cost",
    "create_budget_tracker",
    "create_budget_tracker_from_config",
    "fetch_openrouter_pricing",
    "find_pricing_for_model",
    "get_model_match_variants",
    "get_pricing_catalog",
    "reset_pricing_catalog",
    "search_model_in_costs",
    # Context
    "MODEL_CONTEXT_LIMITS",
    "CompactConversationConfig",
    "CompactConversationResult",
    "CompactConversationState",
    "ContextMetrics",
    "ContextStatus",
    "ContextStatusLevel",
    "compact_conversation",
    "context_needs_attention",
    "context_needs_compaction",
    "create_compact_config",
    "estimate_message_tokens",
    "estimate_messages_tokens",
    "estimate_tokens",
    "get_context_status",
    "prune_messages_by_tokens",
    # Debug
    "DebugEvent",
    "DebugMode",
    "apply_debug_config",
    "clear_debug_logs",
    "debug_end",
    "debug_error",
    "debug_start",
    "get_debug_logs",
    "is_debug_enabled",
    "reinit_debug_mode",
    "run_with_debug_parent",
    "set_debug_mode",
    # Config
    "BudgetConfig",
    "CacheConfig",
    "ContextStatusConfig",
    "DebugConfig",
    "PricingConfig",
    "PruneConfig",
    "ToolbeltConfig",
    "load_config",
    # Logging
    "configure_logging",
    "log_display",
    # Exceptions
    "BudgetConfigError",
    "ConfigError",
    "PricingFetchError",
    "PricingFormatError",
    "PricingHTTPError",
    "PricingNetworkError",
    "PricingTimeoutError",
    "ToolDefinitionError",
    "ToolbeltError",
    "__version__",
]

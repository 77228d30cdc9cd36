# src/toolbelt/budget/__init__.py
"""
Cost accounting: model pricing resolution, the remote pricing catalog and
the budget tracker.
"""

from .catalog import (
    MAX_MODELS,
    OPENROUTER_MODELS_URL,
    PricingCatalog,
    fetch_openrouter_pricing,
    get_pricing_catalog,
    parse_pricing_catalog,
    reset_pricing_catalog,
)
from .pricing import (
    ModelPricing,
    PricingMap,
    find_pricing_for_model,
    get_model_match_variants,
    normalize_overrides,
    search_model_in_costs,
)
from .tracker import (
    BudgetStatus,
    BudgetTracker,
    InputTokenDetails,
    StepResult,
    StepUsage,
    calculate_step_cost,
    create_budget_tracker,
    create_budget_tracker_from_config,
)

__all__ = [
    "MAX_MODELS",
    "OPENROUTER_MODELS_URL",
    "BudgetStatus",
    "BudgetTracker",
    "InputTokenDetails",
    "ModelPricing",
    "PricingCatalog",
    "PricingMap",
    "StepResult",
    "StepUsage",
    "calculate_step_cost",
    "create_budget_tracker",
    "create_budget_tracker_from_config",
    "fetch_openrouter_pricing",
    "find_pricing_for_model",
    "get_model_match_variants",
    "get_pricing_catalog",
    "normalize_overrides",
    "parse_pricing_catalog",
    "reset_pricing_catalog",
    "search_model_in_costs",
]

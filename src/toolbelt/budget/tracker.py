# src/toolbelt/budget/tracker.py
"""
Budget tracking for agent cost management.

Tracks cumulative cost across agentic loop steps and tells the loop to stop
once the configured USD budget is exceeded. Pricing comes from caller
overrides and/or a pre-fetched catalog snapshot (see ``catalog.py``).

Steps may finish on several threads at once (parallel sub-agents); the
running total, step count and unpriced count are updated in one critical
section so K concurrent steps always add exactly K steps and K costs.

Example:
    pricing = await fetch_openrouter_pricing()
    budget = BudgetTracker(5.00, catalog_pricing=pricing)

    for step in agent.run():
        budget.on_step_finish(step)
        if budget.stop_when():
            break
    print(budget.get_status())
"""

from __future__ import annotations

import logging
import math
import threading
import time
from collections.abc import Mapping
from typing import Any, Callable

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from ..config import ToolbeltConfig
from ..debug import debug_end, debug_error, debug_start
from ..exceptions import BudgetConfigError
from ..logging_config import log_display
from .catalog import PricingCatalog, get_pricing_catalog
from .pricing import ModelPricing, PricingMap, find_pricing_for_model, normalize_overrides

logger = logging.getLogger(__name__)

UnpricedModelCallback = Callable[[str], None]


# =============================================================================
# STEP MODELS
# =============================================================================


class _StepModel(BaseModel):
    # Accept both snake_case and the camelCase used by JS agent SDKs.
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
        protected_namespaces=(),
    )


class InputTokenDetails(_StepModel):
    """Breakdown of input tokens by cache behaviour."""

    no_cache_tokens: int | None = Field(default=None, ge=0)
    cache_read_tokens: int | None = Field(default=None, ge=0)
    cache_write_tokens: int | None = Field(default=None, ge=0)


class StepUsage(_StepModel):
    """Token usage reported for one generation step."""

    input_tokens: int | None = Field(default=None, ge=0)
    output_tokens: int | None = Field(default=None, ge=0)
    input_token_details: InputTokenDetails | None = None


class StepResult(_StepModel):
    """The parts of a finished step the tracker needs."""

    model_id: str | None = None
    usage: StepUsage = Field(default_factory=StepUsage)

    @field_validator("usage", mode="before")
    @classmethod
    def none_usage_is_empty(cls, v: Any) -> Any:
        # some providers report `usage: null` for steps without token counts
        return {} if v is None else v

    @model_validator(mode="before")
    @classmethod
    def lift_response_model_id(cls, data: Any) -> Any:
        # Steps often carry the id as response.modelId
        if isinstance(data, Mapping) and not (data.get("model_id") or data.get("modelId")):
            response = data.get("response")
            if isinstance(response, Mapping):
                model_id = response.get("model_id") or response.get("modelId")
                if model_id:
                    return {**data, "model_id": model_id}
        return data


class BudgetStatus(BaseModel):
    """Point-in-time budget snapshot. Every field is derived on read."""

    total_cost_usd: float
    max_usd: float
    remaining_usd: float = Field(description="max_usd - total_cost_usd, not clamped")
    usage_percent: float
    steps_completed: int
    exceeded: bool
    unpriced_steps: int = Field(description="Steps whose cost could not be determined")

    model_config = ConfigDict(frozen=True)


# =============================================================================
# COST CALCULATION
# =============================================================================


def calculate_step_cost(usage: StepUsage, pricing: ModelPricing) -> float:
    """Calculate the USD cost of one step.

    When the usage carries an input-token breakdown, each bucket is charged
    at its own rate (cache rates fall back to the input rate). Otherwise all
    input tokens are charged at the input rate.
    """
    details = usage.input_token_details
    if details is not None and (
        details.no_cache_tokens is not None
        or details.cache_read_tokens is not None
        or details.cache_write_tokens is not None
    ):
        cache_read_rate = (
            pricing.cache_read_per_token
            if pricing.cache_read_per_token is not None
            else pricing.input_per_token
        )
        cache_write_rate = (
            pricing.cache_write_per_token
            if pricing.cache_write_per_token is not None
            else pricing.input_per_token
        )
        input_cost = (
            (details.no_cache_tokens or 0) * pricing.input_per_token
            + (details.cache_read_tokens or 0) * cache_read_rate
            + (details.cache_write_tokens or 0) * cache_write_rate
        )
    else:
        input_cost = (usage.input_tokens or 0) * pricing.input_per_token

    return input_cost + (usage.output_tokens or 0) * pricing.output_per_token


# =============================================================================
# TRACKER
# =============================================================================


class BudgetTracker:
    """Accumulates step costs against a fixed USD budget."""

    def __init__(
        self,
        max_usd: float,
        *,
        model_pricing: Mapping[str, ModelPricing | Mapping[str, Any]] | None = None,
        catalog_pricing: PricingMap | None = None,
        on_unpriced_model: UnpricedModelCallback | None = None,
    ) -> None:
        if (
            isinstance(max_usd, bool)
            or not isinstance(max_usd, (int, float))
            or not math.isfinite(max_usd)
            or max_usd <= 0
        ):
            raise BudgetConfigError(max_usd)

        self.max_usd = float(max_usd)
        self._overrides = normalize_overrides(model_pricing)
        self._catalog = catalog_pricing
        self._on_unpriced_model = on_unpriced_model

        # Pricing lookups are memoised per model id; warnings are per tracker.
        self._pricing_lock = threading.Lock()
        self._pricing_memo: dict[str, ModelPricing | None] = {}
        self._warned_models: set[str] = set()

        self._lock = threading.Lock()
        self._total_cost_usd = 0.0
        self._steps_completed = 0
        self._unpriced_steps = 0
        self._exceeded_reported = False

    def _resolve_pricing(self, model_id: str) -> ModelPricing | None:
        with self._pricing_lock:
            if model_id in self._pricing_memo:
                return self._pricing_memo[model_id]
            pricing = find_pricing_for_model(
                model_id, self._overrides, self._catalog, self._warned_models
            )
            self._pricing_memo[model_id] = pricing
            return pricing

    def on_step_finish(self, step: StepResult | Mapping[str, Any]) -> None:
        """Record a finished step. Call from the agent loop's step hook.

        Raises:
            Whatever ``on_unpriced_model`` raises; the step is counted first.
        """
        if not isinstance(step, StepResult):
            step = StepResult.model_validate(step)

        model_id = step.model_id or None
        event_id = debug_start("budget", {"model_id": model_id})
        started = time.perf_counter()

        pricing = self._resolve_pricing(model_id) if model_id else None

        if pricing is None:
            with self._lock:
                self._unpriced_steps += 1
                self._steps_completed += 1
            if model_id and self._on_unpriced_model is not None:
                try:
                    self._on_unpriced_model(model_id)
                except Exception as e:
                    debug_error(event_id, "budget", e)
                    raise
            debug_end(
                event_id,
                "budget",
                summary={"model_id": model_id, "priced": False},
                duration_ms=(time.perf_counter() - started) * 1000,
            )
            return

        cost = calculate_step_cost(step.usage, pricing)
        with self._lock:
            self._total_cost_usd += cost
            self._steps_completed += 1
            total = self._total_cost_usd
            report_exceeded = total > self.max_usd and not self._exceeded_reported
            if report_exceeded:
                self._exceeded_reported = True

        if report_exceeded:
            log_display(
                logger,
                logging.WARNING,
                f"Budget exceeded: ${total:.4f} spent of ${self.max_usd:.4f} limit",
            )

        debug_end(
            event_id,
            "budget",
            summary={"model_id": model_id, "cost_usd": cost, "total_usd": total},
            duration_ms=(time.perf_counter() - started) * 1000,
        )

    def stop_when(self, *args: Any, **kwargs: Any) -> bool:
        """Stop condition: True once spend exceeds the budget.

        Extra arguments are ignored so it composes with other conditions.
        """
        with self._lock:
            return self._total_cost_usd > self.max_usd

    def get_status(self) -> BudgetStatus:
        with self._lock:
            total = self._total_cost_usd
            steps = self._steps_completed
            unpriced = self._unpriced_steps

        return BudgetStatus(
            total_cost_usd=total,
            max_usd=self.max_usd,
            remaining_usd=self.max_usd - total,
            usage_percent=total / self.max_usd * 100,
            steps_completed=steps,
            exceeded=total > self.max_usd,
            unpriced_steps=unpriced,
        )

    @property
    def total_cost_usd(self) -> float:
        with self._lock:
            return self._total_cost_usd


def create_budget_tracker(
    max_usd: float,
    *,
    model_pricing: Mapping[str, ModelPricing | Mapping[str, Any]] | None = None,
    catalog_pricing: PricingMap | None = None,
    on_unpriced_model: UnpricedModelCallback | None = None,
) -> BudgetTracker:
    """Create a budget tracker.

    Args:
        max_usd: Budget in USD; must be positive.
        model_pricing: Overrides keyed by exact model id (case-insensitive).
        catalog_pricing: Pre-fetched catalog map, e.g. from
            ``fetch_openrouter_pricing()``.
        on_unpriced_model: Called with the model id of each unpriced step.
            Raise from it to abort the run.

    Raises:
        BudgetConfigError: If ``max_usd`` is not a positive finite number.
    """
    return BudgetTracker(
        max_usd,
        model_pricing=model_pricing,
        catalog_pricing=catalog_pricing,
        on_unpriced_model=on_unpriced_model,
    )


async def create_budget_tracker_from_config(
    config: ToolbeltConfig,
    *,
    catalog: PricingCatalog | None = None,
    on_unpriced_model: UnpricedModelCallback | None = None,
) -> BudgetTracker:
    """Create a tracker from ``[toolbelt.budget]`` and ``[toolbelt.pricing]``.

    The catalog is fetched eagerly so pricing lookups stay synchronous.
    Fetch failures propagate; set ``model_pricing`` overrides and pass a
    catalog you control to run without network access.

    Raises:
        BudgetConfigError: If no ``max_usd`` is configured.
        PricingFetchError: If the catalog cannot be fetched.
    """
    if config.budget.max_usd is None:
        raise BudgetConfigError(None, "budget.max_usd is not configured.")

    catalog = catalog or get_pricing_catalog(config.pricing)
    catalog_pricing = await catalog.fetch()

    return BudgetTracker(
        config.budget.max_usd,
        model_pricing=config.pricing.model_pricing,
        catalog_pricing=catalog_pricing,
        on_unpriced_model=on_unpriced_model,
    )

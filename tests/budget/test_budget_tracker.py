# tests/budget/test_budget_tracker.py
"""
Tests for the budget tracker.

Tests cover:
- Construction guards
- Cost calculation (flat and cache-aware)
- Exceed transition and status derivation
- Unpriced steps and the unpriced-model callback
- Atomic accumulation under real thread parallelism
- Creation from configuration
"""

import logging
import math
from concurrent.futures import ThreadPoolExecutor

import pytest

from budget_fakes import FakeResponse, FakeSession, SessionFactory, model_entry, openrouter_payload
from toolbelt.budget import (
    BudgetTracker,
    ModelPricing,
    PricingCatalog,
    StepResult,
    StepUsage,
    calculate_step_cost,
    create_budget_tracker,
    create_budget_tracker_from_config,
)
from toolbelt.config import ToolbeltConfig
from toolbelt.debug import get_debug_logs
from toolbelt.exceptions import BudgetConfigError


@pytest.fixture
def tracker(unit_pricing) -> BudgetTracker:
    """$3 budget; model 'unit' costs $1/input and $2/output token."""
    return create_budget_tracker(3.0, model_pricing={"unit": unit_pricing})


class TestConstruction:
    """Construction guards."""

    @pytest.mark.parametrize("max_usd", [0, -1, -0.01, math.nan, math.inf])
    def test_rejects_invalid_budget(self, max_usd: float) -> None:
        with pytest.raises(BudgetConfigError):
            BudgetTracker(max_usd)

    def test_budget_error_is_a_value_error(self) -> None:
        with pytest.raises(ValueError):
            create_budget_tracker(0)

    def test_fresh_status(self) -> None:
        status = BudgetTracker(5).get_status()

        assert status.total_cost_usd == 0
        assert status.max_usd == 5
        assert status.remaining_usd == 5
        assert status.usage_percent == 0
        assert status.steps_completed == 0
        assert status.unpriced_steps == 0
        assert status.exceeded is False


class TestCalculateStepCost:
    """Tests for calculate_step_cost."""

    def test_flat_input_and_output(self, unit_pricing) -> None:
        usage = StepUsage(input_tokens=10, output_tokens=5)

        assert calculate_step_cost(usage, unit_pricing) == 10 * 1.0 + 5 * 2.0

    def test_missing_counts_are_zero(self, unit_pricing) -> None:
        assert calculate_step_cost(StepUsage(), unit_pricing) == 0

    def test_granular_breakdown_uses_cache_rates(self) -> None:
        pricing = ModelPricing(
            input_per_token=1.0,
            output_per_token=2.0,
            cache_read_per_token=0.25,
            cache_write_per_token=1.5,
        )
        usage = StepUsage.model_validate(
            {
                "input_tokens": 999,  # ignored when a breakdown exists
                "output_tokens": 4,
                "input_token_details": {
                    "no_cache_tokens": 10,
                    "cache_read_tokens": 100,
                    "cache_write_tokens": 20,
                },
            }
        )

        assert calculate_step_cost(usage, pricing) == 10 * 1.0 + 100 * 0.25 + 20 * 1.5 + 4 * 2.0

    def test_cache_rates_fall_back_to_input_rate(self, unit_pricing) -> None:
        usage = StepUsage.model_validate(
            {"input_token_details": {"cache_read_tokens": 8, "cache_write_tokens": 2}}
        )

        assert calculate_step_cost(usage, unit_pricing) == 10.0

    def test_empty_breakdown_falls_back_to_flat(self, unit_pricing) -> None:
        usage = StepUsage.model_validate({"input_tokens": 3, "input_token_details": {}})

        assert calculate_step_cost(usage, unit_pricing) == 3.0


class TestBudgetAccumulation:
    """Step accounting and the exceeded transition."""

    def test_exceed_transition(self, tracker, make_step) -> None:
        """Two $2 steps against $3: under after the first, exceeded after the second."""
        tracker.on_step_finish(make_step("unit", input_tokens=2, output_tokens=0))
        assert tracker.get_status().exceeded is False
        assert tracker.stop_when() is False

        tracker.on_step_finish(make_step("unit", input_tokens=2, output_tokens=0))
        status = tracker.get_status()
        assert status.total_cost_usd == 4.0
        assert status.exceeded is True
        assert tracker.stop_when() is True

    def test_exactly_at_budget_is_not_exceeded(self, tracker, make_step) -> None:
        tracker.on_step_finish(make_step("unit", input_tokens=3, output_tokens=0))

        assert tracker.get_status().exceeded is False
        assert tracker.stop_when() is False

    def test_status_is_derived_and_unclamped(self, tracker, make_step) -> None:
        tracker.on_step_finish(make_step("unit", input_tokens=2, output_tokens=1))

        status = tracker.get_status()
        assert status.total_cost_usd == 4.0
        assert status.remaining_usd == -1.0
        assert status.usage_percent == pytest.approx(400 / 3)
        assert status.steps_completed == 1

    def test_exceeded_stays_true(self, tracker, make_step) -> None:
        tracker.on_step_finish(make_step("unit", input_tokens=5, output_tokens=0))
        for _ in range(3):
            tracker.on_step_finish(make_step(None))

        assert tracker.stop_when() is True

    def test_stop_when_ignores_arguments(self, tracker) -> None:
        assert tracker.stop_when({"steps": []}, step_number=3) is False

    def test_exceeded_warning_logged_once(self, tracker, make_step, caplog) -> None:
        with caplog.at_level(logging.WARNING, logger="toolbelt.budget.tracker"):
            for _ in range(3):
                tracker.on_step_finish(make_step("unit", input_tokens=2, output_tokens=0))

        exceeded = [r for r in caplog.records if "Budget exceeded" in r.getMessage()]
        assert len(exceeded) == 1
        assert exceeded[0].display is True

    def test_accepts_step_models_and_camel_case(self, tracker) -> None:
        tracker.on_step_finish(StepResult(model_id="unit", usage=StepUsage(input_tokens=1)))
        tracker.on_step_finish(
            {"response": {"modelId": "UNIT"}, "usage": {"inputTokens": 1, "outputTokens": 0}}
        )

        status = tracker.get_status()
        assert status.total_cost_usd == 2.0
        assert status.unpriced_steps == 0

    def test_null_usage_counts_as_zero(self, tracker) -> None:
        """A step reporting ``usage: None`` is counted at zero cost."""
        tracker.on_step_finish({"model_id": "unit", "usage": None})
        tracker.on_step_finish({"model_id": None, "usage": None})

        status = tracker.get_status()
        assert status.steps_completed == 2
        assert status.unpriced_steps == 1
        assert status.total_cost_usd == 0
        assert StepResult.model_validate({"usage": None}).usage == StepUsage()

    def test_catalog_pricing_with_fuzzy_match(self, make_step) -> None:
        catalog = {"anthropic/claude-sonnet-4-5": ModelPricing(input_per_token=0.5, output_per_token=1.0)}
        tracker = BudgetTracker(10, catalog_pricing=catalog)

        tracker.on_step_finish(make_step("claude-sonnet-4-5-20250929", input_tokens=2, output_tokens=1))

        assert tracker.get_status().total_cost_usd == 2.0


class TestUnpricedSteps:
    """Steps whose cost cannot be determined."""

    def test_missing_model_id_is_unpriced(self, make_step) -> None:
        called = []
        tracker = BudgetTracker(1, on_unpriced_model=called.append)

        tracker.on_step_finish(make_step(None))
        tracker.on_step_finish(make_step(""))

        status = tracker.get_status()
        assert status.unpriced_steps == 2
        assert status.steps_completed == 2
        assert status.total_cost_usd == 0
        assert called == []

    def test_unknown_model_invokes_callback(self, make_step) -> None:
        called = []
        tracker = BudgetTracker(1, on_unpriced_model=called.append)

        tracker.on_step_finish(make_step("mystery-model"))
        tracker.on_step_finish(make_step("mystery-model"))

        assert called == ["mystery-model", "mystery-model"]
        assert tracker.get_status().unpriced_steps == 2

    def test_unknown_model_warns_once_per_tracker(self, make_step, caplog) -> None:
        tracker = BudgetTracker(1)
        with caplog.at_level(logging.WARNING, logger="toolbelt.budget.pricing"):
            for _ in range(3):
                tracker.on_step_finish(make_step("mystery-model"))

        assert len([r for r in caplog.records if "mystery-model" in r.getMessage()]) == 1

    def test_callback_exception_propagates(self, make_step) -> None:
        def escalate(model_id: str) -> None:
            raise RuntimeError(f"no pricing for {model_id}")

        tracker = BudgetTracker(1, on_unpriced_model=escalate)

        with pytest.raises(RuntimeError, match="no pricing for mystery"):
            tracker.on_step_finish(make_step("mystery"))
        assert tracker.get_status().steps_completed == 1


class TestConcurrency:
    """Accumulation under real thread parallelism."""

    def test_parallel_steps_are_all_counted(self, unit_pricing, make_step) -> None:
        tracker = BudgetTracker(1_000_000, model_pricing={"unit": unit_pricing})
        step = make_step("unit", input_tokens=1, output_tokens=0)
        unknown = make_step("mystery")

        def run(worker: int) -> None:
            for i in range(250):
                tracker.on_step_finish(unknown if i % 50 == 0 else step)

        with ThreadPoolExecutor(max_workers=16) as pool:
            list(pool.map(run, range(16)))

        status = tracker.get_status()
        assert status.steps_completed == 16 * 250
        assert status.unpriced_steps == 16 * 5
        assert status.total_cost_usd == 16 * 245 * 1.0


class TestTracing:
    """Debug trace events."""

    def test_steps_emit_budget_events(self, tracker, make_step, debug_memory) -> None:
        tracker.on_step_finish(make_step("unit", input_tokens=1, output_tokens=0))
        tracker.on_step_finish(make_step("mystery"))

        ends = [e for e in get_debug_logs() if e.tool == "budget" and e.event == "end"]
        assert ends[0].summary["cost_usd"] == 1.0
        assert ends[1].summary["priced"] is False


class TestFromConfig:
    """Tests for create_budget_tracker_from_config."""

    async def test_fetches_catalog_and_applies_overrides(self, make_step) -> None:
        session = FakeSession(
            FakeResponse(payload=openrouter_payload(model_entry("openai/gpt-4o", prompt="1", completion="1")))
        )
        catalog = PricingCatalog(session_factory=SessionFactory(session))
        config = ToolbeltConfig(
            budget={"max_usd": 10},
            pricing={"model_pricing": {"local-llm": {"input_per_token": 0.0, "output_per_token": 0.0}}},
        )

        tracker = await create_budget_tracker_from_config(config, catalog=catalog)
        tracker.on_step_finish(make_step("gpt-4o", input_tokens=2, output_tokens=1))
        tracker.on_step_finish(make_step("local-llm"))

        status = tracker.get_status()
        assert status.max_usd == 10
        assert status.total_cost_usd == 3.0
        assert status.unpriced_steps == 0

    async def test_requires_max_usd(self) -> None:
        with pytest.raises(BudgetConfigError):
            await create_budget_tracker_from_config(ToolbeltConfig())

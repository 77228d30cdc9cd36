# tests/budget/conftest.py
"""
Fixtures for budget and pricing tests.
"""

from typing import Any

import pytest

from budget_fakes import model_entry, openrouter_payload
from toolbelt.budget import ModelPricing


@pytest.fixture
def sample_payload() -> dict[str, Any]:
    return openrouter_payload(
        model_entry(
            "anthropic/claude-sonnet-4.5",
            input_cache_read="0.0000003",
            input_cache_write="0.00000375",
        ),
        model_entry("openai/GPT-4o", prompt="0.0000025", completion="0.00001"),
    )


@pytest.fixture
def unit_pricing() -> ModelPricing:
    """$1 per input token, $2 per output token: easy arithmetic."""
    return ModelPricing(input_per_token=1.0, output_per_token=2.0)

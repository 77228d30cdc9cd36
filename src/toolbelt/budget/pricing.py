# src/toolbelt/budget/pricing.py
"""
Model pricing lookup.

Resolves a per-token cost rate for a model identifier from two layered
sources:

1. Caller-supplied overrides (exact model id, case-insensitive).
2. A pricing catalog (e.g. the OpenRouter snapshot from ``catalog.py``),
   searched with fuzzy model-name matching.

Model id matching uses a 3-tier strategy over normalized spelling
variants (lower-cased, kebab-cased, provider prefix stripped):

1. Exact match of any variant.
2. Longest contained match: a model variant *contains* a catalog variant;
   the longest catalog variant wins, so ``anthropic/claude-sonnet-4-5``
   beats ``claude`` for ``anthropic/claude-sonnet-4-5-20250929``.
3. Reverse containment: a catalog variant *contains* a model variant; the
   shortest (closest) catalog variant wins.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

logger = logging.getLogger(__name__)

_NON_ALNUM = re.compile(r"[^a-z0-9]+")


class ModelPricing(BaseModel):
    """Per-token USD rates for one model.

    Attributes:
        input_per_token: Rate for uncached input tokens.
        output_per_token: Rate for output tokens.
        cache_read_per_token: Rate for cache-read input tokens, if known.
        cache_write_per_token: Rate for cache-write input tokens, if known.
    """

    input_per_token: float = Field(ge=0.0, allow_inf_nan=False)
    output_per_token: float = Field(ge=0.0, allow_inf_nan=False)
    cache_read_per_token: float | None = Field(default=None, ge=0.0, allow_inf_nan=False)
    cache_write_per_token: float | None = Field(default=None, ge=0.0, allow_inf_nan=False)

    model_config = ConfigDict(frozen=True)

    @classmethod
    def from_per_million(
        cls,
        input: float,
        output: float,
        cache_read: float | None = None,
        cache_write: float | None = None,
    ) -> "ModelPricing":
        """Build pricing from the usual "USD per 1M tokens" figures."""
        return cls(
            input_per_token=input / 1_000_000,
            output_per_token=output / 1_000_000,
            cache_read_per_token=cache_read / 1_000_000 if cache_read is not None else None,
            cache_write_per_token=cache_write / 1_000_000 if cache_write is not None else None,
        )


PricingMap = Mapping[str, ModelPricing]


def get_model_match_variants(model: str) -> list[str]:
    """Generate de-duplicated match variants for a model id.

    Order: lower-cased, kebab-normalized, provider-stripped,
    provider-stripped kebab-normalized.
    """
    lower = model.lower()
    kebab = _NON_ALNUM.sub("-", lower)
    without_provider = lower[lower.rfind("/") + 1:] if "/" in lower else lower
    without_provider_kebab = _NON_ALNUM.sub("-", without_provider)

    # dict preserves insertion order
    return list(dict.fromkeys([lower, kebab, without_provider, without_provider_kebab]))


def search_model_in_costs(model: str, costs: PricingMap) -> ModelPricing | None:
    """Search for a model's pricing in a cost map using 3-tier matching.

    Args:
        model: Model identifier as reported by the provider.
        costs: Mapping of lower-cased catalog ids to pricing.

    Returns:
        The best matching pricing, or None if nothing matches.
    """
    if not costs:
        return None

    model_variants = get_model_match_variants(model)

    # Tier 1: exact match
    for variant in model_variants:
        pricing = costs.get(variant)
        if pricing is not None:
            return pricing

    cost_variants = {key: get_model_match_variants(key) for key in costs}

    # Tier 2: longest contained match
    best_match: ModelPricing | None = None
    best_length = 0
    for key, variants in cost_variants.items():
        for model_variant in model_variants:
            for cost_variant in variants:
                if cost_variant in model_variant and len(cost_variant) > best_length:
                    best_match = costs[key]
                    best_length = len(cost_variant)
    if best_match is not None:
        return best_match

    # Tier 3: reverse containment, closest wins
    reverse_match: ModelPricing | None = None
    reverse_length = float("inf")
    for key, variants in cost_variants.items():
        for model_variant in model_variants:
            for cost_variant in variants:
                if model_variant in cost_variant and len(cost_variant) < reverse_length:
                    reverse_match = costs[key]
                    reverse_length = len(cost_variant)
    return reverse_match


def normalize_overrides(
    overrides: Mapping[str, ModelPricing | Mapping[str, Any]] | None,
) -> dict[str, ModelPricing]:
    """Lower-case override keys and validate their values."""
    if not overrides:
        return {}
    return {
        model_id.lower(): ModelPricing.model_validate(pricing)
        for model_id, pricing in overrides.items()
    }


def find_pricing_for_model(
    model: str,
    overrides: PricingMap | None = None,
    catalog: PricingMap | None = None,
    warned_models: set[str] | None = None,
) -> ModelPricing | None:
    """Find pricing for a model: overrides first, then the catalog.

    Overrides match the exact model id (case-insensitive); keys are expected
    to be lower-cased already (see ``normalize_overrides``). Pass a
    ``warned_models`` set to get a single warning per unknown model; without
    one, lookups stay silent.
    """
    key = model.lower()

    if overrides:
        found = overrides.get(key)
        if found is not None:
            return found

    if catalog:
        found = search_model_in_costs(model, catalog)
        if found is not None:
            return found

    if warned_models is not None and key not in warned_models:
        warned_models.add(key)
        logger.warning(
            f"No pricing found for model '{model}'. Cost will not be tracked for this step."
        )

    return None

# tests/conftest.py
"""
Shared fixtures for toolbelt tests.

Provides a controllable clock, debug-tracing toggles, a step
factory, and resets process-wide state (debug mode, pricing catalog)
around every test.
"""

from typing import Any, Callable

import pytest

from toolbelt.budget.catalog import reset_pricing_catalog
from toolbelt.debug import DEBUG_ENV_VAR, set_debug_mode


class FakeClock:
    """Manually advanced time source, in seconds."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture(autouse=True)
def _isolate_global_state(monkeypatch):
    """Tracing off and no shared catalog unless a test opts in."""
    monkeypatch.delenv(DEBUG_ENV_VAR, raising=False)
    set_debug_mode(None)
    reset_pricing_catalog()
    yield
    set_debug_mode("off")
    reset_pricing_catalog()


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def debug_memory():
    """Switch tracing to in-memory capture for the test."""
    set_debug_mode("memory")
    yield
    set_debug_mode("off")


@pytest.fixture
def make_step() -> Callable[..., dict[str, Any]]:
    """Factory for step dicts as an agent loop reports them."""

    def _make(
        model_id: str | None = "gpt-4o",
        input_tokens: int | None = 1000,
        output_tokens: int | None = 500,
        **details: int,
    ) -> dict[str, Any]:
        usage: dict[str, Any] = {"input_tokens": input_tokens, "output_tokens": output_tokens}
        if details:
            usage["input_token_details"] = details
        return {"model_id": model_id, "usage": usage}

    return _make

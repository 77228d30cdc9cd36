# src/toolbelt/config.py
"""
Configuration management for toolbelt.

This module holds the Pydantic models for every configurable component and
handles loading them from TOML files and the environment.

Configuration Hierarchy:
    1. Default values (defined in the models below)
    2. TOML config file (~/.toolbelt/config.toml, ``[toolbelt]`` table)
    3. Environment variables (TOOLBELT_<SECTION>_<KEY>)
    4. Runtime overrides (passed to ``load_config``)

Example TOML configuration:
    [toolbelt.cache]
    max_size = 500
    ttl_seconds = 120

    [toolbelt.pricing]
    timeout_seconds = 5
    ttl_hours = 24

    [toolbelt.pricing.model_pricing."my-local-model"]
    input_per_token = 0.0
    output_per_token = 0.0

    [toolbelt.budget]
    max_usd = 5.0

    [toolbelt.pruning]
    target_tokens = 40000
    min_savings_threshold = 20000
    protect_last_n_user_messages = 3

    [toolbelt.logging]
    console_enabled = true
    console_level = "INFO"

Environment examples:
    TOOLBELT_CACHE_TTL_SECONDS=60
    TOOLBELT_BUDGET_MAX_USD=2.5
    TOOLBELT_CONTEXT_STATUS_HIGH_THRESHOLD=0.75
"""

from __future__ import annotations

import logging
import os
import tomllib
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Callable

from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from .exceptions import ConfigError

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path.home() / ".toolbelt" / "config.toml"
ENV_PREFIX = "TOOLBELT_"

DEFAULT_CATALOG_URL = "https://openrouter.ai/api/v1/models"


# =============================================================================
# SECTION MODELS
# =============================================================================


class CacheConfig(BaseModel):
    """
    Configuration for tool result caching.

    Maps to: [toolbelt.cache]
    """

    max_size: int = Field(default=1000, ge=1, description="Max entries in the LRU store")
    ttl_seconds: float = Field(default=300.0, ge=0, description="Entry lifetime in seconds")


class PricingConfig(BaseModel):
    """
    Configuration for model pricing resolution.

    Maps to: [toolbelt.pricing]
    """

    catalog_url: str = Field(default=DEFAULT_CATALOG_URL, description="Pricing catalog URL")
    ttl_hours: float = Field(default=24.0, gt=0, description="Catalog cache lifetime in hours")
    timeout_seconds: float = Field(default=10.0, gt=0, description="Catalog fetch timeout")
    max_models: int = Field(default=10_000, ge=1, description="Max catalog entries to read")
    model_pricing: dict[str, dict[str, float]] = Field(
        default_factory=dict, description="Per-token pricing overrides keyed by model id"
    )

    @property
    def ttl_seconds(self) -> float:
        return self.ttl_hours * 3600


class BudgetConfig(BaseModel):
    """
    Configuration for budget tracking.

    Maps to: [toolbelt.budget]
    """

    max_usd: float | None = Field(default=None, gt=0, description="Spend limit in USD")


class PruneConfig(BaseModel):
    """
    Configuration for token-based message pruning.

    Maps to: [toolbelt.pruning]
    """

    target_tokens: int = Field(default=40_000, ge=0, description="Keep roughly this many tokens")
    min_savings_threshold: int = Field(
        default=20_000, ge=0, description="Only prune when at least this many tokens are saved"
    )
    protect_last_n_user_messages: int = Field(
        default=3, ge=0, description="Never touch the last N user turns and what follows"
    )


class ContextStatusConfig(BaseModel):
    """
    Thresholds (fractions of the context window) and guidance for context status.

    Maps to: [toolbelt.context_status]
    """

    elevated_threshold: float = Field(default=0.5, gt=0, le=1)
    high_threshold: float = Field(default=0.7, gt=0, le=1)
    critical_threshold: float = Field(default=0.85, gt=0, le=1)
    high_guidance: str | Callable[..., str] | None = None
    critical_guidance: str | Callable[..., str] | None = None

    @model_validator(mode="after")
    def validate_order(self) -> "ContextStatusConfig":
        if not self.elevated_threshold <= self.high_threshold <= self.critical_threshold:
            raise ValueError(
                "Context status thresholds must satisfy elevated <= high <= critical"
            )
        return self


class DebugConfig(BaseModel):
    """
    Debug tracing mode; ``None`` defers to the TOOLBELT_DEBUG variable.

    Maps to: [toolbelt.debug]
    """

    mode: str | None = Field(default=None, description="off, stderr, json, memory or file:<path>")

    @field_validator("mode", mode="before")
    @classmethod
    def validate_mode(cls, v: Any) -> Any:
        # bare `1`/`0` come through the environment parser as bools
        if isinstance(v, bool):
            return "1" if v else "off"
        return v


# =============================================================================
# MAIN CONFIG MODEL
# =============================================================================


class ToolbeltConfig(BaseModel):
    """
    Complete toolbelt configuration.

    Maps to: [toolbelt]

    Example:
        >>> config = ToolbeltConfig(cache={"max_size": 10})
        >>> config.cache.max_size
        10
    """

    cache: CacheConfig = Field(default_factory=CacheConfig)
    pricing: PricingConfig = Field(default_factory=PricingConfig)
    budget: BudgetConfig = Field(default_factory=BudgetConfig)
    pruning: PruneConfig = Field(default_factory=PruneConfig)
    context_status: ContextStatusConfig = Field(default_factory=ContextStatusConfig)
    debug: DebugConfig = Field(default_factory=DebugConfig)
    logging: dict[str, Any] = Field(
        default_factory=dict, description="Raw section passed to configure_logging()"
    )


SECTIONS = tuple(ToolbeltConfig.model_fields)


# =============================================================================
# LOADING FUNCTIONS
# =============================================================================


def _deep_merge(base: dict[str, Any], override: Mapping[str, Any]) -> dict[str, Any]:
    """
    Deep merge two dictionaries.

    Args:
        base: Base dictionary
        override: Dictionary with override values

    Returns:
        Merged dictionary
    """
    result = dict(base)

    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, Mapping):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value

    return result


def _parse_env_value(value: str) -> Any:
    """
    Parse environment variable value to appropriate type.

    Args:
        value: String value from environment

    Returns:
        Parsed value (bool, int, float, or string)
    """
    if value.lower() in ("true", "yes", "1", "on"):
        return True
    if value.lower() in ("false", "no", "0", "off"):
        return False

    try:
        return int(value)
    except ValueError:
        pass

    try:
        return float(value)
    except ValueError:
        pass

    return value


def _apply_env_overrides(
    config: dict[str, Any], environ: Mapping[str, str] | None = None
) -> dict[str, Any]:
    """
    Apply environment variable overrides to configuration.

    Environment variables follow the pattern ``TOOLBELT_<SECTION>_<KEY>``,
    where SECTION is one of the ``ToolbeltConfig`` fields:

        TOOLBELT_CACHE_MAX_SIZE=200
        TOOLBELT_PRICING_TIMEOUT_SECONDS=3
        TOOLBELT_CONTEXT_STATUS_CRITICAL_THRESHOLD=0.9
    """
    environ = os.environ if environ is None else environ
    # longest first so "context_status" wins over a shorter prefix
    sections = sorted(SECTIONS, key=len, reverse=True)

    for name, value in environ.items():
        if not name.startswith(ENV_PREFIX):
            continue
        rest = name[len(ENV_PREFIX):].lower()
        for section in sections:
            if rest.startswith(f"{section}_"):
                key = rest[len(section) + 1:]
                # numeric-looking debug modes ("1") must stay strings
                parsed = value if section == "debug" else _parse_env_value(value)
                config.setdefault(section, {})[key] = parsed
                logger.debug(f"Config override from environment: {section}.{key}")
                break

    return config


def load_toml_config(config_path: Path | str | None = None) -> dict[str, Any]:
    """
    Load the ``[toolbelt]`` table from a TOML file.

    Args:
        config_path: Path to TOML file (default: ~/.toolbelt/config.toml)

    Returns:
        Configuration dictionary; empty when the file does not exist.

    Raises:
        ConfigError: If the file exists but cannot be parsed.
    """
    path = Path(config_path).expanduser() if config_path else DEFAULT_CONFIG_PATH

    if not path.exists():
        logger.debug(f"Config file not found: {path}")
        return {}

    try:
        with open(path, "rb") as f:
            full_config = tomllib.load(f)
    except (OSError, tomllib.TOMLDecodeError) as e:
        raise ConfigError(f"Failed to load config from {path}: {e}") from e

    logger.debug(f"Loaded toolbelt config from {path}")
    return full_config.get("toolbelt", {})


def load_config(
    config_path: Path | str | None = None,
    overrides: Mapping[str, Any] | None = None,
    environ: Mapping[str, str] | None = None,
) -> ToolbeltConfig:
    """
    Load complete toolbelt configuration.

    Configuration is loaded and merged in order:
        1. Default values
        2. TOML config file
        3. Environment variables
        4. Runtime overrides

    Args:
        config_path: Optional path to TOML config file
        overrides: Optional runtime overrides (nested dict)
        environ: Environment mapping (default: ``os.environ``)

    Returns:
        ToolbeltConfig instance

    Raises:
        ConfigError: If the merged configuration is invalid.
    """
    config: dict[str, Any] = {}

    toml_config = load_toml_config(config_path)
    if toml_config:
        config = _deep_merge(config, toml_config)

    config = _apply_env_overrides(config, environ)

    if overrides:
        config = _deep_merge(config, overrides)

    try:
        return ToolbeltConfig.model_validate(config)
    except ValidationError as e:
        raise ConfigError(f"Invalid toolbelt configuration: {e}") from e

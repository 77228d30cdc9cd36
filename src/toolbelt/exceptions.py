# src/toolbelt/exceptions.py
"""
Custom exceptions for the toolbelt library.

This module defines a hierarchy of custom exception classes to provide
more specific error information and allow for targeted error handling
by agent loops that use toolbelt.
"""

_OVERRIDE_HINT = (
    "You can bypass this by providing model_pricing overrides in your config."
)


class ToolbeltError(Exception):
    """Base class for all toolbelt specific errors."""
    def __init__(self, message: str = "An unspecified error occurred in toolbelt."):
        super().__init__(message)


class ConfigError(ToolbeltError):
    """Raised for errors related to configuration loading or validation."""
    def __init__(self, message: str = "Configuration error."):
        super().__init__(message)


class BudgetConfigError(ConfigError, ValueError):
    """
    Raised when a budget tracker is constructed with an invalid budget.
    This is a programming error on the caller's side, not a runtime condition.
    """
    def __init__(self, max_usd: object = None, message: str = "max_usd must be positive."):
        self.max_usd = max_usd
        super().__init__(f"{message} Got: {max_usd!r}")


class ToolDefinitionError(ToolbeltError):
    """Raised when a tool handed to the cache wrapper has nothing to execute."""
    def __init__(self, tool_name: str = "Unknown", message: str = "Tool has no execute function."):
        self.tool_name = tool_name
        super().__init__(f"Tool '{tool_name}': {message}")


class PricingFetchError(ToolbeltError):
    """Base class for failures while fetching the remote pricing catalog."""
    def __init__(self, message: str = "Pricing catalog fetch failed."):
        super().__init__(message)


class PricingTimeoutError(PricingFetchError):
    """Raised when the pricing catalog does not answer within the timeout."""
    def __init__(self, timeout_seconds: float = 0.0):
        self.timeout_seconds = timeout_seconds
        super().__init__(
            f"Pricing catalog fetch timed out after {timeout_seconds:g}s. "
            "This usually means the catalog is unreachable from your network. "
            f"{_OVERRIDE_HINT}"
        )


class PricingNetworkError(PricingFetchError):
    """Raised when the pricing catalog cannot be reached at all."""
    def __init__(self, reason: str = "unknown"):
        self.reason = reason
        super().__init__(
            "Pricing catalog fetch failed (network error). "
            "Ensure you have internet access or provide model_pricing overrides in your config. "
            f"Original error: {reason}"
        )


class PricingHTTPError(PricingFetchError):
    """Raised when the pricing catalog answers with a non-2xx status."""
    def __init__(self, status: int = 0, reason: str = ""):
        self.status = status
        self.reason = reason
        super().__init__(
            f"Pricing catalog fetch failed: HTTP {status} {reason}".rstrip() + ". "
            f"{_OVERRIDE_HINT}"
        )


class PricingFormatError(PricingFetchError):
    """Raised when the pricing catalog body cannot be understood."""
    def __init__(self, detail: str = "malformed response body"):
        self.detail = detail
        super().__init__(
            f"Pricing catalog response is invalid ({detail}). "
            "The API may have changed. Please provide model_pricing overrides in your config."
        )

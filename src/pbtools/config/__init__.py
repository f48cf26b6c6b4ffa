"""Application configuration helpers."""

from __future__ import annotations

from .env import env_flag, require_env_vars
from .errors import ConfigurationError, MissingConfigurationError
from .http_resilience import RateLimit, ResilienceConfig, RetryPolicy
from .productboard import (
    PRODUCTBOARD_EU_URL,
    PRODUCTBOARD_US_URL,
    OperationLimits,
    ProductboardConfig,
    get_productboard_config,
    productboard_resilience,
)

__all__ = [
    "PRODUCTBOARD_EU_URL",
    "PRODUCTBOARD_US_URL",
    "ConfigurationError",
    "MissingConfigurationError",
    "OperationLimits",
    "ProductboardConfig",
    "RateLimit",
    "ResilienceConfig",
    "RetryPolicy",
    "env_flag",
    "get_productboard_config",
    "productboard_resilience",
    "require_env_vars",
]

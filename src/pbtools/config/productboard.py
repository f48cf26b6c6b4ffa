"""Productboard connection settings and operation limits."""

from __future__ import annotations

from dataclasses import dataclass, field

from .env import env_flag, require_env_vars
from .errors import MissingConfigurationError
from .http_resilience import RateLimit, ResilienceConfig, RetryPolicy

PRODUCTBOARD_US_URL = "https://api.productboard.com"
PRODUCTBOARD_EU_URL = "https://api.eu.productboard.com"
PRODUCTBOARD_TIMEOUT_SECONDS = 60.0
PRODUCTBOARD_API_VERSION = "1"


@dataclass(frozen=True)
class OperationLimits:
    """Bounds applied by one operation: pagination caps, batching and backfill pacing."""

    page_size: int = 100
    max_records: int = 10_000
    max_custom_fields: int = 1_000
    max_pages: int = 1_000
    secondary_batch_size: int = 5
    secondary_batch_delay: float = 0.1
    backfill_attempts: int = 3
    backfill_delay: float = 1.0


@dataclass(frozen=True)
class ProductboardConfig:
    """Holds the bearer token, datacenter choice and client tuning."""

    token: str
    use_eu: bool = False
    resilience: ResilienceConfig = field(
        default_factory=lambda: productboard_resilience(use_eu=False)
    )
    limits: OperationLimits = field(default_factory=OperationLimits)

    @property
    def base_url(self) -> str:
        return self.resilience.base_url or (
            PRODUCTBOARD_EU_URL if self.use_eu else PRODUCTBOARD_US_URL
        )


def productboard_resilience(
    *,
    use_eu: bool,
    retry: RetryPolicy | None = None,
) -> ResilienceConfig:
    return ResilienceConfig(
        name="productboard-eu" if use_eu else "productboard",
        base_url=PRODUCTBOARD_EU_URL if use_eu else PRODUCTBOARD_US_URL,
        timeout_seconds=PRODUCTBOARD_TIMEOUT_SECONDS,
        retry=retry or RetryPolicy(),
        ratelimit=RateLimit(max_calls=50, per_seconds=1.0),
        default_headers={
            "Accept": "application/json",
            "Content-Type": "application/json",
            "X-Version": PRODUCTBOARD_API_VERSION,
        },
    )


def get_productboard_config(
    *,
    token: str | None = None,
    use_eu: bool | None = None,
    resilience: ResilienceConfig | None = None,
    limits: OperationLimits | None = None,
) -> ProductboardConfig:
    """Build the config from explicit credentials, falling back to ``PB_API_TOKEN``/``PB_USE_EU``."""

    if token is None:
        token = require_env_vars(("PB_API_TOKEN",))["PB_API_TOKEN"]
    elif not token.strip():
        raise MissingConfigurationError("Missing configuration for: Productboard API token")
    effective_eu = env_flag("PB_USE_EU") if use_eu is None else use_eu
    return ProductboardConfig(
        token=token.strip(),
        use_eu=effective_eu,
        resilience=resilience or productboard_resilience(use_eu=effective_eu),
        limits=limits or OperationLimits(),
    )

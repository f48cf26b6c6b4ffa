"""Mock transport wiring for the HTTP client."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

import httpx

from pbtools.adapters.http_resilience import ResilientClient
from pbtools.config import OperationLimits, ProductboardConfig, get_productboard_config

if TYPE_CHECKING:
    from collections.abc import Callable

    from pbtools.config import ResilienceConfig


def make_client_factory(
    handler: Callable[[httpx.Request], httpx.Response],
    *,
    pause: bool = False,
) -> Callable[[ResilienceConfig], ResilientClient]:
    """Route every request to ``handler``; ``pause`` yields to the loop before each response."""

    async def async_handler(request: httpx.Request) -> httpx.Response:
        if pause:
            await asyncio.sleep(0)
        return handler(request)

    def factory(resilience: ResilienceConfig) -> ResilientClient:
        client = ResilientClient(resilience)
        client._client = httpx.AsyncClient(  # noqa: SLF001  # type: ignore[reportPrivateUsage]
            transport=httpx.MockTransport(async_handler),
            headers=dict(resilience.default_headers or {}),
        )
        return client

    return factory


def make_config(*, token: str = "test-token", use_eu: bool = False) -> ProductboardConfig:
    return get_productboard_config(
        token=token,
        use_eu=use_eu,
        limits=OperationLimits(secondary_batch_delay=0.0, backfill_delay=0.0),
    )


class SleepRecorder:
    """Async ``sleep`` replacement that records requested delays."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)

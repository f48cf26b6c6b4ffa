from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from logging import getLogger
from typing import TYPE_CHECKING, TypedDict, Unpack

import httpx
from aiolimiter import AsyncLimiter

from pbtools.domain.ports import RemoteServiceError

if TYPE_CHECKING:
    from types import TracebackType

    from httpx._types import HeaderTypes, QueryParamTypes, URLTypes

    from pbtools.config import ResilienceConfig, RetryPolicy

log = getLogger(__name__)

type Sleeper = Callable[[float], Awaitable[None]]


class RequestOptions(TypedDict, total=False):
    json: object
    params: QueryParamTypes | None
    headers: HeaderTypes | None


class AsyncClientOptions(TypedDict, total=False):
    base_url: str
    timeout: float
    headers: dict[str, str]


class ResilientClient:
    """Rate-limited ``httpx.AsyncClient``.

    Retries are not applied at the transport level; callers wrap whole
    operations with :func:`with_retry` so a failed call is retried exactly once
    per policy attempt.
    """

    def __init__(self, config: ResilienceConfig) -> None:
        self.config = config
        self._limiter: AsyncLimiter | None = (
            AsyncLimiter(config.ratelimit.max_calls, config.ratelimit.per_seconds)
            if config.ratelimit
            else None
        )

        client_kwargs: AsyncClientOptions = {"timeout": config.timeout_seconds}
        if config.base_url is not None:
            client_kwargs["base_url"] = config.base_url
        if config.default_headers:
            client_kwargs["headers"] = dict(config.default_headers)
        self._client = httpx.AsyncClient(**client_kwargs)

    async def __aenter__(self) -> ResilientClient:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def request(
        self,
        method: str,
        url: URLTypes,
        **kwargs: Unpack[RequestOptions],
    ) -> httpx.Response:
        async def do_request() -> httpx.Response:
            return await self._client.request(method, url, **kwargs)

        return await self._send(do_request)

    async def get(self, url: URLTypes, **kwargs: Unpack[RequestOptions]) -> httpx.Response:
        return await self.request("GET", url, **kwargs)

    async def post(self, url: URLTypes, **kwargs: Unpack[RequestOptions]) -> httpx.Response:
        return await self.request("POST", url, **kwargs)

    async def _send(self, func: Callable[[], Awaitable[httpx.Response]]) -> httpx.Response:
        if self._limiter is None:
            return await func()
        async with self._limiter:
            return await func()


async def with_retry[T](
    operation: Callable[[], Awaitable[T]],
    description: str,
    *,
    policy: RetryPolicy,
    sleep: Sleeper = asyncio.sleep,
) -> T:
    """Run ``operation`` and retry transient failures with increasing backoff.

    Transient means a ``RemoteServiceError`` with status 429 or 5xx, or one of
    the policy's transport exceptions. Everything else is raised on the spot,
    as is the last transient failure once the attempts are used up.
    """

    retry = policy.build()
    while True:
        try:
            return await operation()
        except RemoteServiceError as exc:
            if exc.status is None or not policy.is_transient_status(exc.status):
                raise
            if retry.is_exhausted():
                raise
            retry = retry.increment()
            delay = _server_delay(exc, policy)
            if delay is None:
                delay = retry.backoff_strategy()
            log.warning(
                "%s failed with %s (attempt %s/%s), retrying in %.2fs",
                description,
                exc.status,
                retry.attempts_made,
                policy.attempts,
                delay,
            )
        except httpx.HTTPError as exc:
            if not policy.is_transient_exception(exc) or retry.is_exhausted():
                raise
            retry = retry.increment()
            delay = retry.backoff_strategy()
            log.warning(
                "%s failed with %s (attempt %s/%s), retrying in %.2fs",
                description,
                type(exc).__name__,
                retry.attempts_made,
                policy.attempts,
                delay,
            )
        await sleep(delay)


def _server_delay(exc: RemoteServiceError, policy: RetryPolicy) -> float | None:
    if not policy.respect_retry_after_header or exc.status != 429 or exc.retry_after is None:
        return None
    return min(max(exc.retry_after, 0.0), policy.max_backoff_wait)


def parse_retry_after(value: str | None) -> float | None:
    """Seconds from a ``Retry-After`` header; HTTP-date values are ignored."""

    if not value:
        return None
    try:
        seconds = float(value.strip())
    except ValueError:
        return None
    return seconds if seconds >= 0 else None

"""HTTP client for the Productboard REST API."""

from __future__ import annotations

import asyncio
import json
from logging import getLogger
from typing import TYPE_CHECKING, Any

import httpx

from pbtools.adapters.http_resilience import (
    RequestOptions,
    ResilientClient,
    Sleeper,
    parse_retry_after,
    with_retry,
)
from pbtools.domain.ports import RemoteServiceError, iterate_pages

from .schema import extract_error_message

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Callable, Mapping
    from types import TracebackType

    from pbtools.config import ProductboardConfig, ResilienceConfig
    from pbtools.domain.ports import PageRequest, PaginationStrategy, Record

log = getLogger(__name__)


def _default_client_factory(config: ResilienceConfig) -> ResilientClient:
    return ResilientClient(config)


class ProductboardAPIError(RemoteServiceError):
    """Raised when Productboard answers with a non-2xx status or cannot be reached."""

    @classmethod
    def from_response(cls, method: str, url: str, response: httpx.Response) -> ProductboardAPIError:
        text = response.text
        detail = extract_error_message(text) or text.strip() or response.reason_phrase or None
        return cls(
            f"PB {method} {url} -> {response.status_code}: {text}",
            status=response.status_code,
            detail=detail,
            retry_after=parse_retry_after(response.headers.get("Retry-After")),
        )


class ProductboardClient:
    """Authenticated access to one Productboard workspace.

    Only the credentials and region captured at construction are held; every
    operation builds its own caches on top of this client.
    """

    def __init__(
        self,
        config: ProductboardConfig,
        *,
        client_factory: Callable[[ResilienceConfig], ResilientClient] | None = None,
        sleep: Sleeper = asyncio.sleep,
    ) -> None:
        self._config = config
        self._sleep = sleep
        self._client = (client_factory or _default_client_factory)(config.resilience)

    async def __aenter__(self) -> ProductboardClient:
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

    @property
    def base_url(self) -> str:
        return self._config.base_url.rstrip("/")

    def url_for(self, path: str) -> str:
        if path.startswith(("http://", "https://")):
            return path
        return f"{self.base_url}/{path.lstrip('/')}"

    async def call(
        self,
        method: str,
        path: str,
        body: object | None = None,
        *,
        params: Mapping[str, str] | None = None,
    ) -> Record:
        """Issue one request without retrying; decode the JSON body or raise."""

        method = method.upper()
        url = self.url_for(path)
        options: RequestOptions = {
            "headers": {"Authorization": f"Bearer {self._config.token}"},
        }
        if params:
            options["params"] = dict(params)
        if body is not None:
            options["json"] = body
        response = await self._client.request(method, url, **options)
        if not response.is_success:
            raise ProductboardAPIError.from_response(method, url, response)
        return _decode_body(response.text)

    async def request(
        self,
        method: str,
        path: str,
        body: object | None = None,
        *,
        params: Mapping[str, str] | None = None,
        description: str | None = None,
    ) -> Record:
        label = description or f"{method.upper()} {path}"
        try:
            return await with_retry(
                lambda: self.call(method, path, body, params=params),
                label,
                policy=self._config.resilience.retry,
                sleep=self._sleep,
            )
        except httpx.HTTPError as exc:
            raise ProductboardAPIError(f"{label}: {exc}", detail=f"{label}: {exc}") from exc

    def paginate(
        self,
        path: str,
        strategy: PaginationStrategy,
        *,
        method: str = "GET",
        params: Mapping[str, str] | None = None,
        body: Mapping[str, Any] | None = None,
        max_records: int | None = None,
        max_pages: int | None = None,
        description: str | None = None,
    ) -> AsyncIterator[list[Record]]:
        label = description or f"{method.upper()} {path}"

        async def fetch(page: PageRequest) -> Record:
            return await self.request(
                method,
                path,
                page.body,
                params=page.params,
                description=f"{label} page",
            )

        return iterate_pages(
            fetch,
            strategy,
            params=params,
            body=body,
            max_records=self._config.limits.max_records if max_records is None else max_records,
            max_pages=self._config.limits.max_pages if max_pages is None else max_pages,
        )


def _decode_body(text: str) -> Record:
    if not text.strip():
        return {}
    try:
        payload = json.loads(text)
    except ValueError as exc:
        raise ProductboardAPIError(f"Unexpected non-JSON response: {text[:200]}") from exc
    if isinstance(payload, dict):
        return payload
    return {"data": payload}

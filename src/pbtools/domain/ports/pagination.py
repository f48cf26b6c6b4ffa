"""Pagination strategies shared by every remote collection.

A strategy only knows how to build the first page request and how to derive
the next one from a response. The loop that drives them, including the hard
record and page caps, lives in :func:`iterate_pages`.
"""

from __future__ import annotations

import copy
import re
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Any, Protocol
from urllib.parse import unquote

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Awaitable, Callable, Mapping, Sequence

    from .remote import Record


@dataclass(frozen=True, slots=True)
class PageRequest:
    params: dict[str, str] = field(default_factory=dict)
    body: dict[str, Any] | None = None
    offset: int = 0


class PaginationStrategy(Protocol):
    def first(
        self,
        *,
        params: Mapping[str, str] | None = None,
        body: Mapping[str, Any] | None = None,
    ) -> PageRequest: ...

    def next(
        self,
        request: PageRequest,
        page: Mapping[str, Any],
        items: Sequence[Record],
    ) -> PageRequest | None: ...


def _next_link(page: Mapping[str, Any]) -> str | None:
    links = page.get("links")
    if not isinstance(links, dict):
        return None
    next_link = links.get("next")
    return next_link if isinstance(next_link, str) and next_link else None


@dataclass(frozen=True, slots=True)
class OffsetStrategy:
    """``pageLimit``/``pageOffset`` paging.

    Ends on an empty page or when the records seen reach a reported total.
    Without a total it also ends on a short page, or when the response carries
    links but no next one. The offset advances by the records actually served,
    so a server capping its page size below ``limit`` is still paged through.
    """

    limit: int = 100
    limit_param: str = "pageLimit"
    offset_param: str = "pageOffset"

    def first(
        self,
        *,
        params: Mapping[str, str] | None = None,
        body: Mapping[str, Any] | None = None,
    ) -> PageRequest:
        merged = dict(params or {})
        merged[self.limit_param] = str(self.limit)
        merged[self.offset_param] = "0"
        return PageRequest(params=merged, body=dict(body) if body is not None else None)

    def next(
        self,
        request: PageRequest,
        page: Mapping[str, Any],
        items: Sequence[Record],
    ) -> PageRequest | None:
        if not items:
            return None
        pagination = page.get("pagination")
        if isinstance(pagination, dict) and pagination.get("total") is not None:
            offset = _as_int(pagination.get("offset"), request.offset) + len(items)
            if offset >= _as_int(pagination.get("total"), 0):
                return None
        elif len(items) < self.limit or ("links" in page and _next_link(page) is None):
            return None
        else:
            offset = request.offset + len(items)
        params = dict(request.params)
        params[self.offset_param] = str(offset)
        return replace(request, params=params, offset=offset)


@dataclass(frozen=True, slots=True)
class CursorStrategy:
    """Opaque-cursor paging.

    The cursor is read from ``cursor_field`` when set, otherwise from the
    ``cursor_param`` query parameter of ``links.next``. It is sent back in the
    query string, or under ``data.<cursor_param>`` of the body for search
    endpoints (``in_body``).
    """

    cursor_param: str = "pageCursor"
    cursor_field: str | None = None
    in_body: bool = False
    limit: int | None = None
    limit_param: str = "pageLimit"

    def first(
        self,
        *,
        params: Mapping[str, str] | None = None,
        body: Mapping[str, Any] | None = None,
    ) -> PageRequest:
        merged = dict(params or {})
        if self.limit is not None:
            merged[self.limit_param] = str(self.limit)
        return PageRequest(params=merged, body=copy.deepcopy(dict(body)) if body else None)

    def next(
        self,
        request: PageRequest,
        page: Mapping[str, Any],
        items: Sequence[Record],
    ) -> PageRequest | None:
        cursor = self.read_cursor(page)
        if not cursor:
            return None
        if self.in_body:
            body = copy.deepcopy(request.body) if request.body else {}
            data = body.setdefault("data", {})
            data[self.cursor_param] = cursor
            return replace(request, body=body)
        params = dict(request.params)
        params[self.cursor_param] = cursor
        return replace(request, params=params)

    def read_cursor(self, page: Mapping[str, Any]) -> str | None:
        if self.cursor_field is not None:
            value = page.get(self.cursor_field)
            return value if isinstance(value, str) and value else None
        return extract_cursor(_next_link(page), self.cursor_param)


def extract_cursor(next_link: str | None, param: str = "pageCursor") -> str | None:
    if not next_link:
        return None
    match = re.search(rf"{re.escape(param)}=([^&]+)", next_link)
    return unquote(match.group(1)) if match else None


def _as_int(value: object, default: int) -> int:
    if isinstance(value, bool):
        return default
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.isdigit():
        return int(value)
    return default


async def iterate_pages(
    fetch: Callable[[PageRequest], Awaitable[Mapping[str, Any]]],
    strategy: PaginationStrategy,
    *,
    params: Mapping[str, str] | None = None,
    body: Mapping[str, Any] | None = None,
    max_records: int | None = None,
    max_pages: int | None = None,
) -> AsyncIterator[list[Record]]:
    """Yield the ``data`` array of each page until the strategy or a cap ends it."""

    request: PageRequest | None = strategy.first(params=params, body=body)
    seen = 0
    pages = 0
    while request is not None:
        if max_pages is not None and pages >= max_pages:
            return
        page = await fetch(request)
        pages += 1
        raw = page.get("data")
        items = [item for item in raw if isinstance(item, dict)] if isinstance(raw, list) else []
        if max_records is not None and seen + len(items) >= max_records:
            remaining = max_records - seen
            if remaining > 0:
                yield items[:remaining]
            return
        seen += len(items)
        if items:
            yield items
        request = strategy.next(request, page, items)

"""In-memory stand-in for the remote collection port."""

from __future__ import annotations

import copy
from collections import deque
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from pbtools.domain.ports import RemoteServiceError, iterate_pages

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Callable, Mapping, Sequence

    from pbtools.domain.ports import PageRequest, PaginationStrategy, Record


@dataclass(frozen=True, slots=True)
class RecordedCall:
    method: str
    path: str
    body: Any = None
    params: dict[str, str] | None = None


type Responder = Record | BaseException | Callable[[RecordedCall], Record]


def api_error(status: int, detail: str = "") -> RemoteServiceError:
    message = detail or f"status {status}"
    return RemoteServiceError(f"PB -> {status}: {message}", status=status, detail=detail or None)


def offset_pages(records: Sequence[Record]) -> Callable[[RecordedCall], Record]:
    """Serve ``records`` through ``pageLimit``/``pageOffset`` with a ``links.next`` hint."""

    def respond(call: RecordedCall) -> Record:
        params = call.params or {}
        limit = int(params.get("pageLimit", "100"))
        offset = int(params.get("pageOffset", "0"))
        page = [copy.deepcopy(record) for record in records[offset : offset + limit]]
        more = offset + limit < len(records)
        return {"data": page, "links": {"next": "https://next" if more else None}}

    return respond


def cursor_pages(pages: Sequence[Sequence[Record]]) -> Callable[[RecordedCall], Record]:
    """Serve ``pages`` in order, chaining them with ``links.next`` cursors."""

    def respond(call: RecordedCall) -> Record:
        cursor = (call.params or {}).get("pageCursor")
        if cursor is None and isinstance(call.body, dict):
            cursor = call.body.get("data", {}).get("pageCursor")
        index = int(cursor) if cursor else 0
        data = [copy.deepcopy(record) for record in pages[index]] if pages else []
        has_more = index + 1 < len(pages)
        next_link = f"https://api.test/v2/notes?pageCursor={index + 1}" if has_more else None
        cursor_value = str(index + 1) if has_more else None
        return {"data": data, "links": {"next": next_link}, "pageCursor": cursor_value}

    return respond


class FakeRemote:
    """Scripted remote collection.

    Routes are keyed by ``(METHOD, path)``; a path ending in ``/*`` matches any
    suffix. Each route holds a queue of responders and keeps answering with
    the last one. Unknown routes fall back to ``default`` or fail the test.
    """

    def __init__(self, *, default: Record | None = None) -> None:
        self._routes: dict[tuple[str, str], deque[Responder]] = {}
        self._default = default
        self.calls: list[RecordedCall] = []

    def on(self, method: str, path: str, *responders: Responder) -> FakeRemote:
        self._routes[(method.upper(), path)] = deque(responders)
        return self

    def calls_to(self, method: str, prefix: str = "") -> list[RecordedCall]:
        return [
            call
            for call in self.calls
            if call.method == method.upper() and call.path.startswith(prefix)
        ]

    async def request(
        self,
        method: str,
        path: str,
        body: object | None = None,
        *,
        params: Mapping[str, str] | None = None,
        description: str | None = None,
    ) -> Record:
        del description
        call = RecordedCall(method.upper(), path, copy.deepcopy(body), dict(params or {}))
        self.calls.append(call)
        queue = self._match(call)
        if queue is None:
            if self._default is not None:
                return copy.deepcopy(self._default)
            raise AssertionError(f"Unexpected call: {call.method} {call.path}")
        responder = queue.popleft() if len(queue) > 1 else queue[0]
        if isinstance(responder, BaseException):
            raise responder
        if callable(responder):
            return responder(call)
        return copy.deepcopy(responder)

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
        async def fetch(page: PageRequest) -> Record:
            return await self.request(
                method, path, page.body, params=page.params, description=description
            )

        return iterate_pages(
            fetch,
            strategy,
            params=params,
            body=body,
            max_records=max_records,
            max_pages=max_pages,
        )

    def _match(self, call: RecordedCall) -> deque[Responder] | None:
        exact = self._routes.get((call.method, call.path))
        if exact is not None:
            return exact
        for (method, pattern), queue in self._routes.items():
            if method == call.method and pattern.endswith("/*"):
                if call.path.startswith(pattern[:-1]):
                    return queue
        return None

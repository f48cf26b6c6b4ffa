"""Port for the remote, paginated collection API."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Mapping

    from .pagination import PaginationStrategy

type Record = dict[str, Any]


class RemoteServiceError(RuntimeError):
    """Raised when the remote service rejects a call or cannot be reached.

    ``status`` is ``None`` for transport failures. ``detail`` holds the
    human-readable message taken from the service's error envelope when one
    was present.
    """

    def __init__(
        self,
        message: str,
        *,
        status: int | None = None,
        detail: str | None = None,
        retry_after: float | None = None,
    ) -> None:
        super().__init__(message)
        self.status = status
        self.detail = detail
        self.retry_after = retry_after

    @property
    def is_not_found(self) -> bool:
        return self.status == 404

    @property
    def human_message(self) -> str:
        return self.detail or str(self)


def describe_error(exc: BaseException) -> str:
    """Best-effort one-line message for logs and streamed events."""

    if isinstance(exc, RemoteServiceError):
        return exc.human_message
    return str(exc) or type(exc).__name__


@runtime_checkable
class RemoteCollection(Protocol):
    """Authenticated access to the remote service's collections.

    ``request`` applies the retry policy; ``paginate`` yields record batches
    until the strategy reports the end or a cap is reached.
    """

    async def request(
        self,
        method: str,
        path: str,
        body: object | None = None,
        *,
        params: Mapping[str, str] | None = None,
        description: str | None = None,
    ) -> Record: ...

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
    ) -> AsyncIterator[list[Record]]: ...

"""One-way event channel from an operation to a single consumer."""

from __future__ import annotations

import asyncio
from logging import getLogger
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from .events import OperationEvent

log = getLogger(__name__)


class CancellationToken:
    """Set once when the consumer goes away; polled by the operation between rows."""

    def __init__(self) -> None:
        self._reason: str | None = None

    def cancel(self, reason: str = "cancelled") -> None:
        if self._reason is None:
            self._reason = reason

    @property
    def cancelled(self) -> bool:
        return self._reason is not None

    @property
    def reason(self) -> str | None:
        return self._reason


class EventChannel:
    """Unbounded queue of events for one consumer.

    The producer calls :meth:`send` and finally :meth:`finish`. The consumer
    iterates :meth:`events`; if it stops early, or calls :meth:`close`, the
    channel's token is cancelled and later events are dropped.
    """

    def __init__(self, token: CancellationToken | None = None) -> None:
        self.token = token or CancellationToken()
        self._queue: asyncio.Queue[OperationEvent | None] = asyncio.Queue()
        self._finished = False
        self._closed = False
        self._drained = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def finished(self) -> bool:
        return self._finished

    def send(self, event: OperationEvent) -> None:
        if self._finished:
            raise RuntimeError("Cannot send on a finished channel")
        if self._closed:
            log.debug("Dropping %s event, consumer is gone", event.name)
            return
        self._queue.put_nowait(event)

    def finish(self) -> None:
        """Mark the end of the stream; idempotent."""

        if self._finished:
            return
        self._finished = True
        self._queue.put_nowait(None)

    def close(self, reason: str = "consumer disconnected") -> None:
        """Consumer-side closure; cancels the operation cooperatively."""

        if self._closed:
            return
        self._closed = True
        if not self._drained:
            self.token.cancel(reason)

    async def events(self) -> AsyncIterator[OperationEvent]:
        try:
            while True:
                event = await self._queue.get()
                if event is None:
                    self._drained = True
                    return
                yield event
        finally:
            if not self._drained:
                self.close()

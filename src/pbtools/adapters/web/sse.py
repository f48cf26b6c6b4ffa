"""Server-Sent Event responses fed by an ``EventChannel``."""

from __future__ import annotations

import asyncio
from logging import getLogger
from typing import TYPE_CHECKING

from fastapi.responses import StreamingResponse

from pbtools.streaming import to_sse

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from pbtools.app import OperationStarter
    from pbtools.streaming import EventChannel, Operation

log = getLogger(__name__)

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}

# Strong references so running operations are not garbage collected mid-flight.
_running: set[asyncio.Task[Operation]] = set()


def _forget(task: asyncio.Task[Operation]) -> None:
    _running.discard(task)
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        log.error("Streaming operation crashed: %s", exc, exc_info=exc)


def event_stream_response(
    channel: EventChannel,
    start: OperationStarter,
) -> StreamingResponse:
    """Run ``start(channel)`` in the background and stream its events.

    When the client disconnects the generator is closed, which closes the
    channel and cancels the operation before its next row.
    """

    async def stream() -> AsyncIterator[str]:
        task = asyncio.create_task(start(channel))
        _running.add(task)
        task.add_done_callback(_forget)
        try:
            async for event in channel.events():
                yield to_sse(event)
        finally:
            channel.close()

    return StreamingResponse(stream(), media_type="text/event-stream", headers=SSE_HEADERS)

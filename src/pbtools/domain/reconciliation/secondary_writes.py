"""Small-batch concurrency for writes that hang off a primary record."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Sequence

type Sleeper = Callable[[float], Awaitable[None]]


async def run_in_batches[T](
    calls: Sequence[Callable[[], Awaitable[T]]],
    *,
    batch_size: int,
    delay: float,
    sleep: Sleeper = asyncio.sleep,
) -> list[T | Exception]:
    """Run ``calls`` ``batch_size`` at a time, pausing ``delay`` between batches.

    Results come back in call order. A failing call yields its exception in
    place of a result and does not affect the others.
    """

    results: list[T | Exception] = []
    size = max(batch_size, 1)
    for start in range(0, len(calls), size):
        if start and delay > 0:
            await sleep(delay)
        batch = calls[start : start + size]
        outcomes = await asyncio.gather(*(call() for call in batch), return_exceptions=True)
        for outcome in outcomes:
            if isinstance(outcome, BaseException) and not isinstance(outcome, Exception):
                raise outcome
            results.append(outcome)
    return results

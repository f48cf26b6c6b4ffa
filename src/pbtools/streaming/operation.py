"""Driving a long-running operation over an event channel.

Every operation goes STARTED -> COLLECTING_CACHES -> PROCESSING_ROWS and ends
in exactly one of COMPLETED, ABORTED or FAILED. Whatever the path, the
channel receives exactly one terminal event (``complete`` or ``error``) and
is then finished.
"""

from __future__ import annotations

import asyncio
from enum import StrEnum
from logging import getLogger
from typing import TYPE_CHECKING, Protocol

from pbtools.domain.results import ResultTally, RowStatus

from .events import CompleteEvent, ErrorEvent, LogEvent, LogLevel, ProgressEvent

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Mapping, Sequence

    from pbtools.domain.results import OperationResult, RowOutcome

    from .channel import EventChannel

log = getLogger(__name__)


class OperationState(StrEnum):
    STARTED = "started"
    COLLECTING_CACHES = "collecting_caches"
    PROCESSING_ROWS = "processing_rows"
    COMPLETED = "completed"
    ABORTED = "aborted"
    FAILED = "failed"


TERMINAL_STATES = frozenset(
    {OperationState.COMPLETED, OperationState.ABORTED, OperationState.FAILED}
)
_TRANSITIONS: dict[OperationState, frozenset[OperationState]] = {
    OperationState.STARTED: frozenset(
        {OperationState.COLLECTING_CACHES, OperationState.COMPLETED, OperationState.FAILED}
    ),
    OperationState.COLLECTING_CACHES: frozenset(
        {OperationState.PROCESSING_ROWS, OperationState.COMPLETED, OperationState.FAILED}
    ),
    OperationState.PROCESSING_ROWS: TERMINAL_STATES,
}


class ProgressReporter:
    """Sends progress and log events; percentages never go backwards."""

    def __init__(self, channel: EventChannel) -> None:
        self._channel = channel
        self._percent = 0

    @property
    def percent(self) -> int:
        return self._percent

    def progress(self, message: str, percent: int) -> None:
        self._percent = max(self._percent, min(max(percent, 0), 100))
        self._channel.send(ProgressEvent(message, self._percent))

    def log(self, level: LogLevel, message: str, detail: str | None = None) -> None:
        self._channel.send(LogEvent(level, message, detail))


class Operation:
    def __init__(
        self,
        channel: EventChannel,
        *,
        describe_error: Callable[[BaseException], str] = str,
    ) -> None:
        self.channel = channel
        self.token = channel.token
        self.reporter = ProgressReporter(channel)
        self.state = OperationState.STARTED
        self.describe_error = describe_error

    def transition(self, state: OperationState) -> None:
        allowed = _TRANSITIONS.get(self.state, frozenset())
        if state not in allowed:
            raise RuntimeError(f"Invalid operation transition {self.state} -> {state}")
        log.debug("Operation %s -> %s", self.state, state)
        self.state = state


async def stream_operation(
    channel: EventChannel,
    body: Callable[[Operation], Awaitable[Mapping[str, object]]],
    *,
    describe_error: Callable[[BaseException], str] = str,
) -> Operation:
    """Run ``body`` and terminate the channel with one ``complete`` or ``error`` event."""

    operation = Operation(channel, describe_error=describe_error)
    try:
        payload = await body(operation)
    except asyncio.CancelledError:
        operation.state = OperationState.FAILED
        _send_terminal(channel, ErrorEvent("Operation cancelled"))
        raise
    except Exception as exc:
        log.exception("Operation failed")
        operation.state = OperationState.FAILED
        _send_terminal(channel, ErrorEvent(describe_error(exc) or "Operation failed"))
    else:
        if operation.state not in TERMINAL_STATES:
            operation.state = OperationState.COMPLETED
        _send_terminal(channel, CompleteEvent(payload))
    finally:
        channel.finish()
    return operation


def _send_terminal(channel: EventChannel, event: CompleteEvent | ErrorEvent) -> None:
    if not channel.finished:
        channel.send(event)


class RowWork[T](Protocol):
    """One kind of per-row work: cache preparation plus a reconcile step."""

    noun: str

    async def prepare(self, reporter: ProgressReporter) -> None: ...

    async def process(self, item: T, *, row_number: int) -> RowOutcome: ...

    def label(self, item: T, row_number: int) -> str: ...


async def process_rows[T](
    operation: Operation,
    work: RowWork[T],
    items: Sequence[T],
    *,
    rows_start: int = 12,
    rows_end: int = 92,
) -> OperationResult:
    """Prepare ``work`` and reconcile ``items`` in order.

    The cancellation token is checked once before each row; a row that has
    started always runs to completion. A row that raises is counted as an
    error and processing continues.
    """

    tally = ResultTally(total=len(items))
    reporter = operation.reporter
    if not items:
        return tally.freeze()

    if operation.state is OperationState.STARTED:
        operation.transition(OperationState.COLLECTING_CACHES)
    await work.prepare(reporter)
    operation.transition(OperationState.PROCESSING_ROWS)

    span = max(rows_end - rows_start, 0)
    for index, item in enumerate(items):
        if operation.token.cancelled:
            tally.stopped = True
            reporter.log(LogLevel.WARN, f"{work.noun} stopped after {tally.processed} rows.")
            break
        row_number = index + 1
        try:
            outcome = await work.process(item, row_number=row_number)
        except Exception as exc:
            tally.record_error()
            message = operation.describe_error(exc)
            log.warning("Row %s failed: %s", row_number, message)
            label = work.label(item, row_number)
            reporter.log(LogLevel.ERROR, f'Row {row_number}: Failed for "{label}": {message}')
        else:
            tally.record(outcome)
            _report_outcome(reporter, outcome)
        reporter.progress(
            f"Processed row {row_number}/{len(items)}",
            rows_start + round(row_number / len(items) * span),
        )

    if tally.stopped:
        operation.transition(OperationState.ABORTED)
    else:
        reporter.progress(f"{work.noun} complete!", 100)
        operation.transition(OperationState.COMPLETED)
    return tally.freeze()


def _report_outcome(reporter: ProgressReporter, outcome: RowOutcome) -> None:
    if not outcome.quiet:
        level = LogLevel.WARN if outcome.status is RowStatus.SKIPPED else LogLevel.SUCCESS
        reporter.log(level, outcome.message, outcome.detail)
    for note in outcome.notes:
        reporter.log(LogLevel.INFO, note.message, note.detail)
    for warning in outcome.warnings:
        reporter.log(LogLevel.WARN, warning.message, warning.detail)


async def run_row_operation[T](
    channel: EventChannel,
    work: RowWork[T],
    items: Sequence[T],
    *,
    describe_error: Callable[[BaseException], str] = str,
) -> Operation:
    async def body(operation: Operation) -> Mapping[str, object]:
        result = await process_rows(operation, work, items)
        return result.to_dict()

    return await stream_operation(channel, body, describe_error=describe_error)

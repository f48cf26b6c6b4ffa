"""Cancellable, incrementally reported operations."""

from __future__ import annotations

from .channel import CancellationToken, EventChannel
from .events import (
    CompleteEvent,
    ErrorEvent,
    LogEvent,
    LogLevel,
    OperationEvent,
    ProgressEvent,
    is_terminal,
    to_sse,
)
from .operation import (
    Operation,
    OperationState,
    ProgressReporter,
    RowWork,
    process_rows,
    run_row_operation,
    stream_operation,
)

__all__ = [
    "CancellationToken",
    "CompleteEvent",
    "ErrorEvent",
    "EventChannel",
    "LogEvent",
    "LogLevel",
    "Operation",
    "OperationEvent",
    "OperationState",
    "ProgressEvent",
    "ProgressReporter",
    "RowWork",
    "is_terminal",
    "process_rows",
    "run_row_operation",
    "stream_operation",
    "to_sse",
]

"""Events emitted by long-running operations and their Server-Sent Event framing."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import TYPE_CHECKING, ClassVar

if TYPE_CHECKING:
    from collections.abc import Mapping


class LogLevel(StrEnum):
    INFO = "info"
    SUCCESS = "success"
    WARN = "warn"
    ERROR = "error"


def _now() -> str:
    return datetime.now(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass(frozen=True, slots=True)
class ProgressEvent:
    name: ClassVar[str] = "progress"

    message: str
    percent: int

    def payload(self) -> dict[str, object]:
        return {"message": self.message, "percent": self.percent}


@dataclass(frozen=True, slots=True)
class LogEvent:
    name: ClassVar[str] = "log"

    level: LogLevel
    message: str
    detail: str | None = None
    ts: str = field(default_factory=_now)

    def payload(self) -> dict[str, object]:
        return {
            "level": str(self.level),
            "message": self.message,
            "detail": self.detail,
            "ts": self.ts,
        }


@dataclass(frozen=True, slots=True)
class CompleteEvent:
    name: ClassVar[str] = "complete"

    data: Mapping[str, object]

    def payload(self) -> dict[str, object]:
        return dict(self.data)


@dataclass(frozen=True, slots=True)
class ErrorEvent:
    name: ClassVar[str] = "error"

    message: str

    def payload(self) -> dict[str, object]:
        return {"message": self.message}


type OperationEvent = ProgressEvent | LogEvent | CompleteEvent | ErrorEvent
type TerminalEvent = CompleteEvent | ErrorEvent


def is_terminal(event: OperationEvent) -> bool:
    return isinstance(event, CompleteEvent | ErrorEvent)


def to_sse(event: OperationEvent) -> str:
    return f"event: {event.name}\ndata: {json.dumps(event.payload())}\n\n"

"""Per-row outcomes and the operation summary."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import StrEnum

from .decisions import Decision


class RowStatus(StrEnum):
    CREATED = "created"
    UPDATED = "updated"
    DELETED = "deleted"
    SKIPPED = "skipped"


@dataclass(frozen=True, slots=True)
class RowMessage:
    message: str
    detail: str | None = None


@dataclass(slots=True)
class RowOutcome:
    """What happened to one row.

    ``message`` is the headline log line, suppressed when ``quiet``.
    ``warnings`` collects secondary-write failures and compensations;
    ``notes`` collects informational follow-ups.
    """

    status: RowStatus
    message: str
    detail: str | None = None
    decision: Decision | None = None
    identifier: str | None = None
    quiet: bool = False
    warnings: list[RowMessage] = field(default_factory=list[RowMessage])
    notes: list[RowMessage] = field(default_factory=list[RowMessage])

    def warn(self, message: str, detail: str | None = None) -> None:
        self.warnings.append(RowMessage(message, detail))

    def note(self, message: str, detail: str | None = None) -> None:
        self.notes.append(RowMessage(message, detail))


@dataclass(frozen=True, slots=True)
class OperationResult:
    total: int = 0
    processed: int = 0
    created: int = 0
    updated: int = 0
    deleted: int = 0
    skipped: int = 0
    errors: int = 0
    stopped: bool = False

    def to_dict(self) -> dict[str, int | bool]:
        return asdict(self)


@dataclass(slots=True)
class ResultTally:
    total: int
    processed: int = 0
    created: int = 0
    updated: int = 0
    deleted: int = 0
    skipped: int = 0
    errors: int = 0
    stopped: bool = False

    def record(self, outcome: RowOutcome) -> None:
        self.processed += 1
        match outcome.status:
            case RowStatus.CREATED:
                self.created += 1
            case RowStatus.UPDATED:
                self.updated += 1
            case RowStatus.DELETED:
                self.deleted += 1
            case RowStatus.SKIPPED:
                self.skipped += 1

    def record_error(self) -> None:
        self.processed += 1
        self.errors += 1

    def freeze(self) -> OperationResult:
        return OperationResult(
            total=self.total,
            processed=self.processed,
            created=self.created,
            updated=self.updated,
            deleted=self.deleted,
            skipped=self.skipped,
            errors=self.errors,
            stopped=self.stopped,
        )

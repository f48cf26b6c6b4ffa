"""Idempotent deletes of companies and notes."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, StrEnum
from typing import TYPE_CHECKING

from pbtools.domain.ports import CursorStrategy, OffsetStrategy, RemoteServiceError
from pbtools.domain.results import RowOutcome, RowStatus
from pbtools.domain.rows import cell, is_uuid

if TYPE_CHECKING:
    from collections.abc import Sequence

    from pbtools.config import OperationLimits
    from pbtools.domain.ports import PaginationStrategy, RemoteCollection
    from pbtools.domain.rows import Row

PROGRESS_LOG_EVERY = 50


class DeleteStatus(StrEnum):
    DELETED = "deleted"
    ALREADY_ABSENT = "already_absent"


class RecordKind(Enum):
    COMPANY = ("company", "companies", "/companies")
    NOTE = ("note", "notes", "/v2/notes")

    @property
    def noun(self) -> str:
        return self.value[0]

    @property
    def plural(self) -> str:
        return self.value[1]

    @property
    def collection_path(self) -> str:
        return self.value[2]

    def record_path(self, identifier: str) -> str:
        return f"{self.collection_path}/{identifier}"


async def delete_record(
    remote: RemoteCollection,
    path: str,
    *,
    description: str | None = None,
) -> DeleteStatus:
    """Delete ``path``; a record that is already gone counts as deleted."""

    try:
        await remote.request("DELETE", path, description=description)
    except RemoteServiceError as exc:
        if exc.is_not_found:
            return DeleteStatus.ALREADY_ABSENT
        raise
    return DeleteStatus.DELETED


def ids_from_rows(rows: Sequence[Row], column: str) -> list[str]:
    """Well-formed ids from ``column``, in row order; other cells are ignored."""

    return [value for value in (cell(row, column) for row in rows) if is_uuid(value)]


async def collect_ids(
    remote: RemoteCollection,
    kind: RecordKind,
    *,
    limits: OperationLimits,
) -> list[str]:
    strategy: PaginationStrategy
    if kind is RecordKind.COMPANY:
        strategy = OffsetStrategy(limit=limits.page_size)
    else:
        strategy = CursorStrategy()
    identifiers: list[str] = []
    async for batch in remote.paginate(
        kind.collection_path,
        strategy,
        max_records=limits.max_records,
        description=f"fetch {kind.plural} for deletion",
    ):
        identifiers.extend(
            record["id"] for record in batch if isinstance(record.get("id"), str)
        )
    return identifiers


@dataclass(slots=True)
class DeleteReconciler:
    """Deletes one record per item.

    In ``quiet`` mode individual deletions are not reported; a running count
    is noted every ``PROGRESS_LOG_EVERY`` deletions instead.
    """

    remote: RemoteCollection
    kind: RecordKind
    total: int
    quiet: bool = False
    deleted: int = 0

    async def reconcile(self, identifier: str, *, row_number: int) -> RowOutcome:
        status = await delete_record(
            self.remote,
            self.kind.record_path(identifier),
            description=f"delete {self.kind.noun} {identifier}",
        )
        self.deleted += 1
        if status is DeleteStatus.ALREADY_ABSENT:
            message = f"{self.kind.noun.capitalize()} {identifier} not found, already deleted"
        else:
            message = f"Deleted {self.kind.noun} {identifier}"
        outcome = RowOutcome(
            RowStatus.DELETED,
            message,
            identifier=identifier,
            quiet=self.quiet,
        )
        if self.quiet and self.deleted % PROGRESS_LOG_EVERY == 0:
            outcome.note(f"Deleted {self.deleted}/{self.total} {self.kind.plural}")
        return outcome

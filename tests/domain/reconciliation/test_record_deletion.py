from __future__ import annotations

import asyncio

import pytest

from pbtools.config import OperationLimits
from pbtools.domain.ports import RemoteServiceError
from pbtools.domain.reconciliation import (
    DeleteReconciler,
    DeleteStatus,
    RecordKind,
    collect_ids,
    delete_record,
    ids_from_rows,
)
from pbtools.domain.results import RowOutcome, RowStatus
from tests.helpers.remote import FakeRemote, api_error, cursor_pages, offset_pages

COMPANY_ID = "aaaaaaaa-0000-0000-0000-000000000001"
NOTE_ID = "dddddddd-0000-0000-0000-000000000001"


def test_missing_record_counts_as_deleted() -> None:
    remote = FakeRemote().on("DELETE", f"/companies/{COMPANY_ID}", api_error(404, "Not found"))
    reconciler = DeleteReconciler(remote, RecordKind.COMPANY, total=1)

    outcome = asyncio.run(reconciler.reconcile(COMPANY_ID, row_number=1))

    assert outcome.status is RowStatus.DELETED
    assert outcome.message == f"Company {COMPANY_ID} not found, already deleted"


def test_notes_are_deleted_through_v2() -> None:
    remote = FakeRemote().on("DELETE", f"/v2/notes/{NOTE_ID}", {})
    reconciler = DeleteReconciler(remote, RecordKind.NOTE, total=1)

    outcome = asyncio.run(reconciler.reconcile(NOTE_ID, row_number=1))

    assert outcome.message == f"Deleted note {NOTE_ID}"
    assert outcome.identifier == NOTE_ID


def test_other_failures_propagate() -> None:
    remote = FakeRemote().on("DELETE", f"/companies/{COMPANY_ID}", api_error(403, "Forbidden"))

    with pytest.raises(RemoteServiceError):
        asyncio.run(delete_record(remote, f"/companies/{COMPANY_ID}"))


def test_repeated_delete_is_idempotent() -> None:
    path = f"/companies/{COMPANY_ID}"
    remote = FakeRemote().on("DELETE", path, {}, api_error(404))

    async def run() -> list[DeleteStatus]:
        return [await delete_record(remote, path), await delete_record(remote, path)]

    assert asyncio.run(run()) == [DeleteStatus.DELETED, DeleteStatus.ALREADY_ABSENT]


def test_quiet_mode_reports_a_running_count() -> None:
    remote = FakeRemote().on("DELETE", "/companies/*", {})
    ids = [f"aaaaaaaa-0000-0000-0000-{index:012d}" for index in range(120)]
    reconciler = DeleteReconciler(remote, RecordKind.COMPANY, total=len(ids), quiet=True)

    async def run() -> list[RowOutcome]:
        return [
            await reconciler.reconcile(identifier, row_number=index + 1)
            for index, identifier in enumerate(ids)
        ]

    outcomes = asyncio.run(run())

    assert all(outcome.quiet for outcome in outcomes)
    notes = [note.message for outcome in outcomes for note in outcome.notes]
    assert notes == ["Deleted 50/120 companies", "Deleted 100/120 companies"]


def test_ids_from_rows_ignores_malformed_cells() -> None:
    rows = [
        {"uuid": f" {COMPANY_ID} "},
        {"uuid": ""},
        {"uuid": "42"},
        {"other": NOTE_ID},
        {"uuid": NOTE_ID.upper()},
    ]

    assert ids_from_rows(rows, "uuid") == [COMPANY_ID, NOTE_ID.upper()]


def test_collect_company_ids_pages_by_offset() -> None:
    records = [{"id": f"c-{index}"} for index in range(5)]
    remote = FakeRemote().on("GET", "/companies", offset_pages(records))

    ids = asyncio.run(collect_ids(remote, RecordKind.COMPANY, limits=OperationLimits(page_size=2)))

    assert ids == [f"c-{index}" for index in range(5)]
    assert [call.params["pageOffset"] for call in remote.calls if call.params] == ["0", "2", "4"]


def test_collect_note_ids_follows_cursors() -> None:
    pages = [[{"id": "n-1"}, {"id": "n-2"}], [{"id": "n-3"}, {"name": "no id"}]]
    remote = FakeRemote().on("GET", "/v2/notes", cursor_pages(pages))

    ids = asyncio.run(collect_ids(remote, RecordKind.NOTE, limits=OperationLimits()))

    assert ids == ["n-1", "n-2", "n-3"]
    assert remote.calls[1].params == {"pageCursor": "1"}

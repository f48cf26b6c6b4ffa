from __future__ import annotations

import asyncio
from datetime import date
from typing import TYPE_CHECKING, Any

import pytest

from pbtools.common.csvio import parse_csv
from pbtools.config import OperationLimits
from pbtools.domain.reconciliation import export_companies, export_notes
from pbtools.domain.reconciliation.exports import notes_export_filename
from tests.helpers.remote import FakeRemote, api_error, cursor_pages, offset_pages

if TYPE_CHECKING:
    from tests.helpers.remote import RecordedCall

LIMITS = OperationLimits(secondary_batch_delay=0.0, backfill_delay=0.0)
TODAY = date(2024, 3, 9)


def _custom_values(call: RecordedCall) -> dict[str, Any]:
    company_id = call.path.split("/")[2]
    if company_id == "c-2":
        raise api_error(404, "No value")
    return {"data": {"value": 1200 if company_id == "c-1" else 7}}


def test_company_export_includes_custom_field_columns() -> None:
    companies = [
        {
            "id": "c-1",
            "name": "Acme",
            "domain": "acme.com",
            "description": "Anvils, mostly",
            "source": {"origin": "salesforce", "record_id": "sf-1"},
        },
        {"id": "c-2", "name": "Globex", "domain": "globex.com"},
    ]
    remote = (
        FakeRemote()
        .on("GET", "/companies/custom-fields", offset_pages([{"id": "cf-1", "name": "ARR"}]))
        .on("GET", "/companies", offset_pages(companies))
        .on("GET", "/companies/*", _custom_values)
    )
    progress: list[int] = []

    result = asyncio.run(
        export_companies(
            remote,
            limits=LIMITS,
            on_progress=lambda _, percent: progress.append(percent),
            today=TODAY,
        )
    )

    assert result.filename == "companies-2024-03-09.csv"
    assert result.count == 2
    parsed = parse_csv(result.csv)
    assert parsed.headers == [
        "PB Company ID",
        "Company Name",
        "Domain",
        "Description",
        "Source Origin",
        "Source Record ID",
        "ARR",
    ]
    assert parsed.rows[0]["Description"] == "Anvils, mostly"
    assert parsed.rows[0]["Source Record ID"] == "sf-1"
    assert parsed.rows[0]["ARR"] == "1200"
    assert parsed.rows[1]["ARR"] == ""
    assert progress == sorted(progress)
    assert progress[-1] == 100


def test_empty_workspace_exports_nothing() -> None:
    remote = (
        FakeRemote()
        .on("GET", "/companies/custom-fields", offset_pages([]))
        .on("GET", "/companies", offset_pages([]))
    )

    result = asyncio.run(export_companies(remote, limits=LIMITS))

    assert result.to_dict() == {
        "csv": "",
        "filename": "companies.csv",
        "count": 0,
        "message": "No companies found in workspace.",
    }


def _note_remote(*, v1_sources: object) -> FakeRemote:
    notes = [
        {
            "id": "n-1",
            "type": "conversation",
            "createdAt": "2024-01-02T00:00:00Z",
            "fields": {
                "name": "Slow exports",
                "content": "<p>It is slow</p>",
                "displayUrl": "https://example.com/1",
                "owner": {"email": "pm@example.com"},
                "tags": [{"name": "export"}, {"name": "perf"}],
                "archived": True,
                "processed": "false",
                "source": {"origin": "zendesk", "id": "z-1"},
            },
            "relationships": {
                "data": [
                    {"type": "customer", "target": {"type": "user", "id": "u-1"}},
                    {"type": "link", "target": {"id": "e-1", "type": "link"}},
                    {"type": "link", "target": {"id": "e-2", "type": "link"}},
                ]
            },
        },
        {
            "id": "n-2",
            "fields": {"name": "Dark mode"},
            "relationships": {
                "data": [{"type": "customer", "target": {"type": "company", "id": "c-1"}}]
            },
        },
    ]
    return (
        FakeRemote()
        .on("GET", "/v2/notes", cursor_pages([notes]))
        .on("GET", "/users", offset_pages([{"id": "u-1", "email": "Jo@Example.com"}]))
        .on("GET", "/companies", offset_pages([{"id": "c-1", "domain": "acme.com"}]))
        .on("GET", "/notes", v1_sources)
    )


def test_note_export_resolves_customers_and_links() -> None:
    v1 = cursor_pages([[{"id": "n-2", "source": {"origin": "intercom", "record_id": "i-4"}}]])
    remote = _note_remote(v1_sources=v1)

    result = asyncio.run(
        export_notes(remote, limits=LIMITS, created_from="2024-01-01T00:00:00Z", today=TODAY)
    )

    assert result.count == 2
    assert result.filename == "notes-export-from-2024-01-01.csv"
    assert remote.calls_to("GET", "/v2/notes")[0].params == {"createdFrom": "2024-01-01T00:00:00Z"}
    first, second = parse_csv(result.csv).rows
    assert first["type"] == "conversation"
    assert first["user_email"] == "Jo@Example.com"
    assert first["company_domain"] == ""
    assert first["tags"] == "export, perf"
    assert first["archived"] == "TRUE"
    assert first["processed"] == "FALSE"
    assert first["linked_entities"] == "e-1,e-2"
    assert first["source_origin"] == "zendesk"
    assert first["source_record_id"] == "z-1"
    assert second["type"] == "simple"
    assert second["company_domain"] == "acme.com"
    assert second["source_origin"] == "intercom"
    assert second["source_record_id"] == "i-4"


def test_note_export_survives_failed_source_enrichment() -> None:
    remote = _note_remote(v1_sources=api_error(500, "v1 unavailable"))

    result = asyncio.run(export_notes(remote, limits=LIMITS, today=TODAY))

    assert result.count == 2
    assert result.filename == "notes-export-2024-03-09.csv"
    assert parse_csv(result.csv).rows[1]["source_origin"] == ""


def test_empty_note_export() -> None:
    remote = FakeRemote().on("GET", "/v2/notes", cursor_pages([[]]))

    result = asyncio.run(export_notes(remote, limits=LIMITS))

    assert result.to_dict() == {"csv": "", "filename": "notes-export.csv", "count": 0}


@pytest.mark.parametrize(
    ("created_from", "created_to", "expected"),
    [
        ("2024-01-01T00:00:00Z", "2024-02-01", "notes-export-2024-01-01-to-2024-02-01.csv"),
        (None, "2024-02-01T10:00:00Z", "notes-export-to-2024-02-01.csv"),
        (None, None, "notes-export-2024-03-09.csv"),
    ],
)
def test_notes_export_filename(
    created_from: str | None, created_to: str | None, expected: str
) -> None:
    assert notes_export_filename(created_from, created_to, today=TODAY) == expected

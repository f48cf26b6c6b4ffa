"""Workspace exports to CSV."""

from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass
from datetime import UTC, date, datetime
from logging import getLogger
from typing import TYPE_CHECKING, Any

from pbtools.common.csvio import generate_csv
from pbtools.domain.ports import CursorStrategy, OffsetStrategy, RemoteServiceError
from pbtools.domain.rows import is_truthy

from .caches import CacheKind, NoteSource, build_cross_reference_cache, build_note_source_map
from .catalogue import list_custom_fields
from .secondary_writes import Sleeper, run_in_batches

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Mapping

    from pbtools.config import OperationLimits
    from pbtools.domain.ports import Record, RemoteCollection

    from .caches import CrossReferenceCache
    from .catalogue import CustomFieldDefinition

log = getLogger(__name__)

type ProgressCallback = Callable[[str, int], None]

COMPANY_BASE_COLUMNS = (
    ("id", "PB Company ID"),
    ("name", "Company Name"),
    ("domain", "Domain"),
    ("description", "Description"),
    ("source_origin", "Source Origin"),
    ("source_record_id", "Source Record ID"),
)

NOTE_FIELDS = (
    "pb_id",
    "type",
    "title",
    "content",
    "display_url",
    "user_email",
    "company_domain",
    "owner_email",
    "creator_email",
    "tags",
    "source_origin",
    "source_record_id",
    "archived",
    "processed",
    "created_at",
    "updated_at",
    "linked_entities",
)


@dataclass(frozen=True, slots=True)
class ExportResult:
    csv: str
    filename: str
    count: int
    message: str | None = None

    def to_dict(self) -> dict[str, object]:
        payload: dict[str, object] = {
            "csv": self.csv,
            "filename": self.filename,
            "count": self.count,
        }
        if self.message:
            payload["message"] = self.message
        return payload


def _ignore_progress(message: str, percent: int) -> None:
    del message, percent


def _today() -> date:
    return datetime.now(UTC).date()


# Companies


async def export_companies(
    remote: RemoteCollection,
    *,
    limits: OperationLimits,
    on_progress: ProgressCallback = _ignore_progress,
    sleep: Sleeper = asyncio.sleep,
    today: date | None = None,
) -> ExportResult:
    on_progress("Fetching custom field definitions...", 5)
    custom_fields = await list_custom_fields(remote, limits=limits)
    on_progress(f"Found {len(custom_fields)} custom fields", 10)

    on_progress("Fetching companies...", 15)
    companies: list[Record] = []
    async for batch in remote.paginate(
        "/companies",
        OffsetStrategy(limit=limits.page_size),
        max_records=limits.max_records,
        description="fetch companies",
    ):
        companies.extend(batch)
        on_progress(f"Fetched {len(companies)} companies...", min(15 + len(companies) // 100, 45))

    if not companies:
        return ExportResult(
            csv="", filename="companies.csv", count=0, message="No companies found in workspace."
        )

    values: dict[tuple[str, str], object] = {}
    if custom_fields:
        on_progress(f"Fetching custom field values for {len(companies)} companies...", 48)
        values = await _fetch_custom_field_values(
            remote, companies, custom_fields, limits=limits, on_progress=on_progress, sleep=sleep
        )

    on_progress("Building CSV...", 90)
    fields = [key for key, _ in COMPANY_BASE_COLUMNS]
    headers = [label for _, label in COMPANY_BASE_COLUMNS]
    for custom_field in custom_fields:
        fields.append(f"custom__{custom_field.id}")
        headers.append(custom_field.name)
    rows = [_company_row(company, custom_fields, values) for company in companies]
    csv_text = generate_csv(rows, fields, headers)
    on_progress("Done!", 100)
    return ExportResult(
        csv=csv_text,
        filename=f"companies-{(today or _today()).isoformat()}.csv",
        count=len(companies),
    )


async def _fetch_custom_field_values(
    remote: RemoteCollection,
    companies: list[Record],
    custom_fields: list[CustomFieldDefinition],
    *,
    limits: OperationLimits,
    on_progress: ProgressCallback,
    sleep: Sleeper,
) -> dict[tuple[str, str], object]:
    pairs = [
        (str(company.get("id")), custom_field.id)
        for company in companies
        for custom_field in custom_fields
    ]

    def fetch(company_id: str, field_id: str) -> Callable[[], Awaitable[object]]:
        async def get_value() -> object:
            try:
                response = await remote.request(
                    "GET",
                    f"/companies/{company_id}/custom-fields/{field_id}/value",
                    description=f"fetch custom field {field_id}",
                )
            except RemoteServiceError as exc:
                # not set
                if exc.is_not_found:
                    return None
                log.warning(
                    "Custom field value fetch failed: company %s, field %s: %s",
                    company_id,
                    field_id,
                    exc.human_message,
                )
                return None
            data = response.get("data")
            return data.get("value") if isinstance(data, dict) else None

        return get_value

    values: dict[tuple[str, str], object] = {}
    chunk = max(limits.secondary_batch_size, 1) * 20
    for start in range(0, len(pairs), chunk):
        window = pairs[start : start + chunk]
        if start and limits.secondary_batch_delay > 0:
            await sleep(limits.secondary_batch_delay)
        results = await run_in_batches(
            [fetch(company_id, field_id) for company_id, field_id in window],
            batch_size=limits.secondary_batch_size,
            delay=limits.secondary_batch_delay,
            sleep=sleep,
        )
        for pair, result in zip(window, results, strict=True):
            if not isinstance(result, Exception):
                values[pair] = result
        done = start + len(window)
        on_progress(
            f"Custom fields: {done}/{len(pairs)} values fetched...",
            min(48 + round(done / len(pairs) * 40), 88),
        )
    return values


def _company_row(
    company: Record,
    custom_fields: list[CustomFieldDefinition],
    values: Mapping[tuple[str, str], object],
) -> dict[str, object]:
    source = company.get("source") if isinstance(company.get("source"), dict) else {}
    row: dict[str, object] = {
        "id": company.get("id") or "",
        "name": company.get("name") or "",
        "domain": company.get("domain") or "",
        "description": company.get("description") or "",
        "source_origin": source.get("origin") or company.get("sourceOrigin") or "",
        "source_record_id": source.get("record_id") or company.get("sourceRecordId") or "",
    }
    company_id = str(company.get("id"))
    for custom_field in custom_fields:
        value = values.get((company_id, custom_field.id))
        row[f"custom__{custom_field.id}"] = "" if value is None else value
    return row


# Notes


def notes_export_filename(
    created_from: str | None,
    created_to: str | None,
    *,
    today: date | None = None,
) -> str:
    if created_from and created_to:
        return f"notes-export-{created_from[:10]}-to-{created_to[:10]}.csv"
    if created_from:
        return f"notes-export-from-{created_from[:10]}.csv"
    if created_to:
        return f"notes-export-to-{created_to[:10]}.csv"
    return f"notes-export-{(today or _today()).isoformat()}.csv"


def build_note_row(
    note: Record,
    users: CrossReferenceCache,
    companies: CrossReferenceCache,
    sources: Mapping[str, NoteSource] | None,
) -> dict[str, str]:
    fields: dict[str, Any] = note.get("fields") if isinstance(note.get("fields"), dict) else {}
    relationships = note.get("relationships")
    links = relationships.get("data") if isinstance(relationships, dict) else None
    related: list[dict[str, Any]] = []
    if isinstance(links, list):
        related = [item for item in links if isinstance(item, dict)]

    user_email = ""
    company_domain = ""
    customer = next((item for item in related if item.get("type") == "customer"), None)
    target = customer.get("target") if customer else None
    if isinstance(target, dict):
        if target.get("type") == "user":
            user_email = users.label_for(str(target.get("id"))) or ""
        elif target.get("type") == "company":
            company_domain = companies.label_for(str(target.get("id"))) or ""

    linked = ",".join(
        str(item["target"]["id"])
        for item in related
        if item.get("type") == "link"
        and isinstance(item.get("target"), dict)
        and item["target"].get("id")
    )

    source = fields.get("source") if isinstance(fields.get("source"), dict) else {}
    origin = str(source.get("origin") or "")
    record_id = str(source.get("id") or source.get("recordId") or "")
    if not origin and sources is not None:
        fallback = sources.get(str(note.get("id")))
        if fallback is not None:
            origin = fallback.origin or origin
            record_id = record_id or fallback.record_id

    content = fields.get("content") or ""
    if not isinstance(content, str):
        content = json.dumps(content, separators=(",", ":"))

    tags = ", ".join(
        str(tag.get("name"))
        for tag in fields.get("tags") or []
        if isinstance(tag, dict) and tag.get("name")
    )

    def email_of(key: str) -> str:
        value = fields.get(key)
        return str(value.get("email") or "") if isinstance(value, dict) else ""

    return {
        "pb_id": str(note.get("id") or ""),
        "type": str(note.get("type") or "simple"),
        "title": str(fields.get("name") or ""),
        "content": content,
        "display_url": str(fields.get("displayUrl") or fields.get("display_url") or ""),
        "user_email": user_email,
        "company_domain": company_domain,
        "owner_email": email_of("owner"),
        "creator_email": email_of("creator"),
        "tags": tags,
        "source_origin": origin,
        "source_record_id": record_id,
        "archived": "TRUE" if _flag(fields.get("archived")) else "FALSE",
        "processed": "TRUE" if _flag(fields.get("processed")) else "FALSE",
        "created_at": str(note.get("createdAt") or ""),
        "updated_at": str(note.get("updatedAt") or ""),
        "linked_entities": linked,
    }


def _flag(value: object) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return value == 1
    return isinstance(value, str) and is_truthy(value)


async def export_notes(
    remote: RemoteCollection,
    *,
    limits: OperationLimits,
    created_from: str | None = None,
    created_to: str | None = None,
    on_progress: ProgressCallback = _ignore_progress,
    today: date | None = None,
) -> ExportResult:
    filtered = " (filtered by date)" if created_from or created_to else ""
    on_progress(f"Fetching notes from Productboard{filtered}...", 5)
    params: dict[str, str] = {}
    if created_from:
        params["createdFrom"] = created_from
    if created_to:
        params["createdTo"] = created_to

    notes: list[Record] = []
    async for batch in remote.paginate(
        "/v2/notes",
        CursorStrategy(),
        params=params,
        max_records=limits.max_records,
        max_pages=limits.max_pages,
        description="fetch notes",
    ):
        notes.extend(batch)
        on_progress(f"Fetched {len(notes)} notes...", min(5 + len(notes) // 100, 35))

    if not notes:
        return ExportResult(csv="", filename="notes-export.csv", count=0)

    on_progress(f"Fetched {len(notes)} notes. Building user cache...", 40)
    users = await build_cross_reference_cache(remote, CacheKind.USER_EMAIL, limits=limits)
    on_progress(f"User cache: {len(users)} users. Building company cache...", 50)
    companies = await build_cross_reference_cache(remote, CacheKind.COMPANY_DOMAIN, limits=limits)
    on_progress(
        f"Company cache: {len(companies)} companies. Enriching source data from v1...", 60
    )
    sources: dict[str, NoteSource] | None
    try:
        sources = await build_note_source_map(remote, limits=limits)
    except RemoteServiceError as exc:
        log.warning("v1 source enrichment failed: %s", exc.human_message)
        sources = None
        on_progress("Warning: v1 source enrichment failed, source fields may be incomplete.", 75)

    on_progress("Building CSV...", 85)
    rows = [build_note_row(note, users, companies, sources) for note in notes]
    return ExportResult(
        csv=generate_csv(rows, NOTE_FIELDS),
        filename=notes_export_filename(created_from, created_to, today=today),
        count=len(notes),
    )

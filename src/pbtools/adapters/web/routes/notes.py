"""Note import, export, delete and migration endpoints."""

from __future__ import annotations

from logging import getLogger
from typing import TYPE_CHECKING

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import StreamingResponse

from pbtools.app import (
    delete_all,
    delete_from_csv,
    export_notes_csv,
    find_migration_field,
    import_notes,
    prepare_migration_csv,
    preview_notes,
)
from pbtools.domain.mapping import ImportOptions
from pbtools.domain.ports import RemoteServiceError
from pbtools.domain.reconciliation import DEFAULT_REMAP_FIELD, RecordKind
from pbtools.streaming import EventChannel

from ..dependencies import Credentials, remote_failure, require_token
from ..schema import (
    DeleteByCsvRequest,
    DetectFieldRequest,
    MigratePrepRequest,
    NoteImportRequest,
    NotesExportRequest,
)
from ..sse import event_stream_response

if TYPE_CHECKING:
    from pbtools.domain.mapping import NoteMapping

log = getLogger(__name__)

router = APIRouter(prefix="/api/notes", tags=["notes"])


def _import_inputs(body: NoteImportRequest) -> tuple[str, NoteMapping]:
    if not body.csv_text or body.mapping is None:
        raise HTTPException(status_code=400, detail="Missing csvText or mapping")
    return body.csv_text, body.mapping


@router.post("/export")
async def run_export(
    client: Credentials, body: NotesExportRequest | None = None
) -> StreamingResponse:
    created_from = body.created_from if body else None
    created_to = body.created_to if body else None
    return event_stream_response(
        EventChannel(),
        lambda channel: export_notes_csv(
            channel, client=client, created_from=created_from, created_to=created_to
        ),
    )


@router.post("/import/preview", dependencies=[Depends(require_token)])
async def preview(body: NoteImportRequest) -> dict[str, object]:
    csv_text, mapping = _import_inputs(body)
    return preview_notes(csv_text, mapping).to_dict()


@router.post("/import/run")
async def run_import(body: NoteImportRequest, client: Credentials) -> StreamingResponse:
    csv_text, mapping = _import_inputs(body)
    options = ImportOptions(
        migration_mode=body.migration_mode,
        remap_field_name=(body.migration_field_name or "").strip() or DEFAULT_REMAP_FIELD,
    )
    return event_stream_response(
        EventChannel(),
        lambda channel: import_notes(channel, csv_text, mapping, client=client, options=options),
    )


@router.post("/delete/by-csv")
async def delete_by_csv(body: DeleteByCsvRequest, client: Credentials) -> StreamingResponse:
    if not body.csv_text or not body.uuid_column:
        raise HTTPException(status_code=400, detail="Missing csvText or uuidColumn")
    csv_text, column = body.csv_text, body.uuid_column
    return event_stream_response(
        EventChannel(),
        lambda channel: delete_from_csv(channel, RecordKind.NOTE, csv_text, column, client=client),
    )


@router.post("/delete/all")
async def delete_everything(client: Credentials) -> StreamingResponse:
    return event_stream_response(
        EventChannel(),
        lambda channel: delete_all(channel, RecordKind.NOTE, client=client),
    )


@router.post("/migrate-prep")
async def migrate_prep(body: MigratePrepRequest) -> dict[str, object]:
    if not body.csv_text:
        raise HTTPException(status_code=400, detail="Missing csvText")
    origin = (body.source_origin_name or "").strip()
    if not origin:
        raise HTTPException(status_code=400, detail="Missing sourceOriginName")
    return prepare_migration_csv(body.csv_text, origin)


@router.post("/detect-migration-field")
async def detect_migration_field(
    body: DetectFieldRequest, client: Credentials
) -> dict[str, object]:
    field_name = (body.field_name or "").strip()
    if not field_name:
        raise HTTPException(status_code=400, detail="Missing fieldName")
    try:
        found = await find_migration_field(client, field_name)
    except RemoteServiceError as exc:
        log.error("Looking up migration field %r failed: %s", field_name, exc)
        raise remote_failure(exc) from exc
    return {"found": found, "fieldName": field_name}

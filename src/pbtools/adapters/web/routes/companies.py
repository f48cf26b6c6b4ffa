"""Company import, export and delete endpoints."""

from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import StreamingResponse

from pbtools.app import (
    delete_all,
    delete_from_csv,
    export_companies_csv,
    import_companies,
    preview_companies,
)
from pbtools.domain.reconciliation import RecordKind
from pbtools.streaming import EventChannel

from ..dependencies import Credentials, require_token
from ..schema import CompanyImportRequest, DeleteByCsvRequest
from ..sse import event_stream_response

if TYPE_CHECKING:
    from pbtools.domain.mapping import CompanyMapping

import_router = APIRouter(prefix="/api/import", tags=["companies"])
export_router = APIRouter(prefix="/api/export", tags=["companies"])
companies_router = APIRouter(prefix="/api/companies", tags=["companies"])


def _import_inputs(body: CompanyImportRequest) -> tuple[str, CompanyMapping]:
    if not body.csv_text or body.mapping is None:
        raise HTTPException(status_code=400, detail="Missing csvText or mapping")
    return body.csv_text, body.mapping


@import_router.post("/preview", dependencies=[Depends(require_token)])
async def preview(body: CompanyImportRequest) -> dict[str, object]:
    csv_text, mapping = _import_inputs(body)
    return preview_companies(csv_text, mapping).to_dict()


@import_router.post("/run")
async def run_import(body: CompanyImportRequest, client: Credentials) -> StreamingResponse:
    csv_text, mapping = _import_inputs(body)
    return event_stream_response(
        EventChannel(),
        lambda channel: import_companies(
            channel,
            csv_text,
            mapping,
            client=client,
            clear_empty_fields=body.clear_empty_fields,
        ),
    )


@export_router.post("")
async def run_export(client: Credentials) -> StreamingResponse:
    return event_stream_response(
        EventChannel(), lambda channel: export_companies_csv(channel, client=client)
    )


@companies_router.post("/delete/by-csv")
async def delete_by_csv(body: DeleteByCsvRequest, client: Credentials) -> StreamingResponse:
    if not body.csv_text or not body.uuid_column:
        raise HTTPException(status_code=400, detail="Missing csvText or uuidColumn")
    csv_text, column = body.csv_text, body.uuid_column
    return event_stream_response(
        EventChannel(),
        lambda channel: delete_from_csv(
            channel, RecordKind.COMPANY, csv_text, column, client=client
        ),
    )


@companies_router.post("/delete/all")
async def delete_everything(client: Credentials) -> StreamingResponse:
    return event_stream_response(
        EventChannel(),
        lambda channel: delete_all(channel, RecordKind.COMPANY, client=client),
    )

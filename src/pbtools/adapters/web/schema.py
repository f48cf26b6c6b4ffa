"""Request bodies accepted by the HTTP API."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from pbtools.domain.mapping import CompanyMapping, NoteMapping


class ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class CompanyImportRequest(ApiModel):
    csv_text: str | None = None
    mapping: CompanyMapping | None = None
    clear_empty_fields: bool = False


class NoteImportRequest(ApiModel):
    csv_text: str | None = None
    mapping: NoteMapping | None = None
    migration_mode: bool = False
    migration_field_name: str | None = None


class DeleteByCsvRequest(ApiModel):
    csv_text: str | None = None
    uuid_column: str | None = None


class NotesExportRequest(ApiModel):
    created_from: str | None = None
    created_to: str | None = None


class MigratePrepRequest(ApiModel):
    csv_text: str | None = None
    source_origin_name: str | None = None


class DetectFieldRequest(ApiModel):
    field_name: str | None = None

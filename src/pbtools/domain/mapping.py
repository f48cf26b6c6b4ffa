"""Column mappings supplied with an import.

The models accept the camelCase keys used by the HTTP API as well as the
snake_case field names.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class MappingModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
        frozen=True,
    )


class CustomFieldMapping(MappingModel):
    csv_column: str
    field_id: str
    field_type: Literal["text", "number"] = "text"


class CompanyMapping(MappingModel):
    pb_id_column: str | None = None
    name_column: str | None = None
    domain_column: str | None = None
    desc_column: str | None = None
    source_origin_col: str | None = None
    source_record_col: str | None = None
    custom_fields: list[CustomFieldMapping] = Field(default_factory=list[CustomFieldMapping])


class NoteMapping(MappingModel):
    pb_id_column: str | None = None
    type_column: str | None = None
    title_column: str | None = None
    content_column: str | None = None
    display_url_column: str | None = None
    user_email_column: str | None = None
    company_domain_column: str | None = None
    owner_email_column: str | None = None
    creator_email_column: str | None = None
    tags_column: str | None = None
    source_origin_column: str | None = None
    source_record_id_column: str | None = None
    archived_column: str | None = None
    processed_column: str | None = None
    linked_entities_column: str | None = None


class ImportOptions(MappingModel):
    migration_mode: bool = False
    clear_empty_fields: bool = False
    remap_field_name: str = Field(default="original_uuid", alias="migrationFieldName")

"""Reconciliation of CSV rows against remote Productboard collections.

Flow per operation:
1) build the caches the rows need (domain, email, entity remap)
2) decide CREATE / UPDATE_BY_ID / UPDATE_BY_SECONDARY_KEY / SKIP per row
3) write the primary record, compensating once for a rejected optional field
4) run independent secondary writes whose failures only warn
"""

from __future__ import annotations

from .caches import (
    DEFAULT_REMAP_FIELD,
    CacheKind,
    CrossReferenceCache,
    EntityRemapCache,
    NoteSource,
    build_cross_reference_cache,
    build_entity_remap_cache,
    build_note_source_map,
    find_remap_field,
)
from .catalogue import CustomFieldDefinition, detect_remap_field, list_custom_fields
from .companies import CompanyReconciler
from .compensation import CompensatedWrite, write_with_compensation
from .deletion import (
    DeleteReconciler,
    DeleteStatus,
    RecordKind,
    collect_ids,
    delete_record,
    ids_from_rows,
)
from .exports import ExportResult, export_companies, export_notes
from .migration import PreparedMigration, prepare_migration_rows
from .notes import BackfillResult, LinkResult, NoteReconciler, backfill_note, link_note

__all__ = [
    "DEFAULT_REMAP_FIELD",
    "BackfillResult",
    "CacheKind",
    "CompanyReconciler",
    "CompensatedWrite",
    "CrossReferenceCache",
    "CustomFieldDefinition",
    "DeleteReconciler",
    "DeleteStatus",
    "EntityRemapCache",
    "ExportResult",
    "LinkResult",
    "NoteReconciler",
    "NoteSource",
    "PreparedMigration",
    "RecordKind",
    "backfill_note",
    "build_cross_reference_cache",
    "build_entity_remap_cache",
    "build_note_source_map",
    "collect_ids",
    "delete_record",
    "detect_remap_field",
    "export_companies",
    "export_notes",
    "find_remap_field",
    "ids_from_rows",
    "link_note",
    "list_custom_fields",
    "prepare_migration_rows",
    "write_with_compensation",
]

"""Application orchestration entry points.

Each long-running entry point streams its events into an ``EventChannel``
and always ends it with exactly one ``complete`` or ``error`` event. The
caller owns the channel and cancels the run by closing it.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from logging import getLogger
from typing import TYPE_CHECKING, ClassVar

from pbtools.adapters.productboard import ProductboardClient
from pbtools.common.csvio import generate_csv, parse_csv
from pbtools.domain.ports import describe_error
from pbtools.domain.reconciliation import (
    CacheKind,
    CompanyReconciler,
    DeleteReconciler,
    NoteReconciler,
    RecordKind,
    build_cross_reference_cache,
    build_entity_remap_cache,
    collect_ids,
    detect_remap_field,
    export_companies,
    export_notes,
    ids_from_rows,
    list_custom_fields,
    prepare_migration_rows,
)
from pbtools.domain.rows import cell
from pbtools.domain.validation import parse_failure_report, validate_companies, validate_notes
from pbtools.streaming import LogLevel, OperationState, process_rows, stream_operation

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Coroutine, Mapping

    from pbtools.adapters.http_resilience import ResilientClient
    from pbtools.config import OperationLimits, ProductboardConfig, ResilienceConfig
    from pbtools.domain.mapping import CompanyMapping, ImportOptions, NoteMapping
    from pbtools.domain.ports import RemoteCollection
    from pbtools.domain.reconciliation import CustomFieldDefinition
    from pbtools.domain.results import RowOutcome
    from pbtools.domain.rows import Row
    from pbtools.domain.validation import ValidationReport
    from pbtools.streaming import EventChannel, Operation, ProgressReporter

type ClientFactory = Callable[[ResilienceConfig], ResilientClient]
type Sleeper = Callable[[float], Awaitable[None]]
type OperationStarter = Callable[[EventChannel], Coroutine[object, object, Operation]]

log = getLogger(__name__)


@dataclass(slots=True)
class ClientOptions:
    """How to reach Productboard for one operation."""

    config: ProductboardConfig
    client_factory: ClientFactory | None = None
    sleep: Sleeper = asyncio.sleep

    def open(self) -> ProductboardClient:
        return ProductboardClient(
            self.config, client_factory=self.client_factory, sleep=self.sleep
        )

    @property
    def limits(self) -> OperationLimits:
        return self.config.limits


def _report_parse_errors(reporter: ProgressReporter, errors: list[str]) -> None:
    for message in errors:
        reporter.log(LogLevel.WARN, f"CSV parse issue: {message}")


# Validation


def preview_companies(csv_text: str, mapping: CompanyMapping) -> ValidationReport:
    parsed = parse_csv(csv_text)
    if parsed.errors:
        return parse_failure_report(parsed.errors)
    return validate_companies(parsed.rows, mapping)


def preview_notes(csv_text: str, mapping: NoteMapping) -> ValidationReport:
    parsed = parse_csv(csv_text)
    if parsed.errors:
        return parse_failure_report(parsed.errors)
    return validate_notes(parsed.rows, mapping)


# Imports


@dataclass(slots=True)
class CompanyImportWork:
    noun: ClassVar[str] = "Import"

    remote: RemoteCollection
    mapping: CompanyMapping
    limits: OperationLimits
    clear_empty_fields: bool = False
    sleep: Sleeper = asyncio.sleep
    reconciler: CompanyReconciler | None = field(default=None, init=False)

    async def prepare(self, reporter: ProgressReporter) -> None:
        reporter.progress("Building domain cache from Productboard...", 5)
        cache = await build_cross_reference_cache(
            self.remote, CacheKind.COMPANY_DOMAIN, limits=self.limits
        )
        reporter.progress(f"Domain cache built ({len(cache)} companies)", 12)
        self.reconciler = CompanyReconciler(
            remote=self.remote,
            mapping=self.mapping,
            cache=cache,
            limits=self.limits,
            clear_empty_fields=self.clear_empty_fields,
            sleep=self.sleep,
        )

    async def process(self, item: Row, *, row_number: int) -> RowOutcome:
        if self.reconciler is None:
            raise RuntimeError("Company import used before its caches were built")
        return await self.reconciler.reconcile(item, row_number=row_number)

    def label(self, item: Row, row_number: int) -> str:
        return (
            cell(item, self.mapping.name_column)
            or cell(item, self.mapping.domain_column).lower()
            or f"row {row_number}"
        )


async def import_companies(
    channel: EventChannel,
    csv_text: str,
    mapping: CompanyMapping,
    *,
    client: ClientOptions,
    clear_empty_fields: bool = False,
) -> Operation:
    log.info("Starting company import (clear_empty_fields=%s)", clear_empty_fields)

    async def body(operation: Operation) -> Mapping[str, object]:
        parsed = parse_csv(csv_text)
        _report_parse_errors(operation.reporter, parsed.errors)
        async with client.open() as remote:
            work = CompanyImportWork(
                remote=remote,
                mapping=mapping,
                limits=client.limits,
                clear_empty_fields=clear_empty_fields,
                sleep=client.sleep,
            )
            result = await process_rows(operation, work, parsed.rows)
        log.info(f"Finished company import: {result}")
        return result.to_dict()

    return await stream_operation(channel, body, describe_error=describe_error)


@dataclass(slots=True)
class NoteImportWork:
    noun: ClassVar[str] = "Import"

    remote: RemoteCollection
    mapping: NoteMapping
    limits: OperationLimits
    migration_mode: bool = False
    remap_field_name: str = "original_uuid"
    sleep: Sleeper = asyncio.sleep
    reconciler: NoteReconciler | None = field(default=None, init=False)

    async def prepare(self, reporter: ProgressReporter) -> None:
        remap = None
        if self.migration_mode and self.mapping.linked_entities_column:
            reporter.progress("Building migration entity cache...", 2)
            remap = await build_entity_remap_cache(
                self.remote, self.remap_field_name, limits=self.limits
            )
            if remap.field_id is None:
                reporter.log(
                    LogLevel.WARN,
                    f"Field '{self.remap_field_name}' not found, entity links will be skipped",
                )
            reporter.progress(f"Migration cache: {len(remap)} entity mappings found.", 5)
        self.reconciler = NoteReconciler(
            remote=self.remote,
            mapping=self.mapping,
            limits=self.limits,
            remap=remap,
            sleep=self.sleep,
        )

    async def process(self, item: Row, *, row_number: int) -> RowOutcome:
        if self.reconciler is None:
            raise RuntimeError("Note import used before its caches were built")
        return await self.reconciler.reconcile(item, row_number=row_number)

    def label(self, item: Row, row_number: int) -> str:
        return cell(item, self.mapping.title_column) or f"row {row_number}"


async def import_notes(
    channel: EventChannel,
    csv_text: str,
    mapping: NoteMapping,
    *,
    client: ClientOptions,
    options: ImportOptions,
) -> Operation:
    log.info(
        "Starting note import (migration_mode=%s, remap_field=%s)",
        options.migration_mode,
        options.remap_field_name,
    )

    async def body(operation: Operation) -> Mapping[str, object]:
        parsed = parse_csv(csv_text)
        _report_parse_errors(operation.reporter, parsed.errors)
        async with client.open() as remote:
            work = NoteImportWork(
                remote=remote,
                mapping=mapping,
                limits=client.limits,
                migration_mode=options.migration_mode,
                remap_field_name=options.remap_field_name,
                sleep=client.sleep,
            )
            result = await process_rows(operation, work, parsed.rows, rows_start=5, rows_end=95)
        log.info(f"Finished note import: {result}")
        return result.to_dict()

    return await stream_operation(channel, body, describe_error=describe_error)


# Deletes


@dataclass(slots=True)
class DeleteWork:
    noun: ClassVar[str] = "Delete"

    reconciler: DeleteReconciler

    async def prepare(self, reporter: ProgressReporter) -> None:
        del reporter

    async def process(self, item: str, *, row_number: int) -> RowOutcome:
        return await self.reconciler.reconcile(item, row_number=row_number)

    def label(self, item: str, row_number: int) -> str:
        del row_number
        return item


async def delete_from_csv(
    channel: EventChannel,
    kind: RecordKind,
    csv_text: str,
    id_column: str,
    *,
    client: ClientOptions,
) -> Operation:
    async def body(operation: Operation) -> Mapping[str, object]:
        parsed = parse_csv(csv_text)
        _report_parse_errors(operation.reporter, parsed.errors)
        identifiers = ids_from_rows(parsed.rows, id_column)
        async with client.open() as remote:
            work = DeleteWork(DeleteReconciler(remote, kind, total=len(identifiers)))
            result = await process_rows(
                operation, work, identifiers, rows_start=0, rows_end=100
            )
        return result.to_dict()

    return await stream_operation(channel, body, describe_error=describe_error)


async def delete_all(
    channel: EventChannel,
    kind: RecordKind,
    *,
    client: ClientOptions,
) -> Operation:
    log.warning("Deleting every %s in the workspace", kind.noun)

    async def body(operation: Operation) -> Mapping[str, object]:
        reporter = operation.reporter
        async with client.open() as remote:
            operation.transition(OperationState.COLLECTING_CACHES)
            reporter.progress(f"Collecting all {kind.noun} IDs...", 5)
            identifiers = await collect_ids(remote, kind, limits=client.limits)
            if identifiers:
                reporter.progress(
                    f"Found {len(identifiers)} {kind.plural}. Beginning deletion...", 10
                )
            work = DeleteWork(DeleteReconciler(remote, kind, total=len(identifiers), quiet=True))
            result = await process_rows(
                operation, work, identifiers, rows_start=10, rows_end=100
            )
        return result.to_dict()

    return await stream_operation(channel, body, describe_error=describe_error)


# Exports


async def export_companies_csv(channel: EventChannel, *, client: ClientOptions) -> Operation:
    async def body(operation: Operation) -> Mapping[str, object]:
        async with client.open() as remote:
            result = await export_companies(
                remote,
                limits=client.limits,
                on_progress=operation.reporter.progress,
                sleep=client.sleep,
            )
        return result.to_dict()

    return await stream_operation(channel, body, describe_error=describe_error)


async def export_notes_csv(
    channel: EventChannel,
    *,
    client: ClientOptions,
    created_from: str | None = None,
    created_to: str | None = None,
) -> Operation:
    async def body(operation: Operation) -> Mapping[str, object]:
        async with client.open() as remote:
            result = await export_notes(
                remote,
                limits=client.limits,
                created_from=created_from,
                created_to=created_to,
                on_progress=operation.reporter.progress,
            )
        return result.to_dict()

    return await stream_operation(channel, body, describe_error=describe_error)


# Lookups and offline transforms


async def fetch_custom_fields(client: ClientOptions) -> list[CustomFieldDefinition]:
    async with client.open() as remote:
        return await list_custom_fields(remote, limits=client.limits)


async def find_migration_field(client: ClientOptions, field_name: str) -> bool:
    async with client.open() as remote:
        return await detect_remap_field(remote, field_name)


def prepare_migration_csv(csv_text: str, source_origin: str) -> dict[str, object]:
    """Rewrite an exported notes CSV for import into another workspace; no remote calls."""

    parsed = parse_csv(csv_text)
    if not parsed.rows:
        return {"csv": "", "count": 0}
    prepared = prepare_migration_rows(parsed.headers, parsed.rows, source_origin)
    return {
        "csv": generate_csv(prepared.rows, prepared.headers),
        "count": prepared.count,
    }

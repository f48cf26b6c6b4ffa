from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys
from pathlib import Path
from signal import SIGINT
from typing import TYPE_CHECKING

from dotenv import load_dotenv

from pbtools.app import (
    ClientOptions,
    delete_all,
    delete_from_csv,
    export_companies_csv,
    export_notes_csv,
    fetch_custom_fields,
    find_migration_field,
    import_companies,
    import_notes,
    prepare_migration_csv,
    preview_companies,
    preview_notes,
)
from pbtools.common import configure_logging
from pbtools.config import get_productboard_config
from pbtools.domain.mapping import CompanyMapping, ImportOptions, NoteMapping
from pbtools.domain.reconciliation import DEFAULT_REMAP_FIELD, RecordKind
from pbtools.streaming import CompleteEvent, ErrorEvent, EventChannel, LogEvent, LogLevel

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

    from pydantic import BaseModel

    from pbtools.app import OperationStarter
    from pbtools.domain.validation import ValidationReport
    from pbtools.streaming import OperationEvent

log = logging.getLogger(__name__)

_LOG_LEVELS = {
    LogLevel.INFO: logging.INFO,
    LogLevel.SUCCESS: logging.INFO,
    LogLevel.WARN: logging.WARNING,
    LogLevel.ERROR: logging.ERROR,
}


class OperationFailedError(RuntimeError):
    """The operation ended with an ``error`` event."""


def _parse_args(argv: Sequence[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Bulk CSV tooling for Productboard")
    parser.add_argument(
        "--token",
        type=str,
        help="Productboard API token (defaults to PB_API_TOKEN)",
    )
    parser.add_argument(
        "--eu",
        action="store_true",
        default=None,
        help="Use the EU datacenter (defaults to PB_USE_EU)",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Log per-row progress and HTTP traffic",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("fields", help="List company custom fields")

    companies = subparsers.add_parser("companies", help="Company commands")
    company_sub = companies.add_subparsers(dest="companies_command", required=True)
    company_validate = company_sub.add_parser("validate", help="Check a CSV without writing")
    _add_import_inputs(company_validate)
    company_import = company_sub.add_parser("import", help="Create or update companies")
    _add_import_inputs(company_import)
    company_import.add_argument(
        "--clear-empty-fields",
        action="store_true",
        help="Delete custom field values whose CSV cell is empty",
    )
    _add_delete_args(
        company_sub.add_parser("delete", help="Delete companies by CSV or all of them"),
        "companies",
    )
    company_export = company_sub.add_parser("export", help="Export companies to CSV")
    _add_output(company_export)

    notes = subparsers.add_parser("notes", help="Note commands")
    note_sub = notes.add_subparsers(dest="notes_command", required=True)
    note_validate = note_sub.add_parser("validate", help="Check a CSV without writing")
    _add_import_inputs(note_validate)
    note_import = note_sub.add_parser("import", help="Create or update notes")
    _add_import_inputs(note_import)
    note_import.add_argument(
        "--migration-mode",
        action="store_true",
        help="Remap linked entity ids through the migration field",
    )
    note_import.add_argument(
        "--migration-field",
        type=str,
        default=DEFAULT_REMAP_FIELD,
        help="Hierarchy custom field holding source entity ids (default: %(default)s)",
    )
    _add_delete_args(
        note_sub.add_parser("delete", help="Delete notes by CSV or all of them"),
        "notes",
    )
    note_export = note_sub.add_parser("export", help="Export notes to CSV")
    note_export.add_argument("--created-from", type=str, help="Only notes created on or after")
    note_export.add_argument("--created-to", type=str, help="Only notes created on or before")
    _add_output(note_export)
    migrate = note_sub.add_parser(
        "migrate-prep",
        help="Rewrite an exported notes CSV for import into another workspace",
    )
    migrate.add_argument("--csv", type=str, required=True, help="Exported notes CSV")
    migrate.add_argument(
        "--source-origin",
        type=str,
        required=True,
        help="Value written to source_origin on every row",
    )
    _add_output(migrate)
    detect = note_sub.add_parser("detect-field", help="Check that the migration field exists")
    detect.add_argument(
        "--name",
        type=str,
        default=DEFAULT_REMAP_FIELD,
        help="Field name to look up (default: %(default)s)",
    )

    serve = subparsers.add_parser("serve", help="Run the HTTP API")
    serve.add_argument("--host", type=str, default="127.0.0.1")
    serve.add_argument("--port", type=int, default=int(os.environ.get("PORT", "8080")))

    return parser.parse_args(list(argv))


def _add_import_inputs(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--csv", type=str, required=True, help="CSV file to read")
    parser.add_argument(
        "--mapping",
        type=str,
        required=True,
        help="JSON file mapping record attributes to CSV columns",
    )


def _add_delete_args(delete: argparse.ArgumentParser, noun: str) -> None:
    delete.add_argument("--csv", type=str, help="CSV file listing the ids to delete")
    delete.add_argument("--uuid-column", type=str, help="Column holding the ids")
    delete.add_argument("--all", action="store_true", help=f"Delete every {noun[:-1]}")
    delete.add_argument("--yes", action="store_true", help="Confirm --all")


def _add_output(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--output", type=str, help="Write the CSV here instead of stdout")


def _check_delete_args(args: argparse.Namespace) -> None:
    if args.all:
        if args.csv:
            raise ValueError("Use either --all or --csv, not both")
        if not args.yes:
            raise ValueError("Refusing to delete everything without --yes")
    elif not args.csv or not args.uuid_column:
        raise ValueError("Deleting by CSV needs --csv and --uuid-column")


def _read_text(path: str) -> str:
    return Path(path).read_text(encoding="utf-8")


def _load_mapping[M: BaseModel](path: str, model: type[M]) -> M:
    return model.model_validate_json(_read_text(path))


def _write_output(text: str, path: str | None) -> None:
    if path:
        Path(path).write_text(text, encoding="utf-8", newline="")
        log.info("Wrote %s", path)
    else:
        sys.stdout.write(text)


def _client_options(args: argparse.Namespace) -> ClientOptions:
    return ClientOptions(get_productboard_config(token=args.token, use_eu=args.eu))


def _relay(event: OperationEvent) -> None:
    if isinstance(event, LogEvent):
        message = f"{event.message} ({event.detail})" if event.detail else event.message
        log.log(_LOG_LEVELS[event.level], message)
    elif isinstance(event, ErrorEvent):
        log.error(event.message)
    elif not isinstance(event, CompleteEvent):
        log.debug("[%3d%%] %s", event.percent, event.message)


async def _drive(start: OperationStarter) -> Mapping[str, object]:
    channel = EventChannel()
    loop = asyncio.get_running_loop()
    loop.add_signal_handler(SIGINT, channel.token.cancel, "interrupted by user")
    try:
        task = asyncio.create_task(start(channel))
        terminal: CompleteEvent | ErrorEvent | None = None
        async for event in channel.events():
            _relay(event)
            if isinstance(event, CompleteEvent | ErrorEvent):
                terminal = event
        await task
    finally:
        loop.remove_signal_handler(SIGINT)
    if isinstance(terminal, CompleteEvent):
        return terminal.data
    raise OperationFailedError(terminal.message if terminal else "Operation ended without a result")


def _run_operation(start: OperationStarter) -> Mapping[str, object]:
    return asyncio.run(_drive(start))


def _log_summary(payload: Mapping[str, object]) -> int:
    log.info(
        "Done: total=%s, created=%s, updated=%s, deleted=%s, skipped=%s, errors=%s",
        payload.get("total"),
        payload.get("created"),
        payload.get("updated"),
        payload.get("deleted"),
        payload.get("skipped"),
        payload.get("errors"),
    )
    if payload.get("stopped"):
        log.warning("Stopped before every row was processed")
        return 1
    return 1 if payload.get("errors") else 0


def _log_report(report: ValidationReport) -> int:
    for issue in report.errors:
        log.error("Row %s [%s]: %s", issue.row, issue.field or "-", issue.message)
    for issue in report.warnings:
        log.warning("Row %s [%s]: %s", issue.row, issue.field or "-", issue.message)
    log.info(
        "%s rows checked: %s errors, %s warnings",
        report.total_rows,
        len(report.errors),
        len(report.warnings),
    )
    return 0 if report.valid else 1


def _write_export(payload: Mapping[str, object], output: str | None) -> int:
    count = payload.get("count", 0)
    if not count:
        log.info(str(payload.get("message") or "Nothing to export"))
        return 0
    _write_output(str(payload["csv"]), output)
    log.info("Exported %s records (%s)", count, payload.get("filename"))
    return 0


def _run_companies(args: argparse.Namespace) -> int:
    command = args.companies_command
    if command == "validate":
        mapping = _load_mapping(args.mapping, CompanyMapping)
        return _log_report(preview_companies(_read_text(args.csv), mapping))
    client = _client_options(args)
    if command == "import":
        csv_text = _read_text(args.csv)
        mapping = _load_mapping(args.mapping, CompanyMapping)
        payload = _run_operation(
            lambda channel: import_companies(
                channel,
                csv_text,
                mapping,
                client=client,
                clear_empty_fields=args.clear_empty_fields,
            )
        )
        return _log_summary(payload)
    if command == "delete":
        return _run_delete(args, RecordKind.COMPANY, client)
    if command == "export":
        payload = _run_operation(lambda channel: export_companies_csv(channel, client=client))
        return _write_export(payload, args.output)
    raise ValueError(f"Unsupported companies command: {command}")


def _run_notes(args: argparse.Namespace) -> int:
    command = args.notes_command
    if command == "validate":
        mapping = _load_mapping(args.mapping, NoteMapping)
        return _log_report(preview_notes(_read_text(args.csv), mapping))
    if command == "migrate-prep":
        prepared = prepare_migration_csv(_read_text(args.csv), args.source_origin)
        if not prepared["count"]:
            log.info("No rows to prepare")
            return 0
        _write_output(str(prepared["csv"]), args.output)
        log.info("Prepared %s rows for migration", prepared["count"])
        return 0
    client = _client_options(args)
    if command == "import":
        csv_text = _read_text(args.csv)
        mapping = _load_mapping(args.mapping, NoteMapping)
        options = ImportOptions(
            migration_mode=args.migration_mode,
            remap_field_name=args.migration_field,
        )
        payload = _run_operation(
            lambda channel: import_notes(channel, csv_text, mapping, client=client, options=options)
        )
        return _log_summary(payload)
    if command == "delete":
        return _run_delete(args, RecordKind.NOTE, client)
    if command == "export":
        payload = _run_operation(
            lambda channel: export_notes_csv(
                channel,
                client=client,
                created_from=args.created_from,
                created_to=args.created_to,
            )
        )
        return _write_export(payload, args.output)
    if command == "detect-field":
        found = asyncio.run(find_migration_field(client, args.name))
        log.info("Field %r %s", args.name, "found" if found else "not found")
        return 0 if found else 1
    raise ValueError(f"Unsupported notes command: {command}")


def _run_delete(args: argparse.Namespace, kind: RecordKind, client: ClientOptions) -> int:
    if args.all:
        payload = _run_operation(lambda channel: delete_all(channel, kind, client=client))
    else:
        csv_text = _read_text(args.csv)
        payload = _run_operation(
            lambda channel: delete_from_csv(
                channel, kind, csv_text, args.uuid_column, client=client
            )
        )
    return _log_summary(payload)


def _run_fields(args: argparse.Namespace) -> int:
    fields = asyncio.run(fetch_custom_fields(_client_options(args)))
    sys.stdout.write(json.dumps({"fields": [field.to_dict() for field in fields]}, indent=2))
    sys.stdout.write("\n")
    return 0


def _serve(args: argparse.Namespace) -> int:
    import uvicorn

    from pbtools.adapters.web import create_app

    uvicorn.run(create_app(), host=args.host, port=args.port)
    return 0


def main(argv: Sequence[str] | None = None) -> None:
    """Main application entry point."""
    load_dotenv()
    parsed_args: argparse.Namespace
    args_list = list(argv) if argv is not None else list(sys.argv[1:])
    try:
        parsed_args = _parse_args(args_list)
        configure_logging(level=logging.DEBUG if parsed_args.verbose else logging.INFO)
        if "delete" in {
            getattr(parsed_args, "companies_command", None),
            getattr(parsed_args, "notes_command", None),
        }:
            _check_delete_args(parsed_args)
    except ValueError:
        log.exception("CLI validation error")
        sys.exit(2)

    try:
        if parsed_args.command == "fields":
            code = _run_fields(parsed_args)
        elif parsed_args.command == "companies":
            code = _run_companies(parsed_args)
        elif parsed_args.command == "notes":
            code = _run_notes(parsed_args)
        elif parsed_args.command == "serve":
            code = _serve(parsed_args)
        else:
            raise ValueError(f"Unsupported command: {parsed_args.command}")  # noqa: TRY301
    except Exception:
        log.exception("Fatal error")
        sys.exit(1)

    if code:
        sys.exit(code)


if __name__ == "__main__":
    main()

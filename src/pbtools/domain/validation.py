"""Offline validation of CSV rows against a mapping.

Nothing here talks to the remote service; the checks mirror what the service
would reject so that a whole dataset can be vetted before an import starts.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from .rows import DOMAIN_RE, EMAIL_RE, cell, is_uuid, parse_number, split_list

if TYPE_CHECKING:
    from collections.abc import Sequence

    from .mapping import CompanyMapping, NoteMapping
    from .rows import Row

SUPPORTED_HTML_TAGS = frozenset(
    {
        "h1", "h2", "p", "b", "i", "u", "code", "ul", "ol", "li",
        "a", "hr", "pre", "blockquote", "s", "span",
    }
)  # fmt: skip
NOTE_TYPES = ("simple", "conversation", "opportunity")
MAX_TEXT_FIELD_LENGTH = 1024

_HTML_TAG_RE = re.compile(r"</?([a-z][a-z0-9]*)\b", re.IGNORECASE)


@dataclass(frozen=True, slots=True)
class ValidationIssue:
    row: int | None
    field: str | None
    message: str

    def to_dict(self) -> dict[str, object]:
        return {"row": self.row, "field": self.field, "message": self.message}


@dataclass(slots=True)
class ValidationReport:
    total_rows: int
    errors: list[ValidationIssue] = field(default_factory=list[ValidationIssue])
    warnings: list[ValidationIssue] = field(default_factory=list[ValidationIssue])

    @property
    def valid(self) -> bool:
        return not self.errors

    def error(self, row: int | None, field_name: str | None, message: str) -> None:
        self.errors.append(ValidationIssue(row, field_name, message))

    def warn(self, row: int | None, field_name: str | None, message: str) -> None:
        self.warnings.append(ValidationIssue(row, field_name, message))

    def to_dict(self) -> dict[str, object]:
        return {
            "valid": self.valid,
            "totalRows": self.total_rows,
            "errors": [issue.to_dict() for issue in self.errors],
            "warnings": [issue.to_dict() for issue in self.warnings],
        }


def parse_failure_report(errors: Sequence[str]) -> ValidationReport:
    """Report for a dataset that could not be parsed at all."""

    report = ValidationReport(total_rows=0)
    for message in errors:
        report.error(None, None, message)
    return report


def find_unsupported_html_tags(text: str) -> list[str]:
    found: list[str] = []
    for match in _HTML_TAG_RE.finditer(text):
        tag = match.group(1).lower()
        if tag not in SUPPORTED_HTML_TAGS and tag not in found:
            found.append(tag)
    return found


def validate_companies(rows: Sequence[Row], mapping: CompanyMapping) -> ValidationReport:
    report = ValidationReport(total_rows=len(rows))
    domains_seen: set[str] = set()

    for index, row in enumerate(rows):
        row_number = index + 1
        name = cell(row, mapping.name_column)
        domain = cell(row, mapping.domain_column)
        pb_id = cell(row, mapping.pb_id_column)
        has_valid_id = is_uuid(pb_id)

        if not name:
            report.error(row_number, mapping.name_column, "Company name is required")
        if not domain and not has_valid_id:
            report.error(
                row_number, mapping.domain_column, "Domain is required when no UUID is provided"
            )

        # Rows with an id are patched directly, so only id-less rows compete for a domain.
        if domain and not has_valid_id:
            key = domain.lower()
            if key in domains_seen:
                report.error(
                    row_number,
                    mapping.domain_column,
                    f"Duplicate domain '{key}': add a UUID column to PATCH these rows individually",
                )
            domains_seen.add(key)

        if pb_id and not has_valid_id:
            report.error(row_number, mapping.pb_id_column, f"Invalid UUID format: '{pb_id}'")

        description = cell(row, mapping.desc_column)
        if description:
            bad_tags = find_unsupported_html_tags(description)
            if bad_tags:
                report.error(
                    row_number,
                    mapping.desc_column,
                    "Description contains unsupported HTML tag(s): "
                    f"<{'>, <'.join(bad_tags)}>. Productboard will reject this row. "
                    f"Supported tags: {', '.join(sorted(SUPPORTED_HTML_TAGS))}.",
                )

        for custom_field in mapping.custom_fields:
            value = cell(row, custom_field.csv_column)
            if not value:
                continue
            if custom_field.field_type == "number" and parse_number(value) is None:
                report.error(
                    row_number,
                    custom_field.csv_column,
                    f"'{custom_field.csv_column}' must be a number (got '{value}')",
                )
            if custom_field.field_type == "text" and len(value) > MAX_TEXT_FIELD_LENGTH:
                report.error(
                    row_number,
                    custom_field.csv_column,
                    f"'{custom_field.csv_column}' exceeds {MAX_TEXT_FIELD_LENGTH} characters",
                )

    return report


def validate_notes(rows: Sequence[Row], mapping: NoteMapping) -> ValidationReport:
    report = ValidationReport(total_rows=len(rows))
    ids_seen: set[str] = set()

    for index, row in enumerate(rows):
        row_number = index + 1
        pb_id = cell(row, mapping.pb_id_column)
        user_email = cell(row, mapping.user_email_column)
        company_domain = cell(row, mapping.company_domain_column)
        note_type = cell(row, mapping.type_column)
        source_origin = cell(row, mapping.source_origin_column)
        source_record_id = cell(row, mapping.source_record_id_column)
        linked_entities = cell(row, mapping.linked_entities_column)

        if not cell(row, mapping.title_column):
            report.error(row_number, "title", "Title is required")

        if pb_id and not is_uuid(pb_id):
            report.error(row_number, "pb_id", "pb_id must be a valid UUID")
        elif pb_id:
            if pb_id.lower() in ids_seen:
                report.error(row_number, "pb_id", f"Duplicate pb_id: {pb_id}")
            ids_seen.add(pb_id.lower())

        for field_name, column in (
            ("user_email", mapping.user_email_column),
            ("owner_email", mapping.owner_email_column),
            ("creator_email", mapping.creator_email_column),
        ):
            value = cell(row, column)
            if value and not EMAIL_RE.match(value):
                report.error(row_number, field_name, "Invalid email format")

        if company_domain and not DOMAIN_RE.match(company_domain):
            report.error(row_number, "company_domain", "Invalid domain format")

        if note_type and note_type not in NOTE_TYPES:
            report.error(
                row_number, "type", 'Type must be "simple", "conversation", or "opportunity"'
            )

        if source_record_id and not source_origin:
            report.error(row_number, "source_record_id", "source_record_id requires source_origin")
        if source_origin and not source_record_id:
            report.warn(
                row_number,
                "source_origin",
                "source_record_id missing, it will be generated on import",
            )

        if linked_entities:
            bad = [value for value in split_list(linked_entities) if not is_uuid(value)]
            if bad:
                report.error(
                    row_number,
                    "linked_entities",
                    f"Invalid UUID(s) in linked_entities: {', '.join(bad)}",
                )

        if user_email and company_domain:
            report.warn(
                row_number,
                "user_email",
                "Both user_email and company_domain provided, user_email takes priority",
            )

    return report

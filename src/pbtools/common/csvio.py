"""CSV text <-> row conversion."""

from __future__ import annotations

import csv
import io
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping, Sequence

type Row = dict[str, str]


@dataclass(slots=True)
class ParsedCsv:
    headers: list[str] = field(default_factory=list[str])
    rows: list[Row] = field(default_factory=list[Row])
    errors: list[str] = field(default_factory=list[str])


def parse_csv(text: str) -> ParsedCsv:
    """Parse CSV text with a header row into rows keyed by the trimmed header.

    Blank lines are skipped. Rows with a different field count than the header
    are kept (missing cells become empty strings) and reported in ``errors``.
    """

    text = text.lstrip("\ufeff").strip()
    parsed = ParsedCsv()
    if not text:
        return parsed

    reader = csv.reader(io.StringIO(text, newline=""))
    try:
        header_record = next(reader)
    except csv.Error as exc:
        parsed.errors.append(f"Header: {exc}")
        return parsed
    parsed.headers = [header.strip() for header in header_record]

    line = 1
    try:
        for record in reader:
            line += 1
            if not any(value.strip() for value in record):
                continue
            if len(record) != len(parsed.headers):
                parsed.errors.append(
                    f"Row {len(parsed.rows) + 1}: expected {len(parsed.headers)} fields, "
                    f"found {len(record)}"
                )
            parsed.rows.append(
                {
                    header: record[index] if index < len(record) else ""
                    for index, header in enumerate(parsed.headers)
                }
            )
    except csv.Error as exc:
        parsed.errors.append(f"Line {line + 1}: {exc}")
    return parsed


def generate_csv(
    rows: Iterable[Mapping[str, object]],
    fields: Sequence[str],
    headers: Sequence[str] | None = None,
) -> str:
    """Render ``rows`` as CSV text; ``headers`` renames ``fields`` in the header line."""

    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\r\n")
    writer.writerow(list(headers) if headers is not None else list(fields))
    for row in rows:
        writer.writerow(["" if row.get(name) is None else str(row.get(name)) for name in fields])
    return buffer.getvalue()

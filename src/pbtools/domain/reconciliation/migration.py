"""Rewrite an exported notes dataset so it can be imported into another workspace."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Sequence

    from pbtools.domain.rows import Row

ID_COLUMN = "pb_id"
ORIGIN_COLUMN = "source_origin"
RECORD_ID_COLUMN = "source_record_id"


@dataclass(slots=True)
class PreparedMigration:
    headers: list[str]
    rows: list[Row]
    count: int


def prepare_migration_rows(
    headers: Sequence[str],
    rows: Sequence[Row],
    source_origin: str,
) -> PreparedMigration:
    """Move each note id into the source fields and clear it.

    The old id becomes ``source_record_id`` under ``source_origin`` so the
    notes are created fresh in the target workspace but stay traceable.
    """

    origin = source_origin.strip()
    if not origin:
        raise ValueError("Source origin name must not be blank")

    out_headers = list(headers)
    if RECORD_ID_COLUMN not in out_headers:
        out_headers.append(RECORD_ID_COLUMN)
    if ORIGIN_COLUMN not in out_headers:
        out_headers.insert(out_headers.index(RECORD_ID_COLUMN), ORIGIN_COLUMN)

    prepared: list[Row] = []
    count = 0
    for row in rows:
        out = dict(row)
        note_id = (out.get(ID_COLUMN) or "").strip()
        if note_id:
            out[RECORD_ID_COLUMN] = note_id
            out[ORIGIN_COLUMN] = origin
            out[ID_COLUMN] = ""
            count += 1
        prepared.append(out)
    return PreparedMigration(headers=out_headers, rows=prepared, count=count)

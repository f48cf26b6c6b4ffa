"""Helpers for reading CSV rows and recognising identifiers."""

from __future__ import annotations

import math
import re
from typing import TYPE_CHECKING

from pbtools.common.csvio import Row

if TYPE_CHECKING:
    from collections.abc import Mapping

UUID_RE = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$",
    re.IGNORECASE,
)
EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
DOMAIN_RE = re.compile(r"^[a-zA-Z0-9][a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")

_TRUTHY = frozenset({"true", "1"})
_INTEGER_RE = re.compile(r"^[+-]?\d+$")


def cell(row: Mapping[str, str], column: str | None) -> str:
    """Trimmed value of ``column``; empty when the column is unmapped or absent."""

    if not column:
        return ""
    value = row.get(column)
    return value.strip() if isinstance(value, str) else ""


def is_uuid(value: str | None) -> bool:
    return bool(value) and UUID_RE.match(value.strip()) is not None


def is_truthy(value: str) -> bool:
    return value.strip().lower() in _TRUTHY


def normalize_url(value: str) -> str:
    if not value or value.startswith(("http://", "https://")):
        return value
    return f"https://{value}"


def split_list(value: str) -> list[str]:
    """Split a comma separated cell, dropping blanks."""

    return [part.strip() for part in value.split(",") if part.strip()]


def parse_number(value: str) -> int | float | None:
    """Finite number from a cell, ``None`` when it is not one."""

    try:
        number = float(value)
    except ValueError:
        return None
    if not math.isfinite(number):
        return None
    if _INTEGER_RE.match(value.strip()):
        return int(value.strip())
    return number


__all__ = [
    "DOMAIN_RE",
    "EMAIL_RE",
    "UUID_RE",
    "Row",
    "cell",
    "is_truthy",
    "is_uuid",
    "normalize_url",
    "parse_number",
    "split_list",
]

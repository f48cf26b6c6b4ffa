from __future__ import annotations

from .csvio import ParsedCsv, Row, generate_csv, parse_csv
from .logging import configure_logging

__all__ = [
    "ParsedCsv",
    "Row",
    "configure_logging",
    "generate_csv",
    "parse_csv",
]

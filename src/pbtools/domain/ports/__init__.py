"""Domain port definitions for adapters."""

from __future__ import annotations

from .pagination import (
    CursorStrategy,
    OffsetStrategy,
    PageRequest,
    PaginationStrategy,
    extract_cursor,
    iterate_pages,
)
from .remote import Record, RemoteCollection, RemoteServiceError, describe_error

__all__ = [
    "CursorStrategy",
    "OffsetStrategy",
    "PageRequest",
    "PaginationStrategy",
    "Record",
    "RemoteCollection",
    "RemoteServiceError",
    "describe_error",
    "extract_cursor",
    "iterate_pages",
]

"""HTTP routes grouped by resource."""

from __future__ import annotations

from .companies import companies_router, export_router, import_router
from .fields import router as fields_router
from .notes import router as notes_router

__all__ = [
    "companies_router",
    "export_router",
    "fields_router",
    "import_router",
    "notes_router",
]

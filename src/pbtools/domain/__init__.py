from __future__ import annotations

from .decisions import Decision, ResolvedTarget, decide
from .mapping import CompanyMapping, CustomFieldMapping, ImportOptions, NoteMapping
from .results import OperationResult, ResultTally, RowMessage, RowOutcome, RowStatus
from .validation import ValidationIssue, ValidationReport, validate_companies, validate_notes

__all__ = [
    "CompanyMapping",
    "CustomFieldMapping",
    "Decision",
    "ImportOptions",
    "NoteMapping",
    "OperationResult",
    "ResolvedTarget",
    "ResultTally",
    "RowMessage",
    "RowOutcome",
    "RowStatus",
    "ValidationIssue",
    "ValidationReport",
    "decide",
    "validate_companies",
    "validate_notes",
]

"""Create-or-update decision for a single row."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING

from .rows import is_uuid

if TYPE_CHECKING:
    from .reconciliation.caches import CrossReferenceCache


class Decision(StrEnum):
    CREATE = "create"
    UPDATE_BY_ID = "update_by_id"
    UPDATE_BY_SECONDARY_KEY = "update_by_secondary_key"
    SKIP = "skip"


@dataclass(frozen=True, slots=True)
class ResolvedTarget:
    decision: Decision
    target_id: str | None = None
    reason: str | None = None

    @property
    def is_update(self) -> bool:
        return self.decision in (Decision.UPDATE_BY_ID, Decision.UPDATE_BY_SECONDARY_KEY)


def decide(
    identifier: str,
    secondary_key: str,
    cache: CrossReferenceCache | None,
    *,
    missing: str | None = None,
) -> ResolvedTarget:
    """Pick the write for a row.

    A well-formed identifier always wins and is trusted without a remote
    lookup. Otherwise the secondary key is looked up in ``cache``; a miss
    means CREATE. ``missing`` names the required attribute the row lacks, in
    which case nothing is written at all.
    """

    if missing:
        return ResolvedTarget(Decision.SKIP, reason=f"missing {missing}")
    identifier = identifier.strip()
    if identifier and is_uuid(identifier):
        return ResolvedTarget(Decision.UPDATE_BY_ID, target_id=identifier)
    if secondary_key and cache is not None:
        found = cache.get(secondary_key)
        if found is not None:
            return ResolvedTarget(Decision.UPDATE_BY_SECONDARY_KEY, target_id=found)
    return ResolvedTarget(Decision.CREATE)

"""Note reconciliation.

A note is written through the v1 API first. Attributes v1 cannot carry
(archived, processed, creator, and an owner v1 refused) are then backfilled
through v2, which only sees the note after a short propagation delay.
Finally the note is linked to hierarchy entities.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from enum import StrEnum
from logging import getLogger
from typing import TYPE_CHECKING, Any

from pbtools.domain.decisions import Decision, ResolvedTarget, decide
from pbtools.domain.ports import RemoteServiceError, describe_error
from pbtools.domain.results import RowOutcome, RowStatus
from pbtools.domain.rows import cell, is_truthy, is_uuid, normalize_url, split_list

from .compensation import OWNER_REJECTION_PATTERNS, write_with_compensation
from .secondary_writes import Sleeper

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from pbtools.config import OperationLimits
    from pbtools.domain.mapping import NoteMapping
    from pbtools.domain.ports import Record, RemoteCollection
    from pbtools.domain.rows import Row

    from .caches import EntityRemapCache

log = getLogger(__name__)

STATUS_PATHS = frozenset({"archived", "processed"})


class BackfillResult(StrEnum):
    NOTHING_TO_DO = "nothing_to_do"
    APPLIED = "applied"
    DEGRADED = "degraded"
    FAILED = "failed"


class LinkResult(StrEnum):
    LINKED = "linked"
    ALREADY_LINKED = "already_linked"


def build_note_payload(row: Row, mapping: NoteMapping, *, is_create: bool) -> dict[str, Any]:
    payload: dict[str, Any] = {}
    title = cell(row, mapping.title_column)
    content = cell(row, mapping.content_column)
    display_url = normalize_url(cell(row, mapping.display_url_column))
    if title:
        payload["title"] = title
    if content:
        payload["content"] = content
    if display_url:
        payload["display_url"] = display_url

    user_email = cell(row, mapping.user_email_column)
    company_domain = cell(row, mapping.company_domain_column)
    if user_email:
        payload["user"] = {"email": user_email}
    elif company_domain:
        payload["company"] = {"domain": company_domain}

    owner_email = cell(row, mapping.owner_email_column)
    if owner_email:
        payload["owner"] = {"email": owner_email}

    tags = split_list(cell(row, mapping.tags_column))
    if tags:
        payload["tags"] = tags

    # source is immutable, so it is only sent on create
    origin = cell(row, mapping.source_origin_column)
    record_id = cell(row, mapping.source_record_id_column)
    if is_create and origin and record_id:
        payload["source"] = {"origin": origin, "record_id": record_id}
    return payload


def backfill_operations(
    *,
    archived: bool | None,
    processed: bool | None,
    creator_email: str | None,
    owner_email: str | None,
) -> list[dict[str, Any]]:
    ops: list[dict[str, Any]] = []
    if archived is not None:
        ops.append({"op": "set", "path": "archived", "value": archived})
    if processed is not None:
        ops.append({"op": "set", "path": "processed", "value": processed})
    if creator_email:
        ops.append({"op": "set", "path": "creator", "value": {"email": creator_email}})
    if owner_email:
        ops.append({"op": "set", "path": "owner", "value": {"email": owner_email}})
    return ops


async def backfill_note(
    remote: RemoteCollection,
    note_id: str,
    ops: list[dict[str, Any]],
    *,
    limits: OperationLimits,
    sleep: Sleeper = asyncio.sleep,
) -> BackfillResult:
    """Apply ``ops`` through v2; never raises for remote failures.

    404 means v2 has not seen the note yet and is retried with a linearly
    growing delay. When the full patch cannot be applied, the status-only
    subset is tried once on its own.
    """

    if not ops:
        return BackfillResult.NOTHING_TO_DO

    async def patch(patch_ops: list[dict[str, Any]]) -> None:
        await remote.request(
            "PATCH",
            f"/v2/notes/{note_id}",
            {"data": {"patch": patch_ops}},
            description=f"backfill note {note_id}",
        )

    attempt = 0
    while True:
        try:
            await patch(ops)
            return BackfillResult.APPLIED
        except RemoteServiceError as exc:
            if exc.is_not_found and attempt < limits.backfill_attempts:
                attempt += 1
                await sleep(limits.backfill_delay * attempt)
                continue
            log.warning("Backfill for note %s failed: %s", note_id, exc.human_message)
            break

    status_ops = [op for op in ops if op["path"] in STATUS_PATHS]
    if not status_ops or len(status_ops) == len(ops):
        return BackfillResult.FAILED
    try:
        await patch(status_ops)
    except RemoteServiceError as exc:
        log.warning("Status-only backfill for note %s failed: %s", note_id, exc.human_message)
        return BackfillResult.FAILED
    return BackfillResult.DEGRADED


async def link_note(remote: RemoteCollection, note_id: str, entity_id: str) -> LinkResult:
    try:
        await remote.request(
            "POST",
            f"/v2/notes/{note_id}/relationships",
            {"data": {"type": "link", "target": {"id": entity_id, "type": "link"}}},
            description=f"link note {note_id} to entity {entity_id}",
        )
    except RemoteServiceError as exc:
        message = f"{exc.human_message} {exc}".lower()
        if exc.status == 422 and "already" in message:
            return LinkResult.ALREADY_LINKED
        raise
    return LinkResult.LINKED


@dataclass(slots=True)
class NoteReconciler:
    remote: RemoteCollection
    mapping: NoteMapping
    limits: OperationLimits
    remap: EntityRemapCache | None = None
    sleep: Sleeper = asyncio.sleep
    _source_counters: dict[str, int] = field(default_factory=dict[str, int])

    def prepare_row(self, row: Row) -> Row:
        """Copy of ``row`` with a generated ``source_record_id`` where only the origin is set."""

        origin = cell(row, self.mapping.source_origin_column)
        record_id = cell(row, self.mapping.source_record_id_column)
        if not origin or record_id or not self.mapping.source_record_id_column:
            return row
        self._source_counters[origin] = self._source_counters.get(origin, 0) + 1
        prepared = dict(row)
        prepared[self.mapping.source_record_id_column] = f"{origin}-{self._source_counters[origin]}"
        return prepared

    def resolve(self, row: Row) -> ResolvedTarget:
        missing = None if cell(row, self.mapping.title_column) else "title"
        # notes have no secondary key to match on
        return decide(cell(row, self.mapping.pb_id_column), "", None, missing=missing)

    async def reconcile(self, row: Row, *, row_number: int) -> RowOutcome:
        row = self.prepare_row(row)
        target = self.resolve(row)
        if target.decision is Decision.SKIP:
            return RowOutcome(
                RowStatus.SKIPPED,
                f"Row {row_number}: Skipped note ({target.reason})",
                decision=target.decision,
            )

        is_create = target.decision is Decision.CREATE
        payload = build_note_payload(row, self.mapping, is_create=is_create)
        if is_create:
            written = await write_with_compensation(
                self._create, payload, field="owner", patterns=OWNER_REJECTION_PATTERNS
            )
            note_id = written.value
            outcome = RowOutcome(
                RowStatus.CREATED,
                f'Row {row_number}: Created note "{payload.get("title", "")}"',
                detail=f"ID: {note_id}",
                decision=target.decision,
                identifier=note_id,
            )
        else:
            note_id = target.target_id or ""
            written = await write_with_compensation(
                self._updater(note_id), payload, field="owner", patterns=OWNER_REJECTION_PATTERNS
            )
            outcome = RowOutcome(
                RowStatus.UPDATED,
                f'Row {row_number}: Updated note "{payload.get("title", "")}"',
                detail=f"ID: {note_id}",
                decision=target.decision,
                identifier=note_id,
            )
        owner_email = cell(row, self.mapping.owner_email_column)
        if written.compensated:
            outcome.warn(
                f"Row {row_number}: Owner {owner_email} was rejected, retried without owner"
            )

        await self._backfill(note_id, row, row_number, outcome, owner_rejected=written.compensated)
        await self._link(note_id, row, row_number, outcome)
        return outcome

    async def _create(self, payload: dict[str, Any]) -> str:
        response = await self.remote.request("POST", "/notes", payload, description="create note")
        note_id = _created_id(response)
        if note_id is None:
            raise RemoteServiceError("API did not return a note ID")
        return note_id

    def _updater(self, note_id: str) -> Callable[[dict[str, Any]], Awaitable[str]]:
        async def update(payload: dict[str, Any]) -> str:
            await self.remote.request(
                "PATCH", f"/notes/{note_id}", payload, description=f"update note {note_id}"
            )
            return note_id

        return update

    async def _backfill(
        self,
        note_id: str,
        row: Row,
        row_number: int,
        outcome: RowOutcome,
        *,
        owner_rejected: bool,
    ) -> None:
        archived = cell(row, self.mapping.archived_column)
        processed = cell(row, self.mapping.processed_column)
        owner_email = cell(row, self.mapping.owner_email_column)
        ops = backfill_operations(
            archived=is_truthy(archived) if archived else None,
            processed=is_truthy(processed) if processed else None,
            creator_email=cell(row, self.mapping.creator_email_column) or None,
            owner_email=owner_email if owner_rejected and owner_email else None,
        )
        result = await backfill_note(
            self.remote, note_id, ops, limits=self.limits, sleep=self.sleep
        )
        if result is BackfillResult.DEGRADED:
            outcome.warn(
                f"Row {row_number}: Creator/owner could not be set, only status fields were updated"
            )
        elif result is BackfillResult.FAILED:
            outcome.warn(f"Row {row_number}: v2 backfill failed for note {note_id}")

    async def _link(self, note_id: str, row: Row, row_number: int, outcome: RowOutcome) -> None:
        for entity_id in split_list(cell(row, self.mapping.linked_entities_column)):
            if not is_uuid(entity_id):
                continue
            target_id = self.remap.resolve(entity_id) if self.remap is not None else entity_id
            if target_id is None:
                outcome.warn(
                    f"Row {row_number}: Entity {entity_id} not found in migration cache, skipped"
                )
                continue
            try:
                await link_note(self.remote, note_id, target_id)
            except RemoteServiceError as exc:
                outcome.warn(
                    f"Row {row_number}: Failed to link entity {target_id}", describe_error(exc)
                )


def _created_id(response: Record) -> str | None:
    identifier = response.get("id")
    if isinstance(identifier, str) and identifier:
        return identifier
    data = response.get("data")
    if isinstance(data, dict) and isinstance(data.get("id"), str) and data["id"]:
        return data["id"]
    return None

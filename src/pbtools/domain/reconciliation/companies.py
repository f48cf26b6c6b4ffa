"""Company reconciliation: create-or-update by id or domain, then custom field values."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from logging import getLogger
from typing import TYPE_CHECKING, Any

from pbtools.domain.decisions import Decision, ResolvedTarget, decide
from pbtools.domain.ports import RemoteServiceError, describe_error
from pbtools.domain.results import RowOutcome, RowStatus
from pbtools.domain.rows import cell, is_uuid, parse_number

from .secondary_writes import Sleeper, run_in_batches

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from pbtools.config import OperationLimits
    from pbtools.domain.mapping import CompanyMapping, CustomFieldMapping
    from pbtools.domain.ports import Record, RemoteCollection
    from pbtools.domain.rows import Row

    from .caches import CrossReferenceCache

log = getLogger(__name__)


def build_create_payload(row: Row, mapping: CompanyMapping) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "name": cell(row, mapping.name_column),
        "domain": cell(row, mapping.domain_column).lower(),
    }
    description = cell(row, mapping.desc_column)
    if description:
        payload["description"] = description
    source: dict[str, str] = {}
    origin = cell(row, mapping.source_origin_col)
    record_id = cell(row, mapping.source_record_col)
    if origin:
        source["origin"] = origin
    if record_id:
        source["record_id"] = record_id
    if source:
        payload["source"] = source
    return payload


def build_update_payload(row: Row, mapping: CompanyMapping) -> dict[str, Any]:
    # domain and source are immutable once created
    attributes: dict[str, Any] = {}
    name = cell(row, mapping.name_column)
    if name:
        attributes["name"] = name
    description = cell(row, mapping.desc_column)
    if description:
        attributes["description"] = description
    return {"data": attributes}


def custom_field_value(raw: str, custom_field: CustomFieldMapping) -> str | int | float:
    if custom_field.field_type == "number":
        number = parse_number(raw)
        if number is None:
            raise ValueError(f"'{custom_field.csv_column}' must be a number (got '{raw}')")
        return number
    return raw


@dataclass(slots=True)
class CompanyReconciler:
    remote: RemoteCollection
    mapping: CompanyMapping
    cache: CrossReferenceCache
    limits: OperationLimits
    clear_empty_fields: bool = False
    sleep: Sleeper = asyncio.sleep

    def resolve(self, row: Row) -> ResolvedTarget:
        pb_id = cell(row, self.mapping.pb_id_column)
        domain = cell(row, self.mapping.domain_column)
        missing = None
        if not cell(row, self.mapping.name_column):
            missing = "name"
        elif not domain and not is_uuid(pb_id):
            missing = "domain"
        return decide(pb_id, domain, self.cache, missing=missing)

    def label(self, row: Row, row_number: int) -> str:
        return (
            cell(row, self.mapping.name_column)
            or cell(row, self.mapping.domain_column).lower()
            or f"row {row_number}"
        )

    async def reconcile(self, row: Row, *, row_number: int) -> RowOutcome:
        target = self.resolve(row)
        label = self.label(row, row_number)

        match target.decision:
            case Decision.SKIP:
                return RowOutcome(
                    RowStatus.SKIPPED,
                    f'Row {row_number}: Skipped "{label}" ({target.reason})',
                    decision=target.decision,
                )
            case Decision.UPDATE_BY_ID | Decision.UPDATE_BY_SECONDARY_KEY:
                company_id = target.target_id or ""
                await self.remote.request(
                    "PATCH",
                    f"/companies/{company_id}",
                    build_update_payload(row, self.mapping),
                    description=f"patch company row {row_number}",
                )
                by_key = target.decision is Decision.UPDATE_BY_SECONDARY_KEY
                suffix = " by domain match" if by_key else ""
                outcome = RowOutcome(
                    RowStatus.UPDATED,
                    f'Row {row_number}: Updated "{label}"{suffix}',
                    detail=company_id,
                    decision=target.decision,
                    identifier=company_id,
                )
            case Decision.CREATE:
                response = await self.remote.request(
                    "POST",
                    "/companies",
                    build_create_payload(row, self.mapping),
                    description=f"create company row {row_number}",
                )
                company_id = _created_id(response)
                if company_id is None:
                    raise RemoteServiceError("API did not return a company ID")
                domain = cell(row, self.mapping.domain_column)
                if domain:
                    self.cache.remember(domain, company_id)
                outcome = RowOutcome(
                    RowStatus.CREATED,
                    f'Row {row_number}: Created "{label}"',
                    detail=company_id,
                    decision=target.decision,
                    identifier=company_id,
                )

        if self.mapping.custom_fields:
            await self._sync_custom_fields(company_id, row, row_number, outcome)
        return outcome

    async def _sync_custom_fields(
        self,
        company_id: str,
        row: Row,
        row_number: int,
        outcome: RowOutcome,
    ) -> None:
        pending: list[tuple[CustomFieldMapping, Callable[[], Awaitable[object]]]] = []
        for custom_field in self.mapping.custom_fields:
            raw = cell(row, custom_field.csv_column)
            if raw:
                pending.append((custom_field, self._setter(company_id, custom_field, raw)))
            elif self.clear_empty_fields:
                pending.append((custom_field, self._clearer(company_id, custom_field)))
        if not pending:
            return

        results = await run_in_batches(
            [call for _, call in pending],
            batch_size=self.limits.secondary_batch_size,
            delay=self.limits.secondary_batch_delay,
            sleep=self.sleep,
        )
        failures = 0
        for (custom_field, _), result in zip(pending, results, strict=True):
            if isinstance(result, Exception):
                failures += 1
                log.warning(
                    "Custom field %s failed for company %s: %s",
                    custom_field.field_id,
                    company_id,
                    result,
                )
                outcome.warn(
                    f"Row {row_number}: Custom field '{custom_field.csv_column}' not updated",
                    describe_error(result),
                )
        if failures < len(pending):
            outcome.note(f"Row {row_number}: Custom fields updated")

    def _setter(
        self, company_id: str, custom_field: CustomFieldMapping, raw: str
    ) -> Callable[[], Awaitable[object]]:
        async def put_value() -> object:
            value = custom_field_value(raw, custom_field)
            return await self.remote.request(
                "PUT",
                f"/companies/{company_id}/custom-fields/{custom_field.field_id}/value",
                {"data": {"type": custom_field.field_type, "value": value}},
                description=f"set custom field {custom_field.field_id}",
            )

        return put_value

    def _clearer(
        self, company_id: str, custom_field: CustomFieldMapping
    ) -> Callable[[], Awaitable[object]]:
        async def delete_value() -> object:
            try:
                return await self.remote.request(
                    "DELETE",
                    f"/companies/{company_id}/custom-fields/{custom_field.field_id}/value",
                    description=f"delete custom field {custom_field.field_id}",
                )
            except RemoteServiceError as exc:
                # already empty
                if exc.is_not_found:
                    return None
                raise

        return delete_value


def _created_id(response: Record) -> str | None:
    data = response.get("data")
    if isinstance(data, dict) and isinstance(data.get("id"), str) and data["id"]:
        return data["id"]
    identifier = response.get("id")
    return identifier if isinstance(identifier, str) and identifier else None

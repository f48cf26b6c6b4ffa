from __future__ import annotations

import asyncio

from pbtools.config import OperationLimits
from pbtools.domain.decisions import Decision
from pbtools.domain.mapping import CompanyMapping, CustomFieldMapping
from pbtools.domain.reconciliation import (
    CacheKind,
    CompanyReconciler,
    CrossReferenceCache,
    build_cross_reference_cache,
)
from pbtools.domain.results import RowOutcome, RowStatus
from tests.helpers.remote import FakeRemote, api_error, offset_pages

LIMITS = OperationLimits(secondary_batch_delay=0.0, backfill_delay=0.0)
EXISTING_ID = "aaaaaaaa-0000-0000-0000-000000000001"
OTHER_ID = "bbbbbbbb-0000-0000-0000-000000000002"
NEW_ID = "cccccccc-0000-0000-0000-000000000003"

MAPPING = CompanyMapping(
    pb_id_column="id",
    name_column="name",
    domain_column="domain",
    desc_column="description",
)


def _reconciler(
    remote: FakeRemote,
    mapping: CompanyMapping = MAPPING,
    *,
    cache: CrossReferenceCache | None = None,
    clear_empty_fields: bool = False,
) -> CompanyReconciler:
    if cache is None:
        cache = CrossReferenceCache(CacheKind.COMPANY_DOMAIN)
    return CompanyReconciler(
        remote=remote,
        mapping=mapping,
        cache=cache,
        limits=LIMITS,
        clear_empty_fields=clear_empty_fields,
    )


def test_domain_cache_is_built_from_every_page() -> None:
    companies = [
        {"id": EXISTING_ID, "domain": "Acme.com"},
        {"id": OTHER_ID, "domain": ""},
        {"id": NEW_ID, "domain": "globex.com"},
    ]
    remote = FakeRemote().on("GET", "/companies", offset_pages(companies))
    limits = OperationLimits(page_size=2)

    cache = asyncio.run(
        build_cross_reference_cache(remote, CacheKind.COMPANY_DOMAIN, limits=limits)
    )

    assert len(cache) == 2
    assert cache.get("ACME.COM") == EXISTING_ID
    assert cache.label_for(EXISTING_ID) == "Acme.com"
    assert [call.params["pageOffset"] for call in remote.calls if call.params] == ["0", "2"]


def test_three_row_import_updates_by_id_and_domain() -> None:
    cache = CrossReferenceCache(CacheKind.COMPANY_DOMAIN)
    cache.remember("acme.com", EXISTING_ID)
    remote = (
        FakeRemote()
        .on("PATCH", "/companies/*", {"data": {}})
        .on("POST", "/companies", {"data": {"id": NEW_ID}})
    )
    reconciler = _reconciler(remote, cache=cache)
    rows = [
        {"id": "", "name": "Acme", "domain": "ACME.com", "description": ""},
        {"id": OTHER_ID, "name": "Initech", "domain": "", "description": "Printers"},
        {"id": "", "name": "Globex", "domain": "Globex.com", "description": "<p>Hi</p>"},
    ]

    async def run() -> list[RowOutcome]:
        return [
            await reconciler.reconcile(row, row_number=index + 1)
            for index, row in enumerate(rows)
        ]

    first, second, third = asyncio.run(run())

    assert first.status is RowStatus.UPDATED
    assert first.decision is Decision.UPDATE_BY_SECONDARY_KEY
    assert first.message == 'Row 1: Updated "Acme" by domain match'
    assert second.decision is Decision.UPDATE_BY_ID
    assert second.message == 'Row 2: Updated "Initech"'
    assert third.status is RowStatus.CREATED
    assert third.identifier == NEW_ID

    patches = remote.calls_to("PATCH")
    assert [call.path for call in patches] == [
        f"/companies/{EXISTING_ID}",
        f"/companies/{OTHER_ID}",
    ]
    assert patches[0].body == {"data": {"name": "Acme"}}
    assert patches[1].body == {"data": {"name": "Initech", "description": "Printers"}}
    assert remote.calls_to("POST")[0].body == {
        "name": "Globex",
        "domain": "globex.com",
        "description": "<p>Hi</p>",
    }


def test_created_company_is_found_by_later_rows() -> None:
    remote = (
        FakeRemote()
        .on("POST", "/companies", {"id": NEW_ID})
        .on("PATCH", "/companies/*", {"data": {}})
    )
    reconciler = _reconciler(remote)
    row = {"id": "", "name": "Globex", "domain": "globex.com", "description": ""}

    async def run() -> tuple[RowOutcome, RowOutcome]:
        created = await reconciler.reconcile(row, row_number=1)
        repeated = await reconciler.reconcile(
            {**row, "domain": "GLOBEX.com"}, row_number=2
        )
        return created, repeated

    created, repeated = asyncio.run(run())

    assert created.status is RowStatus.CREATED
    assert repeated.status is RowStatus.UPDATED
    assert len(remote.calls_to("POST")) == 1
    assert remote.calls_to("PATCH")[0].path == f"/companies/{NEW_ID}"


def test_rows_without_required_attributes_are_skipped_without_calls() -> None:
    remote = FakeRemote()
    reconciler = _reconciler(remote)

    async def run() -> list[RowOutcome]:
        return [
            await reconciler.reconcile(
                {"id": "", "name": "", "domain": "acme.com", "description": ""}, row_number=1
            ),
            await reconciler.reconcile(
                {"id": "", "name": "Nameless Inc", "domain": "", "description": ""},
                row_number=2,
            ),
        ]

    first, second = asyncio.run(run())

    assert first.status is RowStatus.SKIPPED
    assert first.message == 'Row 1: Skipped "acme.com" (missing name)'
    assert second.message == 'Row 2: Skipped "Nameless Inc" (missing domain)'
    assert remote.calls == []


def test_custom_field_failure_only_warns() -> None:
    mapping = MAPPING.model_copy(
        update={
            "custom_fields": [
                CustomFieldMapping(csv_column="ARR", field_id="cf-arr", field_type="number"),
                CustomFieldMapping(csv_column="Tier", field_id="cf-tier"),
            ]
        }
    )
    remote = (
        FakeRemote()
        .on("PATCH", f"/companies/{EXISTING_ID}", {"data": {}})
        .on("PUT", f"/companies/{EXISTING_ID}/custom-fields/cf-arr/value", {"data": {}})
        .on(
            "PUT",
            f"/companies/{EXISTING_ID}/custom-fields/cf-tier/value",
            api_error(422, "Value too long"),
        )
    )
    reconciler = _reconciler(remote, mapping)
    row = {
        "id": EXISTING_ID,
        "name": "Acme",
        "domain": "",
        "description": "",
        "ARR": "1200",
        "Tier": "gold",
    }

    outcome = asyncio.run(reconciler.reconcile(row, row_number=4))

    assert outcome.status is RowStatus.UPDATED
    puts = remote.calls_to("PUT")
    assert puts[0].body == {"data": {"type": "number", "value": 1200}}
    assert puts[1].body == {"data": {"type": "text", "value": "gold"}}
    assert [warning.message for warning in outcome.warnings] == [
        "Row 4: Custom field 'Tier' not updated"
    ]
    assert outcome.warnings[0].detail == "Value too long"
    assert [note.message for note in outcome.notes] == ["Row 4: Custom fields updated"]


def test_empty_custom_fields_are_cleared_when_requested() -> None:
    mapping = MAPPING.model_copy(
        update={
            "custom_fields": [
                CustomFieldMapping(csv_column="ARR", field_id="cf-arr", field_type="number"),
                CustomFieldMapping(csv_column="Tier", field_id="cf-tier"),
            ]
        }
    )
    remote = (
        FakeRemote()
        .on("PATCH", f"/companies/{EXISTING_ID}", {"data": {}})
        .on("DELETE", f"/companies/{EXISTING_ID}/custom-fields/cf-arr/value", {})
        .on(
            "DELETE",
            f"/companies/{EXISTING_ID}/custom-fields/cf-tier/value",
            api_error(404, "Not found"),
        )
    )
    reconciler = _reconciler(remote, mapping, clear_empty_fields=True)
    row = {
        "id": EXISTING_ID,
        "name": "Acme",
        "domain": "",
        "description": "",
        "ARR": "",
        "Tier": "",
    }

    outcome = asyncio.run(reconciler.reconcile(row, row_number=1))

    assert len(remote.calls_to("DELETE")) == 2
    assert outcome.warnings == []
    assert [note.message for note in outcome.notes] == ["Row 1: Custom fields updated"]


def test_empty_custom_fields_are_left_alone_by_default() -> None:
    mapping = MAPPING.model_copy(
        update={"custom_fields": [CustomFieldMapping(csv_column="Tier", field_id="cf-tier")]}
    )
    remote = FakeRemote().on("PATCH", f"/companies/{EXISTING_ID}", {"data": {}})
    reconciler = _reconciler(remote, mapping)
    row = {"id": EXISTING_ID, "name": "Acme", "domain": "", "description": "", "Tier": ""}

    outcome = asyncio.run(reconciler.reconcile(row, row_number=1))

    assert [call.method for call in remote.calls] == ["PATCH"]
    assert outcome.notes == []

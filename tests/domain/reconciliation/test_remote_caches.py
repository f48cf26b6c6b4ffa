from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any

import pytest

from pbtools.config import OperationLimits
from pbtools.domain.ports import RemoteServiceError
from pbtools.domain.reconciliation import (
    NoteSource,
    build_entity_remap_cache,
    build_note_source_map,
    detect_remap_field,
    find_remap_field,
    list_custom_fields,
)
from tests.helpers.remote import FakeRemote, api_error, cursor_pages, offset_pages

if TYPE_CHECKING:
    from collections.abc import Callable

    from tests.helpers.remote import RecordedCall

SOURCE_A = "11111111-0000-0000-0000-00000000000a"
SOURCE_B = "11111111-0000-0000-0000-00000000000b"

FEATURE_CONFIG = {
    "data": {
        "fields": {
            "name": {"id": "name", "name": "name", "schema": "NameFieldValue"},
            "field-9": {"id": "field-9", "name": "original_uuid", "schema": "TextFieldValue"},
        }
    }
}


def _search_responder(
    type_pages: dict[str, list[list[dict[str, Any]]]],
) -> Callable[[RecordedCall], dict[str, Any]]:
    responders = {entity_type: cursor_pages(pages) for entity_type, pages in type_pages.items()}

    def respond(call: RecordedCall) -> dict[str, Any]:
        entity_type = call.body["data"]["type"]
        return responders[entity_type](call)

    return respond


def test_remap_field_is_found_in_mapping_or_list_form() -> None:
    listed = {
        "data": {
            "fields": [
                {"id": "field-1", "name": "original_uuid", "schema": "NumberFieldValue"},
                {"id": "field-2", "name": "original_uuid", "schema": "TextFieldValue"},
            ]
        }
    }
    by_mapping = FakeRemote().on("GET", "/v2/entities/configurations/feature", FEATURE_CONFIG)
    by_list = FakeRemote().on("GET", "/v2/entities/configurations/feature", listed)

    assert asyncio.run(find_remap_field(by_mapping, "original_uuid")) == "field-9"
    assert asyncio.run(find_remap_field(by_list, "original_uuid")) == "field-2"
    assert asyncio.run(find_remap_field(by_list, "legacy_id")) is None


def test_detect_remap_field_trims_the_name() -> None:
    remote = FakeRemote().on("GET", "/v2/entities/configurations/feature", FEATURE_CONFIG)

    assert asyncio.run(detect_remap_field(remote, "  original_uuid ")) is True


def test_remap_cache_indexes_every_entity_type() -> None:
    remote = (
        FakeRemote()
        .on("GET", "/v2/entities/configurations/feature", FEATURE_CONFIG)
        .on(
            "POST",
            "/v2/entities/search",
            _search_responder(
                {
                    "feature": [
                        [{"id": "t-1", "fields": {"field-9": SOURCE_A.upper()}}],
                        [{"id": "t-2", "fields": {"field-9": "not a uuid"}}],
                    ],
                    "component": [[{"id": "t-3", "fields": {"field-9": SOURCE_B}}]],
                    "product": [[{"id": "t-4", "fields": {}}]],
                    "subfeature": [],
                }
            ),
        )
    )

    cache = asyncio.run(build_entity_remap_cache(remote, limits=OperationLimits()))

    assert cache.field_id == "field-9"
    assert len(cache) == 2
    assert cache.resolve(SOURCE_A) == "t-1"
    assert cache.resolve(SOURCE_B) == "t-3"
    searches = remote.calls_to("POST", "/v2/entities/search")
    assert [call.body["data"]["type"] for call in searches] == [
        "feature",
        "feature",
        "component",
        "product",
        "subfeature",
    ]
    assert searches[1].body == {"data": {"type": "feature", "pageCursor": "1"}}


def test_missing_remap_field_gives_an_empty_cache() -> None:
    remote = FakeRemote().on(
        "GET", "/v2/entities/configurations/feature", {"data": {"fields": {}}}
    )

    cache = asyncio.run(build_entity_remap_cache(remote, "legacy_id", limits=OperationLimits()))

    assert cache.field_id is None
    assert len(cache) == 0
    assert cache.resolve(SOURCE_A) is None
    assert remote.calls_to("POST") == []


def test_remap_field_lookup_failure_is_fatal() -> None:
    remote = FakeRemote().on(
        "GET", "/v2/entities/configurations/feature", api_error(401, "Unauthorized")
    )

    with pytest.raises(RemoteServiceError):
        asyncio.run(build_entity_remap_cache(remote, limits=OperationLimits()))


def test_note_source_map_reads_v1_sources() -> None:
    pages = [
        [
            {"id": "n-1", "source": {"origin": "zendesk", "record_id": "z-1"}},
            {"id": "n-2", "source": {"origin": "", "record_id": ""}},
        ],
        [{"id": "n-3", "source": {"origin": "intercom", "recordId": "i-9"}}, {"id": "n-4"}],
    ]
    remote = FakeRemote().on("GET", "/notes", cursor_pages(pages))

    sources = asyncio.run(build_note_source_map(remote, limits=OperationLimits(page_size=2)))

    assert sources == {
        "n-1": NoteSource("zendesk", "z-1"),
        "n-3": NoteSource("intercom", "i-9"),
    }
    assert remote.calls[0].params == {"pageLimit": "2"}
    assert remote.calls[1].params == {"pageLimit": "2", "pageCursor": "1"}


def test_custom_field_definitions_default_their_type() -> None:
    definitions = [
        {"id": "cf-1", "name": "ARR", "type": "number"},
        {"id": "cf-2", "name": "Tier"},
        {"name": "no id"},
    ]
    remote = FakeRemote().on("GET", "/companies/custom-fields", offset_pages(definitions))

    fields = asyncio.run(list_custom_fields(remote, limits=OperationLimits()))

    assert [field.to_dict() for field in fields] == [
        {"id": "cf-1", "name": "ARR", "type": "number"},
        {"id": "cf-2", "name": "Tier", "type": "text"},
    ]

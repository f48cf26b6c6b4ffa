"""In-memory indexes over remote collections, rebuilt for every operation."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from logging import getLogger
from typing import TYPE_CHECKING

from pbtools.domain.ports import CursorStrategy, OffsetStrategy
from pbtools.domain.rows import is_uuid

if TYPE_CHECKING:
    from pbtools.config import OperationLimits
    from pbtools.domain.ports import RemoteCollection

log = getLogger(__name__)

REMAP_ENTITY_TYPES = ("feature", "component", "product", "subfeature")
REMAP_FIELD_SCHEMA = "TextFieldValue"
DEFAULT_REMAP_FIELD = "original_uuid"


class CacheKind(Enum):
    """Collections that can be indexed by a secondary key."""

    COMPANY_DOMAIN = ("/companies", "domain")
    USER_EMAIL = ("/users", "email")

    @property
    def path(self) -> str:
        return self.value[0]

    @property
    def attribute(self) -> str:
        return self.value[1]


class CrossReferenceCache:
    """Lower-cased secondary key -> remote id.

    Owned by a single operation and updated in place as records are created,
    so later rows sharing a key resolve to the new record.
    """

    def __init__(self, kind: CacheKind) -> None:
        self.kind = kind
        self._ids: dict[str, str] = {}
        self._labels: dict[str, str] = {}

    @staticmethod
    def normalize(key: str) -> str:
        return key.strip().lower()

    def get(self, key: str) -> str | None:
        normalized = self.normalize(key)
        if not normalized:
            return None
        return self._ids.get(normalized)

    def remember(self, key: str, identifier: str) -> None:
        normalized = self.normalize(key)
        if not normalized or not identifier:
            return
        self._ids[normalized] = identifier
        self._labels[identifier] = key.strip()

    def label_for(self, identifier: str) -> str | None:
        """Original (non-normalized) key recorded for ``identifier``."""

        return self._labels.get(identifier)

    def __len__(self) -> int:
        return len(self._ids)

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and self.get(key) is not None


async def build_cross_reference_cache(
    remote: RemoteCollection,
    kind: CacheKind,
    *,
    limits: OperationLimits,
) -> CrossReferenceCache:
    cache = CrossReferenceCache(kind)
    async for batch in remote.paginate(
        kind.path,
        OffsetStrategy(limit=limits.page_size),
        max_records=limits.max_records,
        description=f"{kind.attribute} cache fetch",
    ):
        for record in batch:
            identifier = record.get("id")
            value = record.get(kind.attribute)
            if not isinstance(identifier, str) or not isinstance(value, str) or not value.strip():
                continue
            cache.remember(value, identifier)
    log.info(f"Built {kind.attribute} cache with {len(cache)} entries")
    return cache


@dataclass(slots=True)
class EntityRemapCache:
    """Source-instance entity id -> target-instance entity id.

    ``field_id`` is ``None`` when the designated custom field does not exist;
    the cache is then empty and every lookup misses.
    """

    field_id: str | None = None
    entries: dict[str, str] = field(default_factory=dict[str, str])

    def resolve(self, source_id: str) -> str | None:
        return self.entries.get(source_id.strip().lower())

    def __len__(self) -> int:
        return len(self.entries)


async def find_remap_field(remote: RemoteCollection, field_name: str) -> str | None:
    """Id of the hierarchy text field called ``field_name``, if there is one."""

    payload = await remote.request(
        "GET",
        "/v2/entities/configurations/feature",
        description="fetch feature configuration",
    )
    data = payload.get("data")
    fields = data.get("fields") if isinstance(data, dict) else None
    if isinstance(fields, dict):
        candidates = list(fields.values())
    elif isinstance(fields, list):
        candidates = fields
    else:
        candidates = []
    for candidate in candidates:
        if not isinstance(candidate, dict):
            continue
        if candidate.get("name") == field_name and candidate.get("schema") == REMAP_FIELD_SCHEMA:
            field_id = candidate.get("id")
            if isinstance(field_id, str) and field_id:
                return field_id
    return None


async def build_entity_remap_cache(
    remote: RemoteCollection,
    field_name: str = DEFAULT_REMAP_FIELD,
    *,
    limits: OperationLimits,
) -> EntityRemapCache:
    field_id = await find_remap_field(remote, field_name)
    if field_id is None:
        log.warning(f"Custom field '{field_name}' not found, entity remap cache is empty")
        return EntityRemapCache()

    cache = EntityRemapCache(field_id=field_id)
    for entity_type in REMAP_ENTITY_TYPES:
        async for batch in remote.paginate(
            "/v2/entities/search",
            CursorStrategy(in_body=True),
            method="POST",
            body={"data": {"type": entity_type}},
            max_records=limits.max_records,
            description=f"search {entity_type} entities",
        ):
            for entity in batch:
                entity_id = entity.get("id")
                fields = entity.get("fields")
                value = fields.get(field_id) if isinstance(fields, dict) else None
                if not isinstance(entity_id, str) or not isinstance(value, str):
                    continue
                if is_uuid(value):
                    cache.entries[value.strip().lower()] = entity_id
    log.info(f"Built entity remap cache with {len(cache)} entries")
    return cache


@dataclass(frozen=True, slots=True)
class NoteSource:
    origin: str = ""
    record_id: str = ""


async def build_note_source_map(
    remote: RemoteCollection,
    *,
    limits: OperationLimits,
) -> dict[str, NoteSource]:
    """Note id -> source origin/record id, read from the v1 notes collection."""

    sources: dict[str, NoteSource] = {}
    async for batch in remote.paginate(
        "/notes",
        CursorStrategy(cursor_field="pageCursor", limit=limits.page_size),
        max_pages=limits.max_pages,
        description="v1 note sources",
    ):
        for note in batch:
            note_id = note.get("id")
            source = note.get("source")
            if not isinstance(note_id, str) or not isinstance(source, dict):
                continue
            origin = source.get("origin") or ""
            record_id = source.get("record_id") or source.get("recordId") or ""
            if origin or record_id:
                sources[note_id] = NoteSource(origin=str(origin), record_id=str(record_id))
    return sources

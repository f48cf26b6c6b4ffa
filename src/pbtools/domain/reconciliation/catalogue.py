"""Company custom field definitions and migration field detection."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from pbtools.domain.ports import OffsetStrategy

from .caches import find_remap_field

if TYPE_CHECKING:
    from pbtools.config import OperationLimits
    from pbtools.domain.ports import RemoteCollection


@dataclass(frozen=True, slots=True)
class CustomFieldDefinition:
    id: str
    name: str
    type: str = "text"

    def to_dict(self) -> dict[str, str]:
        return {"id": self.id, "name": self.name, "type": self.type}


async def list_custom_fields(
    remote: RemoteCollection,
    *,
    limits: OperationLimits,
) -> list[CustomFieldDefinition]:
    definitions: list[CustomFieldDefinition] = []
    async for batch in remote.paginate(
        "/companies/custom-fields",
        OffsetStrategy(limit=limits.page_size),
        max_records=limits.max_custom_fields,
        description="fetch custom fields",
    ):
        for record in batch:
            field_id = record.get("id")
            if not isinstance(field_id, str) or not field_id:
                continue
            definitions.append(
                CustomFieldDefinition(
                    id=field_id,
                    name=str(record.get("name") or field_id),
                    type=str(record.get("type") or "text"),
                )
            )
    return definitions


async def detect_remap_field(remote: RemoteCollection, field_name: str) -> bool:
    return await find_remap_field(remote, field_name.strip()) is not None

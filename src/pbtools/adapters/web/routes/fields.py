from __future__ import annotations

from logging import getLogger

from fastapi import APIRouter

from pbtools.app import fetch_custom_fields
from pbtools.domain.ports import RemoteServiceError

from ..dependencies import Credentials, remote_failure

log = getLogger(__name__)

router = APIRouter(prefix="/api/fields", tags=["fields"])


@router.get("")
async def list_fields(client: Credentials) -> dict[str, object]:
    try:
        fields = await fetch_custom_fields(client)
    except RemoteServiceError as exc:
        log.error("Fetching custom fields failed: %s", exc)
        raise remote_failure(exc) from exc
    return {"fields": [definition.to_dict() for definition in fields]}

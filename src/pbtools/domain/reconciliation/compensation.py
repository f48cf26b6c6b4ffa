"""Retry a rejected write once without the optional sub-field that caused it."""

from __future__ import annotations

import re
from dataclasses import dataclass
from logging import getLogger
from typing import TYPE_CHECKING, Any

from pbtools.domain.ports import RemoteServiceError

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Sequence

log = getLogger(__name__)

OWNER_REJECTION_PATTERNS = (
    re.compile("owner", re.IGNORECASE),
    re.compile("User does not exist"),
)


@dataclass(frozen=True, slots=True)
class CompensatedWrite[T]:
    value: T
    stripped_field: str | None = None

    @property
    def compensated(self) -> bool:
        return self.stripped_field is not None


def rejects_field(exc: RemoteServiceError, patterns: Sequence[re.Pattern[str]]) -> bool:
    """Whether a client-side rejection mentions the optional field.

    Matching the service's message text is a heuristic; the service does not
    report which attribute it refused.
    """

    if exc.status is None or not 400 <= exc.status < 500:
        return False
    message = exc.human_message
    return any(pattern.search(message) for pattern in patterns)


async def write_with_compensation[T](
    write: Callable[[dict[str, Any]], Awaitable[T]],
    payload: dict[str, Any],
    *,
    field: str,
    patterns: Sequence[re.Pattern[str]],
) -> CompensatedWrite[T]:
    try:
        return CompensatedWrite(await write(payload))
    except RemoteServiceError as exc:
        if field not in payload or not rejects_field(exc, patterns):
            raise
        log.info(f"Write rejected '{field}' ({exc.human_message}), retrying without it")

    reduced = {key: value for key, value in payload.items() if key != field}
    return CompensatedWrite(await write(reduced), stripped_field=field)

"""Pydantic models describing Productboard response envelopes."""

from __future__ import annotations

import json

from pydantic import BaseModel, ConfigDict, ValidationError


class ProductboardBaseModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class ErrorItem(ProductboardBaseModel):
    detail: str | None = None
    title: str | None = None
    code: str | int | None = None


class ErrorEnvelope(ProductboardBaseModel):
    errors: list[ErrorItem] = []

    def first_message(self) -> str | None:
        if not self.errors:
            return None
        first = self.errors[0]
        return first.detail or first.title or None


def extract_error_message(text: str) -> str | None:
    """Human message from a Productboard error body, ``None`` when it is not one."""

    try:
        payload = json.loads(text)
    except (TypeError, ValueError):
        return None
    if not isinstance(payload, dict):
        return None
    try:
        envelope = ErrorEnvelope.model_validate(payload)
    except ValidationError:
        return None
    return envelope.first_message()

"""Per-request credentials and client settings."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Annotated

from fastapi import Depends, Header, HTTPException, Request

from pbtools.app import ClientOptions
from pbtools.config import OperationLimits, get_productboard_config
from pbtools.domain.ports import RemoteServiceError

if TYPE_CHECKING:
    from pbtools.app import ClientFactory, Sleeper


@dataclass(slots=True)
class WebSettings:
    """Process-wide knobs shared by every request; credentials arrive per request."""

    client_factory: ClientFactory | None = None
    sleep: Sleeper = asyncio.sleep
    limits: OperationLimits = field(default_factory=OperationLimits)


def require_token(x_pb_token: Annotated[str | None, Header()] = None) -> str:
    if not x_pb_token or not x_pb_token.strip():
        raise HTTPException(status_code=400, detail="Missing x-pb-token header")
    return x_pb_token


def client_options(
    request: Request,
    x_pb_token: Annotated[str | None, Header()] = None,
    x_pb_eu: Annotated[str | None, Header()] = None,
) -> ClientOptions:
    token = require_token(x_pb_token)
    settings: WebSettings = request.app.state.settings
    config = get_productboard_config(
        token=token,
        use_eu=x_pb_eu == "true",
        limits=settings.limits,
    )
    return ClientOptions(config, client_factory=settings.client_factory, sleep=settings.sleep)


Credentials = Annotated[ClientOptions, Depends(client_options)]


def remote_failure(exc: RemoteServiceError) -> HTTPException:
    """Map a failed lookup onto the response status, defaulting to 500 for transport errors."""

    return HTTPException(status_code=exc.status or 500, detail=exc.human_message)

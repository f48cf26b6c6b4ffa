"""FastAPI application exposing the operations over HTTP with SSE progress."""

from __future__ import annotations

import asyncio
from logging import getLogger
from typing import TYPE_CHECKING

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from pbtools import __version__
from pbtools.config import OperationLimits

from .dependencies import WebSettings
from .routes import (
    companies_router,
    export_router,
    fields_router,
    import_router,
    notes_router,
)

if TYPE_CHECKING:
    from pbtools.app import ClientFactory, Sleeper

log = getLogger(__name__)


def create_app(
    *,
    client_factory: ClientFactory | None = None,
    sleep: Sleeper = asyncio.sleep,
    limits: OperationLimits | None = None,
) -> FastAPI:
    """Build the API; tests inject ``client_factory`` to route calls to a mock transport."""

    app = FastAPI(title="pbtools", version=__version__)
    app.state.settings = WebSettings(
        client_factory=client_factory,
        sleep=sleep,
        limits=limits or OperationLimits(),
    )

    @app.exception_handler(StarletteHTTPException)
    async def _error_body(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        del request
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})

    @app.get("/api/health", tags=["health"])
    async def health() -> dict[str, bool]:
        return {"ok": True}

    for router in (fields_router, export_router, import_router, notes_router, companies_router):
        app.include_router(router)
    log.debug("API routes registered")
    return app

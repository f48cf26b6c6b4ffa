"""HTTP API adapter."""

from __future__ import annotations

from .app import create_app
from .sse import SSE_HEADERS, event_stream_response

__all__ = ["SSE_HEADERS", "create_app", "event_stream_response"]

"""Public interface for the Productboard adapter."""

from __future__ import annotations

from .client import ProductboardAPIError, ProductboardClient
from .schema import ErrorEnvelope, extract_error_message

__all__ = [
    "ErrorEnvelope",
    "ProductboardAPIError",
    "ProductboardClient",
    "extract_error_message",
]

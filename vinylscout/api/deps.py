"""Shared FastAPI dependencies and response helpers for the routes."""

from __future__ import annotations

import functools

from fastapi import Depends
from fastapi.responses import JSONResponse

from vinylscout.config import Settings, get_settings
from vinylscout.models.contracts import ErrorResponse
from vinylscout.utils.gemini import GeminiTransport, Transport


@functools.lru_cache(maxsize=4)
def _transport_for(api_key: str) -> GeminiTransport:
    return GeminiTransport(api_key)


def get_transport(config: Settings = Depends(get_settings)) -> Transport | None:
    """Gemini transport for the configured key, or None when no key is set.

    Each route decides what a missing key means for its callers.
    """
    if not config.gemini_api_key:
        return None
    return _transport_for(config.gemini_api_key)


def error_response(
    status: int,
    code: str,
    message: str,
    *,
    retryable: bool = False,
    detail: str | None = None,
) -> JSONResponse:
    return JSONResponse(
        status_code=status,
        content=ErrorResponse(
            error=code, message=message, retryable=retryable, detail=detail
        ).model_dump(exclude_none=True),
    )

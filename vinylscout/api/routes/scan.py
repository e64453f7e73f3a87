"""Shelf scan endpoint.

Always answers 200: the client shows ``error`` next to an empty album list
rather than branching on status codes.
"""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends

from vinylscout.api.deps import get_transport
from vinylscout.config import Settings, get_settings
from vinylscout.exceptions import ConfigurationError, ImageFetchError
from vinylscout.models.contracts import ProcessVinylsRequest, ProcessVinylsResponse
from vinylscout.services.vinyl_scan import scan_shelf
from vinylscout.utils.gemini import Transport

logger = structlog.get_logger()

router = APIRouter(tags=["scan"])


@router.post(
    "/process-vinyls",
    response_model=ProcessVinylsResponse,
    response_model_by_alias=True,
    response_model_exclude_none=True,
)
async def process_vinyls(
    body: ProcessVinylsRequest,
    config: Settings = Depends(get_settings),
    transport: Transport | None = Depends(get_transport),
) -> ProcessVinylsResponse:
    try:
        return await scan_shelf(body, transport=transport, config=config)
    except (ValueError, ConfigurationError, ImageFetchError) as exc:
        logger.warning("process_vinyls_rejected", error_type=type(exc).__name__, error=str(exc))
        return ProcessVinylsResponse(error=str(exc))
    except Exception as exc:
        logger.exception("process_vinyls_error", error_type=type(exc).__name__)
        return ProcessVinylsResponse(error=f"Internal error: {type(exc).__name__}")

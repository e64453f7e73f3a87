"""Discogs proxy endpoint (search passthrough and cover image proxy)."""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, Response

from vinylscout.api.deps import error_response
from vinylscout.config import Settings, get_settings
from vinylscout.exceptions import ConfigurationError, ImageFetchError
from vinylscout.services import discogs

logger = structlog.get_logger()

router = APIRouter(tags=["discogs"])


@router.api_route("/discogs-proxy", methods=["GET", "POST"])
async def discogs_proxy(
    request: Request,
    config: Settings = Depends(get_settings),
) -> Response:
    query = request.query_params

    image_url = query.get("image_url")
    if image_url:
        try:
            image = await discogs.fetch_cover(image_url, config=config)
        except ImageFetchError as exc:
            logger.warning("discogs_image_failed", status=exc.status, url=image_url[:100])
            return Response(
                content=str(exc), status_code=exc.status or 502, media_type="text/plain"
            )
        return Response(
            content=image.content,
            media_type=image.content_type,
            headers={"Cache-Control": discogs.IMAGE_CACHE_CONTROL},
        )

    try:
        params = discogs.build_search_params(query)
    except discogs.MissingSearchParams as exc:
        return error_response(400, "missing_search_params", str(exc))

    try:
        data = await discogs.search(params, config=config)
    except ConfigurationError as exc:
        return error_response(500, "configuration_error", str(exc))
    except Exception as exc:
        logger.exception("discogs_proxy_error", error_type=type(exc).__name__)
        data = {"error": str(exc) or type(exc).__name__, "results": []}
    return JSONResponse(content=data)

"""Discogs passthrough for the web client, which cannot call Discogs directly.

Two modes, picked by the query string:
- ``image_url``: fetch a cover image and return its bytes
- otherwise: forward a database search and return Discogs' JSON untouched
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

import httpx
import structlog

from vinylscout.config import Settings
from vinylscout.exceptions import ConfigurationError, ImageFetchError

log = structlog.get_logger("discogs")

IMAGE_CACHE_CONTROL = "public, max-age=86400"

# Forwarded only when present; q/type/per_page are handled separately
_OPTIONAL_SEARCH_PARAMS = ("format", "year", "genre", "style", "sort", "sort_order")


class MissingSearchParams(ValueError):
    """No q, genre, style or format: Discogs would return everything."""


@dataclass(frozen=True)
class ProxiedImage:
    content: bytes
    content_type: str


def _headers(config: Settings) -> dict[str, str]:
    headers = {"User-Agent": config.discogs_user_agent}
    if config.discogs_token:
        headers["Authorization"] = f"Discogs token={config.discogs_token}"
    return headers


def build_search_params(query: Mapping[str, str]) -> dict[str, str]:
    """Translate client query params into a Discogs search query.

    Raises MissingSearchParams when nothing narrows the search.
    """
    q = query.get("q") or ""
    if not (q or query.get("genre") or query.get("style") or query.get("format")):
        raise MissingSearchParams("Missing search parameters (q, genre, style, or format)")

    params: dict[str, str] = {}
    if q:
        params["q"] = q
    params["type"] = query.get("type") or "release"
    params["per_page"] = query.get("per_page") or "8"
    for name in _OPTIONAL_SEARCH_PARAMS:
        if query.get(name):
            params[name] = query[name]
    return params


async def search(params: dict[str, str], *, config: Settings) -> dict[str, Any]:
    """Run a database search.

    Upstream failures come back as ``{"error", "results": []}`` so the client
    never has to branch on status codes.
    """
    if not config.discogs_token:
        raise ConfigurationError("DISCOGS_TOKEN not configured")

    log.info(
        "discogs_search",
        q=params.get("q"),
        genre=params.get("genre"),
        year=params.get("year"),
        format=params.get("format"),
    )
    try:
        async with httpx.AsyncClient(
            base_url=config.discogs_base_url,
            timeout=config.discogs_timeout_seconds,
        ) as client:
            response = await client.get(
                "/database/search", params=params, headers=_headers(config)
            )
    except httpx.HTTPError as exc:
        log.warning("discogs_search_transport_error", error_type=type(exc).__name__)
        return {"error": f"{type(exc).__name__}: {exc}", "results": []}

    if response.status_code >= 400:
        log.warning(
            "discogs_search_failed",
            status=response.status_code,
            body=response.text[:300],
        )
        return {
            "error": f"Discogs {response.status_code}: {response.reason_phrase}",
            "results": [],
        }
    return response.json()


async def fetch_cover(url: str, *, config: Settings) -> ProxiedImage:
    """Fetch a cover image. Raises ImageFetchError carrying the upstream status."""
    try:
        async with httpx.AsyncClient(timeout=config.discogs_timeout_seconds) as client:
            response = await client.get(url, headers=_headers(config), follow_redirects=True)
    except httpx.HTTPError as exc:
        raise ImageFetchError(f"Image fetch failed: {type(exc).__name__}", status=502) from exc

    if response.status_code >= 400:
        raise ImageFetchError(
            f"Image fetch failed: {response.status_code}", status=response.status_code
        )
    return ProxiedImage(
        content=response.content,
        content_type=response.headers.get("content-type") or "image/jpeg",
    )

"""Shelf scan: identify records from a photo of their spines.

Two modes share one pipeline:
- full scan: every spine, left to right
- re-analysis: only the positions the user flagged, each pointed at its
  horizontal zone of the photo

The photo download counts against the same total budget as the model
attempts, so a slow download leaves less room for the fallback model.
"""

from __future__ import annotations

import time

import structlog

from vinylscout.acquisition import FailureKind, ResponseShape, acquire, candidates_for
from vinylscout.config import Settings
from vinylscout.exceptions import ConfigurationError
from vinylscout.models.contracts import ProcessVinylsRequest, ProcessVinylsResponse, VinylScan
from vinylscout.utils.gemini import GeminiRequest, Transport
from vinylscout.utils.http import download_image
from vinylscout.utils.prompts import load_prompt, render_prompt

log = structlog.get_logger("vinyl_scan")

SCAN_SHAPE = ResponseShape(VinylScan, records_field="albums")
SCAN_TEMPERATURE = 0.1
SCAN_MAX_OUTPUT_TOKENS = 32768


def build_scan_prompt(request: ProcessVinylsRequest) -> str:
    if not request.is_reanalysis:
        return load_prompt("scan_full")
    coords = request.spine_coords or {}
    zones = []
    for position in request.reanalyze_positions:
        coord = coords.get(position)
        if coord is None:
            zones.append(f"- #{position}")
        else:
            start, end = coord.x_start * 100, coord.x_end * 100
            zones.append(f"- #{position}: zona {start:.0f}%-{end:.0f}% horizontal")
    return render_prompt("scan_reanalyze", zones="\n".join(zones))


async def scan_shelf(
    request: ProcessVinylsRequest,
    *,
    transport: Transport | None,
    config: Settings,
) -> ProcessVinylsResponse:
    """Run one shelf scan.

    Raises ConfigurationError / ImageFetchError / ValueError before any
    model call; everything after that is reported inside the response.
    """
    if not request.image_url:
        raise ValueError("imageUrl is required")
    if transport is None:
        raise ConfigurationError("GEMINI_API_KEY not configured")

    started = time.monotonic()
    image, mime_type = await download_image(
        request.image_url, timeout=config.image_fetch_timeout_seconds
    )
    prompt = build_scan_prompt(request)
    log.info(
        "vinyl_scan_start",
        mode="reanalyze" if request.is_reanalysis else "full",
        image_kb=round(len(image) / 1024, 1),
        mime_type=mime_type,
        download_ms=round((time.monotonic() - started) * 1000),
        prompt_chars=len(prompt),
    )

    outcome = await acquire(
        candidates_for(
            config.scan_models,
            temperature=SCAN_TEMPERATURE,
            max_output_tokens=SCAN_MAX_OUTPUT_TOKENS,
        ),
        transport.caller(GeminiRequest(prompt=prompt, media=image, media_mime_type=mime_type)),
        SCAN_SHAPE,
        attempt_timeout=config.scan_attempt_timeout_seconds,
        total_budget=config.scan_total_budget_seconds,
        started_at=started,
    )
    processing_time = round(time.monotonic() - started, 3)
    debug = outcome.diagnostics.as_dict() if outcome.diagnostics else None

    if not outcome.ok and outcome.failure is not FailureKind.DECODE_FAILED:
        message = outcome.message or "Scan failed"
        if outcome.failure in (FailureKind.BUDGET_EXHAUSTED, FailureKind.CANDIDATES_EXHAUSTED):
            message = f"{message}. Crop the photo or try again."
        return ProcessVinylsResponse(error=message, albums=[], debug=debug)

    # Decode failures and empty payloads degrade to zero albums
    albums = outcome.value.albums if outcome.value is not None else []
    log.info(
        "vinyl_scan_complete",
        albums=len(albums),
        model=outcome.model_name,
        tier=int(outcome.tier) if outcome.tier is not None else None,
        processing_time=processing_time,
    )
    return ProcessVinylsResponse(
        albums=albums,
        processing_time=processing_time,
        model=outcome.model_name,
        image_url=request.image_url,
        debug=debug,
    )

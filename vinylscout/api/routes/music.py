"""Music intent and smart recommendation endpoints.

Intent analysis feeds the client's collection filter, so it fails loudly
(4xx/5xx). Smart recommendation is best-effort and reports acquisition
failures inside a 200 body.
"""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from vinylscout.acquisition import FailureKind
from vinylscout.api.deps import error_response, get_transport
from vinylscout.config import Settings, get_settings
from vinylscout.models.contracts import (
    ErrorResponse,
    MusicIntent,
    MusicIntentRequest,
    SmartRecommendRequest,
    SmartRecommendResponse,
)
from vinylscout.services.music_intent import analyze_intent
from vinylscout.services.smart_recommend import recommend
from vinylscout.utils.gemini import Transport

logger = structlog.get_logger()

router = APIRouter(tags=["music"])

_MISSING_KEY = ("configuration_error", "GEMINI_API_KEY not configured")


@router.post(
    "/analyze-music-intent",
    response_model=MusicIntent,
    responses={
        400: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
        502: {"model": ErrorResponse},
    },
)
async def analyze_music_intent(
    body: MusicIntentRequest,
    config: Settings = Depends(get_settings),
    transport: Transport | None = Depends(get_transport),
) -> MusicIntent | JSONResponse:
    query = (body.query or "").strip()
    if not query:
        return error_response(400, "invalid_request", "Missing 'query' field")
    if transport is None:
        return error_response(500, *_MISSING_KEY)

    outcome = await analyze_intent(query, transport=transport, config=config)
    if outcome.failure is FailureKind.INTERNAL:
        return error_response(
            500, "internal_error", outcome.message or "Intent analysis failed", retryable=True
        )
    if not outcome.ok:
        retryable = outcome.failure in (
            FailureKind.BUDGET_EXHAUSTED,
            FailureKind.CANDIDATES_EXHAUSTED,
        )
        return error_response(
            502,
            outcome.failure.value,
            outcome.message or "Gemini API error",
            retryable=retryable,
            detail=outcome.diagnostics.decode_error if outcome.diagnostics else None,
        )
    if outcome.value is None:
        return error_response(
            502, "empty_response", "Empty response from Gemini", retryable=True
        )

    logger.info(
        "music_intent_complete",
        genres=outcome.value.genres,
        energy=outcome.value.energy,
        tier=int(outcome.tier),
    )
    return outcome.value


@router.post(
    "/smart-recommend",
    response_model=SmartRecommendResponse,
    response_model_exclude_none=True,
    responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
async def smart_recommend(
    body: SmartRecommendRequest,
    config: Settings = Depends(get_settings),
    transport: Transport | None = Depends(get_transport),
) -> SmartRecommendResponse | JSONResponse:
    query = (body.query or "").strip()
    if not query or not body.albums:
        return error_response(400, "invalid_request", "Missing 'query' or 'albums' array")
    if transport is None:
        return error_response(500, *_MISSING_KEY)

    try:
        return await recommend(query, body.albums, transport=transport, config=config)
    except Exception as exc:
        logger.exception("smart_recommend_error", error_type=type(exc).__name__)
        return SmartRecommendResponse(error=f"Internal error: {type(exc).__name__}")

"""Pick the best few albums of a pre-filtered collection for an occasion.

The model sees the collection as a compact numbered list keyed by album id.
Anything it recommends outside that list is dropped; the feature is
best-effort, so every failure comes back as an empty recommendation set
with an ``error`` string instead of an HTTP error.
"""

from __future__ import annotations

import structlog

from vinylscout.acquisition import FailureKind, ResponseShape, acquire, candidates_for
from vinylscout.config import Settings
from vinylscout.models.contracts import (
    CollectionAlbum,
    SmartRecommendation,
    SmartRecommendResponse,
)
from vinylscout.utils.gemini import GeminiRequest, Transport
from vinylscout.utils.prompts import load_prompt

log = structlog.get_logger("smart_recommend")

RECOMMEND_SHAPE = ResponseShape(SmartRecommendation, records_field="recommendations")
RECOMMEND_TEMPERATURE = 0.7
RECOMMEND_MAX_OUTPUT_TOKENS = 600


def format_album_list(albums: list[CollectionAlbum]) -> str:
    """One line per album: ``1. [id] Artist — Title (year) | genres | styles``."""
    lines = []
    for i, album in enumerate(albums, start=1):
        line = f"{i}. [{album.id}] {album.artist} — {album.title}"
        if album.year:
            line += f" ({album.year})"
        if album.genres:
            line += f" | {', '.join(album.genres)}"
        if album.styles:
            line += f" | {', '.join(album.styles)}"
        lines.append(line)
    return "\n".join(lines)


def build_recommend_prompt(query: str, albums: list[CollectionAlbum]) -> str:
    return (
        f'Petición del usuario: "{query}"\n\n'
        f"Álbumes disponibles en su colección ({len(albums)} discos pre-filtrados):\n"
        f"{format_album_list(albums)}\n\n"
        "Elige los mejores para esta ocasión."
    )


async def recommend(
    query: str,
    albums: list[CollectionAlbum],
    *,
    transport: Transport,
    config: Settings,
) -> SmartRecommendResponse:
    log.info("smart_recommend_start", query_chars=len(query), albums=len(albums))
    request = GeminiRequest(
        prompt=build_recommend_prompt(query, albums),
        system_instruction=load_prompt("smart_recommend"),
    )
    outcome = await acquire(
        candidates_for(
            config.recommend_models,
            temperature=RECOMMEND_TEMPERATURE,
            max_output_tokens=RECOMMEND_MAX_OUTPUT_TOKENS,
            response_mime_type="application/json",
            response_schema=SmartRecommendation,
        ),
        transport.caller(request),
        RECOMMEND_SHAPE,
        attempt_timeout=config.text_attempt_timeout_seconds,
        total_budget=config.text_total_budget_seconds,
    )

    if not outcome.ok:
        log.warning(
            "smart_recommend_failed",
            failure=outcome.failure.value if outcome.failure else None,
            message=outcome.message,
        )
        error = "Failed to parse AI response"
        if outcome.failure is not FailureKind.DECODE_FAILED:
            error = outcome.message or "Recommendation failed"
        return SmartRecommendResponse(model=outcome.model_name, error=error)

    value = outcome.value
    if value is None:
        # Empty payload: zero picks, not an error
        return SmartRecommendResponse(model=outcome.model_name)

    known = {album.id for album in albums}
    kept = [r for r in value.recommendations if r.album_id in known]
    if len(kept) < len(value.recommendations):
        log.info(
            "smart_recommend_dropped_unknown_ids",
            dropped=[r.album_id for r in value.recommendations if r.album_id not in known],
        )
    return SmartRecommendResponse(
        recommendations=kept,
        mood_summary=value.mood_summary,
        model=outcome.model_name,
    )

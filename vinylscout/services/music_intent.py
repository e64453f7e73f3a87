"""Free-text listening request -> Discogs-style genre/style filters."""

from __future__ import annotations

import structlog

from vinylscout.acquisition import AcquisitionOutcome, ResponseShape, acquire, candidates_for
from vinylscout.config import Settings
from vinylscout.models.contracts import MusicIntent
from vinylscout.utils.gemini import GeminiRequest, Transport
from vinylscout.utils.prompts import load_prompt

log = structlog.get_logger("music_intent")

INTENT_SHAPE = ResponseShape(MusicIntent)
INTENT_TEMPERATURE = 0.3
INTENT_MAX_OUTPUT_TOKENS = 500


def build_intent_prompt(query: str) -> str:
    return f'Petición del usuario: "{query}"'


async def analyze_intent(
    query: str,
    *,
    transport: Transport,
    config: Settings,
) -> AcquisitionOutcome[MusicIntent]:
    log.info("music_intent_start", query_chars=len(query))
    request = GeminiRequest(
        prompt=build_intent_prompt(query),
        system_instruction=load_prompt("music_intent"),
    )
    return await acquire(
        candidates_for(
            config.intent_models,
            temperature=INTENT_TEMPERATURE,
            max_output_tokens=INTENT_MAX_OUTPUT_TOKENS,
            response_mime_type="application/json",
            response_schema=MusicIntent,
        ),
        transport.caller(request),
        INTENT_SHAPE,
        attempt_timeout=config.text_attempt_timeout_seconds,
        total_budget=config.text_total_budget_seconds,
    )

"""Pull the generated payload out of a Gemini response envelope.

Accepts both the REST shape (camelCase) and the SDK's ``model_dump`` shape
(snake_case). A missing candidate, content or text is an *empty payload*:
the call itself worked, the provider just had nothing to say (content
filtering, an empty completion).
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from typing import Any

import structlog

from vinylscout.acquisition.types import EmptyPayload, ExtractedPayload

log = structlog.get_logger("acquisition.envelope")

ENVELOPE_PREVIEW_CHARS = 2000


def _get(data: Mapping[str, Any], camel: str, snake: str) -> Any:
    value = data.get(camel)
    return data.get(snake) if value is None else value


def _finish_reason(envelope: Mapping[str, Any], candidate: Mapping[str, Any]) -> str | None:
    reason = _get(candidate, "finishReason", "finish_reason")
    if reason is None:
        # No candidate at all: the prompt itself was blocked
        feedback = _get(envelope, "promptFeedback", "prompt_feedback") or {}
        if isinstance(feedback, Mapping):
            reason = _get(feedback, "blockReason", "block_reason")
    return str(reason) if reason is not None else None


def unwrap_envelope(envelope: Mapping[str, Any] | None) -> ExtractedPayload | EmptyPayload:
    """Return the first candidate's payload, or EmptyPayload when there is none."""
    if not envelope:
        return EmptyPayload()

    candidates = envelope.get("candidates") or []
    first: Mapping[str, Any] = (
        candidates[0] if candidates and isinstance(candidates[0], Mapping) else {}
    )
    finish_reason = _finish_reason(envelope, first)

    # SDK-side schema parsing already produced a structured value
    parsed = envelope.get("parsed")
    if isinstance(parsed, (dict, list)):
        return ExtractedPayload(content=parsed, finish_reason=finish_reason)

    content = first.get("content")
    parts = content.get("parts") if isinstance(content, Mapping) else None
    for part in parts or []:
        if not isinstance(part, Mapping) or part.get("thought"):
            continue
        value = part.get("text")
        if isinstance(value, (dict, list)):
            return ExtractedPayload(content=value, finish_reason=finish_reason)
        if isinstance(value, str) and value.strip():
            return ExtractedPayload(content=value, finish_reason=finish_reason)

    envelope_preview = json.dumps(envelope, default=str)[:ENVELOPE_PREVIEW_CHARS]
    log.warning(
        "gemini_empty_payload",
        finish_reason=finish_reason,
        candidate_count=len(candidates),
    )
    return EmptyPayload(finish_reason=finish_reason, envelope_preview=envelope_preview)

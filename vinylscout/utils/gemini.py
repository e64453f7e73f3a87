"""Gemini transport for the acquisition pipeline.

Turns a ModelCandidate plus a request into one ``generate_content`` call
and hands back the raw envelope as a plain dict. Every provider failure is
mapped onto the closed ErrorKind set here, so nothing downstream has to
sniff status codes or exception messages.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol

import httpx
import structlog
from google import genai
from google.genai import errors, types

from vinylscout.acquisition.scheduler import CallFn
from vinylscout.acquisition.types import ErrorKind, ModelCandidate
from vinylscout.exceptions import ConfigurationError, TransportError

logger = structlog.get_logger()


@dataclass(frozen=True)
class GeminiRequest:
    """Prompt material for one acquisition; identical for every candidate."""

    prompt: str
    system_instruction: str | None = None
    media: bytes | None = None
    media_mime_type: str = "image/jpeg"


class Transport(Protocol):
    def caller(self, request: GeminiRequest) -> CallFn: ...


def build_config(
    candidate: ModelCandidate,
    system_instruction: str | None = None,
) -> types.GenerateContentConfig:
    """Generation config for one candidate.

    Only series that support thinking get a thinking config; sending one to
    gemini-2.0 is rejected by the API.
    """
    thinking = None
    if candidate.thinking_level:
        thinking = types.ThinkingConfig(thinking_level=candidate.thinking_level)
    elif candidate.thinking_budget is not None:
        thinking = types.ThinkingConfig(thinking_budget=candidate.thinking_budget)

    return types.GenerateContentConfig(
        temperature=candidate.temperature,
        max_output_tokens=candidate.max_output_tokens,
        system_instruction=system_instruction,
        response_mime_type=candidate.response_mime_type,
        response_schema=candidate.response_schema,
        thinking_config=thinking,
    )


def build_contents(request: GeminiRequest) -> list[types.Part]:
    """Prompt text first, then the optional inline image."""
    parts = [types.Part(text=request.prompt)]
    if request.media is not None:
        parts.append(types.Part.from_bytes(data=request.media, mime_type=request.media_mime_type))
    return parts


def classify_api_error(exc: errors.APIError) -> TransportError:
    status = exc.code
    detail = exc.message or str(exc)
    return TransportError(
        ErrorKind.from_status(status),
        f"Gemini {status}: {detail[:200]}",
        status=status,
    )


class GeminiTransport:
    """Async ``generate_content`` wrapper bound to one API key."""

    def __init__(self, api_key: str, client: genai.Client | None = None) -> None:
        if client is None:
            if not api_key:
                raise ConfigurationError("GEMINI_API_KEY not configured")
            client = genai.Client(api_key=api_key)
        self._client = client

    async def invoke(self, candidate: ModelCandidate, request: GeminiRequest) -> dict[str, Any]:
        try:
            response = await self._client.aio.models.generate_content(
                model=candidate.model,
                contents=build_contents(request),
                config=build_config(candidate, request.system_instruction),
            )
        except errors.APIError as exc:
            raise classify_api_error(exc) from exc
        except httpx.TimeoutException as exc:
            raise TransportError(ErrorKind.TIMEOUT, f"transport timeout: {exc}") from exc
        except httpx.HTTPError as exc:
            raise TransportError(
                ErrorKind.NETWORK, f"{type(exc).__name__}: {str(exc)[:200]}"
            ) from exc

        envelope = response.model_dump(mode="json", exclude_none=True)
        usage = envelope.get("usage_metadata") or {}
        logger.debug(
            "gemini_usage",
            model=candidate.model,
            prompt_tokens=usage.get("prompt_token_count"),
            output_tokens=usage.get("candidates_token_count"),
        )
        return envelope

    def caller(self, request: GeminiRequest) -> CallFn:
        """Bind ``request`` so the scheduler only has to pass a candidate."""

        async def call(candidate: ModelCandidate) -> dict[str, Any]:
            return await self.invoke(candidate, request)

        return call

"""Value types for structured-output acquisition.

Everything here is request-scoped and immutable once built. Only
AcquisitionOutcome ever leaves the acquisition package.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Any, Generic, TypeVar

T = TypeVar("T")

PREVIEW_CHARS = 800


def preview(text: str | None, limit: int = PREVIEW_CHARS) -> str:
    """Bounded preview of raw model output for logs and diagnostics."""
    if not text:
        return ""
    return text if len(text) <= limit else text[:limit]


class ErrorKind(str, Enum):
    """Closed set of provider failure kinds produced by the transport."""

    RATE_LIMITED = "rate_limited"
    SERVER_ERROR = "server_error"
    UNAVAILABLE = "unavailable"
    NETWORK = "network"
    TIMEOUT = "timeout"
    REJECTED = "rejected"

    @property
    def retryable(self) -> bool:
        # A rejected request stays rejected on every model.
        return self is not ErrorKind.REJECTED

    @classmethod
    def from_status(cls, status: int) -> ErrorKind:
        return _STATUS_KINDS.get(status, cls.REJECTED)


_STATUS_KINDS: dict[int, ErrorKind] = {
    429: ErrorKind.RATE_LIMITED,
    500: ErrorKind.SERVER_ERROR,
    503: ErrorKind.UNAVAILABLE,
}


class AttemptOutcome(str, Enum):
    SUCCESS = "success"
    RETRYABLE = "retryable"
    FATAL = "fatal"
    TIMEOUT = "timeout"


@dataclass(frozen=True)
class ModelCandidate:
    """One callable model variant plus its generation settings."""

    model: str
    temperature: float = 0.1
    max_output_tokens: int = 8192
    thinking_level: str | None = None
    thinking_budget: int | None = None
    response_mime_type: str | None = None
    response_schema: Any = field(default=None, compare=False, hash=False)


def candidates_for(
    models: list[str] | tuple[str, ...],
    *,
    temperature: float,
    max_output_tokens: int,
    response_mime_type: str | None = None,
    response_schema: Any = None,
) -> tuple[ModelCandidate, ...]:
    """Build an ordered candidate list, choosing the thinking switch per series.

    gemini-3 models take a thinking *level* (budgets misbehave there),
    gemini-2.5 models take a zero thinking budget, older series accept no
    thinking config at all.
    """
    candidates = []
    for model in models:
        thinking_level = None
        thinking_budget = None
        if "gemini-3" in model:
            thinking_level = "MINIMAL"
        elif "gemini-2.5" in model:
            thinking_budget = 0
        candidates.append(
            ModelCandidate(
                model=model,
                temperature=temperature,
                max_output_tokens=max_output_tokens,
                thinking_level=thinking_level,
                thinking_budget=thinking_budget,
                response_mime_type=response_mime_type,
                response_schema=response_schema,
            )
        )
    return tuple(candidates)


@dataclass(frozen=True)
class InvocationAttempt:
    """One completed try against one candidate."""

    candidate: ModelCandidate
    started_at: float
    elapsed: float
    outcome: AttemptOutcome
    envelope: dict[str, Any] | None = None
    error: str | None = None
    error_kind: ErrorKind | None = None
    status: int | None = None

    @property
    def reason(self) -> str:
        if self.outcome is AttemptOutcome.SUCCESS:
            return "ok"
        if self.outcome is AttemptOutcome.TIMEOUT:
            return self.error or "timeout"
        if self.status is not None:
            return str(self.status)
        return self.error or (self.error_kind.value if self.error_kind else "error")

    def summary(self) -> dict[str, Any]:
        return {
            "model": self.candidate.model,
            "outcome": self.outcome.value,
            "reason": self.reason,
            "elapsed_ms": round(self.elapsed * 1000),
        }


@dataclass(frozen=True)
class ExtractedPayload:
    """Text (or an already-structured value) pulled out of an envelope."""

    content: str | dict[str, Any] | list[Any]
    finish_reason: str | None = None

    @property
    def truncated(self) -> bool:
        return self.finish_reason == "MAX_TOKENS"

    @property
    def text(self) -> str | None:
        return self.content if isinstance(self.content, str) else None


@dataclass(frozen=True)
class EmptyPayload:
    """The call succeeded but carried no usable content."""

    finish_reason: str | None = None
    envelope_preview: str = ""


class DecodeTier(IntEnum):
    """Recovery strategy that produced a value. Higher means less confidence."""

    STRICT = 0
    FENCE_STRIPPED = 1
    BRACE_SPAN = 2
    TRUNCATION_REPAIRED = 3
    FIELD_PATTERNS = 4


@dataclass(frozen=True)
class DecodedResult(Generic[T]):
    value: T
    tier: DecodeTier


@dataclass(frozen=True)
class DecodeFailure:
    error: str
    preview: str
    tiers_tried: tuple[DecodeTier, ...] = ()


class FailureKind(str, Enum):
    BUDGET_EXHAUSTED = "budget_exhausted"
    CANDIDATES_EXHAUSTED = "candidates_exhausted"
    PROVIDER_REJECTED = "provider_rejected"
    DECODE_FAILED = "decode_failed"
    INTERNAL = "internal"


@dataclass(frozen=True)
class Diagnostics:
    """Operator-facing detail attached to salvaged, empty or failed outcomes."""

    error: str | None = None
    finish_reason: str | None = None
    response_preview: str | None = None
    decode_error: str | None = None
    tier: int | None = None
    attempts: tuple[dict[str, Any], ...] = ()

    def as_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "error": self.error,
            "finishReason": self.finish_reason,
            "responsePreview": self.response_preview,
            "parseError": self.decode_error,
            "tier": self.tier,
            "attempts": list(self.attempts) or None,
        }
        return {k: v for k, v in data.items() if v is not None}


@dataclass(frozen=True)
class AcquisitionOutcome(Generic[T]):
    """Terminal result of one acquisition: a success or a classified failure.

    A success may carry no decoded value at all when the provider returned
    an empty payload; callers treat that as zero records.
    """

    decoded: DecodedResult[T] | None = None
    model: ModelCandidate | None = None
    failure: FailureKind | None = None
    message: str | None = None
    elapsed: float = 0.0
    attempts: tuple[InvocationAttempt, ...] = ()
    diagnostics: Diagnostics | None = None

    @property
    def ok(self) -> bool:
        return self.failure is None

    @property
    def value(self) -> T | None:
        return self.decoded.value if self.decoded is not None else None

    @property
    def tier(self) -> DecodeTier | None:
        return self.decoded.tier if self.decoded is not None else None

    @property
    def model_name(self) -> str | None:
        return self.model.model if self.model is not None else None

"""Result assembler: scheduler + unwrapper + decode cascade -> one outcome.

``acquire`` is the only entry point the feature services use. It never
raises (task cancellation aside): every fault, expected or not, ends up as
an AcquisitionOutcome the route can render.
"""

from __future__ import annotations

import json
import time
from collections.abc import Callable, Sequence
from typing import Any, TypeVar

import structlog
from pydantic import BaseModel

from vinylscout.acquisition.decode import ResponseShape, decode
from vinylscout.acquisition.envelope import unwrap_envelope
from vinylscout.acquisition.scheduler import (
    CallFn,
    ScheduleResult,
    ScheduleState,
    run_candidates,
)
from vinylscout.acquisition.types import (
    AcquisitionOutcome,
    DecodeFailure,
    DecodeTier,
    Diagnostics,
    EmptyPayload,
    FailureKind,
    ModelCandidate,
    preview,
)

log = structlog.get_logger("acquisition")

M = TypeVar("M", bound=BaseModel)

_SCHEDULE_FAILURES: dict[ScheduleState, FailureKind] = {
    ScheduleState.BUDGET_EXHAUSTED: FailureKind.BUDGET_EXHAUSTED,
    ScheduleState.ABORTED: FailureKind.PROVIDER_REJECTED,
    ScheduleState.EXHAUSTED: FailureKind.CANDIDATES_EXHAUSTED,
}


def _record_count(value: Any, shape: ResponseShape[Any]) -> int | None:
    if not shape.records_field:
        return None
    return len(getattr(value, shape.records_field))


def assemble(
    schedule: ScheduleResult,
    shape: ResponseShape[M],
    *,
    elapsed: float,
) -> AcquisitionOutcome[M]:
    """Build the outcome for a finished schedule."""
    trail = tuple(a.summary() for a in schedule.attempts)
    chosen = schedule.chosen

    if chosen is None:
        kind = _SCHEDULE_FAILURES[schedule.state]
        return AcquisitionOutcome(
            failure=kind,
            message=schedule.failure_message(),
            elapsed=elapsed,
            attempts=schedule.attempts,
            diagnostics=Diagnostics(error=kind.value, attempts=trail),
        )

    payload = unwrap_envelope(chosen.envelope)
    if isinstance(payload, EmptyPayload):
        # Not a failure: the caller gets zero records and the reason why
        return AcquisitionOutcome(
            model=chosen.candidate,
            elapsed=elapsed,
            attempts=schedule.attempts,
            diagnostics=Diagnostics(
                error="empty_response",
                finish_reason=payload.finish_reason,
                response_preview=payload.envelope_preview,
                attempts=trail,
            ),
        )

    result = decode(payload.content, shape, truncated=payload.truncated)
    raw_preview = payload.text if payload.text is not None else json.dumps(payload.content)

    if isinstance(result, DecodeFailure):
        return AcquisitionOutcome(
            model=chosen.candidate,
            failure=FailureKind.DECODE_FAILED,
            message=f"Could not decode {chosen.candidate.model} output",
            elapsed=elapsed,
            attempts=schedule.attempts,
            diagnostics=Diagnostics(
                error="decode_failed",
                finish_reason=payload.finish_reason,
                response_preview=result.preview,
                decode_error=result.error,
                tier=None,
                attempts=trail,
            ),
        )

    records = _record_count(result.value, shape)
    diagnostics = None
    if result.tier is not DecodeTier.STRICT or records == 0:
        diagnostics = Diagnostics(
            finish_reason=payload.finish_reason,
            response_preview=preview(raw_preview),
            tier=int(result.tier),
            attempts=trail,
        )

    log.info(
        "acquisition_complete",
        model=chosen.candidate.model,
        tier=int(result.tier),
        records=records,
        finish_reason=payload.finish_reason,
        elapsed_ms=round(elapsed * 1000),
    )
    return AcquisitionOutcome(
        decoded=result,
        model=chosen.candidate,
        elapsed=elapsed,
        attempts=schedule.attempts,
        diagnostics=diagnostics,
    )


async def acquire(
    candidates: Sequence[ModelCandidate],
    call: CallFn,
    shape: ResponseShape[M],
    *,
    attempt_timeout: float,
    total_budget: float,
    started_at: float | None = None,
    clock: Callable[[], float] = time.monotonic,
) -> AcquisitionOutcome[M]:
    """Run the full acquisition pipeline for one request."""
    start = clock() if started_at is None else started_at
    try:
        schedule = await run_candidates(
            candidates,
            call,
            attempt_timeout=attempt_timeout,
            total_budget=total_budget,
            started_at=start,
            clock=clock,
        )
        return assemble(schedule, shape, elapsed=clock() - start)
    except Exception as exc:
        log.error(
            "acquisition_internal_error",
            error_type=type(exc).__name__,
            exc_info=exc,
        )
        return AcquisitionOutcome(
            failure=FailureKind.INTERNAL,
            message=str(exc) or type(exc).__name__,
            elapsed=clock() - start,
        )

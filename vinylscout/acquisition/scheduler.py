"""Model invocation scheduler: ordered fallback across candidate models.

Candidates are tried strictly one after another. A retryable failure or a
per-attempt timeout moves on to the next candidate; a rejected request
aborts the whole run, since a malformed request is not fixed by switching
models. Before every attempt the total budget is checked; an attempt that
is already in flight is never cut short by the budget, only by its own
timeout.

There is no backoff and no second call to the same candidate.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Any

import structlog

from vinylscout.acquisition.types import (
    AttemptOutcome,
    ErrorKind,
    InvocationAttempt,
    ModelCandidate,
)
from vinylscout.exceptions import TransportError

log = structlog.get_logger("acquisition.scheduler")

CallFn = Callable[[ModelCandidate], Awaitable[dict[str, Any]]]


class ScheduleState(str, Enum):
    TRYING = "trying"
    SUCCEEDED = "succeeded"
    EXHAUSTED = "exhausted"
    ABORTED = "aborted"
    BUDGET_EXHAUSTED = "budget_exhausted"


@dataclass(frozen=True)
class ScheduleResult:
    state: ScheduleState
    attempts: tuple[InvocationAttempt, ...]
    elapsed: float
    total_budget: float

    @property
    def chosen(self) -> InvocationAttempt | None:
        if self.state is ScheduleState.SUCCEEDED:
            return self.attempts[-1]
        return None

    @property
    def errors(self) -> list[str]:
        """``model: reason`` for every failed attempt, in attempt order."""
        return [
            f"{a.candidate.model}: {a.reason}"
            for a in self.attempts
            if a.outcome is not AttemptOutcome.SUCCESS
        ]

    def failure_message(self) -> str:
        joined = "; ".join(self.errors)
        if self.state is ScheduleState.BUDGET_EXHAUSTED:
            msg = f"Time budget of {self.total_budget:g}s exhausted"
            return f"{msg} ({joined})" if joined else msg
        if self.state is ScheduleState.ABORTED:
            last = self.attempts[-1]
            msg = f"{last.candidate.model} rejected the request ({last.reason})"
            return f"{msg}: {last.error}" if last.error else msg
        if not self.attempts:
            return "No candidate models configured"
        return f"All models failed: {joined}"


def next_state(attempt: InvocationAttempt) -> ScheduleState:
    """Transition after one attempt. Total over AttemptOutcome."""
    if attempt.outcome is AttemptOutcome.SUCCESS:
        return ScheduleState.SUCCEEDED
    if attempt.outcome is AttemptOutcome.FATAL:
        return ScheduleState.ABORTED
    return ScheduleState.TRYING


async def _attempt(
    candidate: ModelCandidate,
    call: CallFn,
    attempt_timeout: float,
    clock: Callable[[], float],
) -> InvocationAttempt:
    started = clock()
    try:
        async with asyncio.timeout(attempt_timeout):
            envelope = await call(candidate)
    except TimeoutError:
        return InvocationAttempt(
            candidate=candidate,
            started_at=started,
            elapsed=clock() - started,
            outcome=AttemptOutcome.TIMEOUT,
            error=f"timeout {attempt_timeout:g}s",
            error_kind=ErrorKind.TIMEOUT,
        )
    except TransportError as exc:
        if exc.kind is ErrorKind.TIMEOUT:
            outcome = AttemptOutcome.TIMEOUT
        elif exc.retryable:
            outcome = AttemptOutcome.RETRYABLE
        else:
            outcome = AttemptOutcome.FATAL
        return InvocationAttempt(
            candidate=candidate,
            started_at=started,
            elapsed=clock() - started,
            outcome=outcome,
            error=str(exc)[:200],
            error_kind=exc.kind,
            status=exc.status,
        )
    return InvocationAttempt(
        candidate=candidate,
        started_at=started,
        elapsed=clock() - started,
        outcome=AttemptOutcome.SUCCESS,
        envelope=envelope,
    )


async def run_candidates(
    candidates: Sequence[ModelCandidate],
    call: CallFn,
    *,
    attempt_timeout: float,
    total_budget: float,
    started_at: float | None = None,
    clock: Callable[[], float] = time.monotonic,
) -> ScheduleResult:
    """Try ``candidates`` in order until one succeeds at the transport level.

    ``started_at`` lets the caller count work done before the first call
    (an image download, say) against ``total_budget``. Exceptions other
    than TransportError and timeouts propagate unchanged.
    """
    start = clock() if started_at is None else started_at
    attempts: list[InvocationAttempt] = []
    state = ScheduleState.TRYING
    index = 0

    while state is ScheduleState.TRYING:
        if index >= len(candidates):
            state = ScheduleState.EXHAUSTED
            break
        elapsed = clock() - start
        if elapsed > total_budget:
            log.warning(
                "gemini_budget_exhausted",
                elapsed_ms=round(elapsed * 1000),
                budget_s=total_budget,
                skipped=[c.model for c in candidates[index:]],
            )
            state = ScheduleState.BUDGET_EXHAUSTED
            break

        candidate = candidates[index]
        log.info(
            "gemini_attempt_start",
            model=candidate.model,
            elapsed_ms=round(elapsed * 1000),
            timeout_s=attempt_timeout,
        )
        attempt = await _attempt(candidate, call, attempt_timeout, clock)
        attempts.append(attempt)
        state = next_state(attempt)
        index += 1

        if state is ScheduleState.SUCCEEDED:
            log.info(
                "gemini_attempt_ok",
                model=candidate.model,
                attempt_ms=round(attempt.elapsed * 1000),
                total_ms=round((clock() - start) * 1000),
            )
        else:
            log.warning(
                "gemini_attempt_failed",
                model=candidate.model,
                outcome=attempt.outcome.value,
                reason=attempt.reason,
                error=attempt.error,
            )

    return ScheduleResult(
        state=state,
        attempts=tuple(attempts),
        elapsed=clock() - start,
        total_budget=total_budget,
    )

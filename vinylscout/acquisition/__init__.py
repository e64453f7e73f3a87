"""Resilient structured-output acquisition from generative models."""

from vinylscout.acquisition.types import (
    AcquisitionOutcome,
    AttemptOutcome,
    DecodedResult,
    DecodeFailure,
    DecodeTier,
    Diagnostics,
    EmptyPayload,
    ErrorKind,
    ExtractedPayload,
    FailureKind,
    InvocationAttempt,
    ModelCandidate,
    candidates_for,
)
from vinylscout.acquisition.decode import ResponseShape, decode
from vinylscout.acquisition.envelope import unwrap_envelope
from vinylscout.acquisition.scheduler import (
    ScheduleResult,
    ScheduleState,
    run_candidates,
)
from vinylscout.acquisition.assembler import acquire, assemble

__all__ = [
    "AcquisitionOutcome",
    "AttemptOutcome",
    "DecodeFailure",
    "DecodeTier",
    "DecodedResult",
    "Diagnostics",
    "EmptyPayload",
    "ErrorKind",
    "ExtractedPayload",
    "FailureKind",
    "InvocationAttempt",
    "ModelCandidate",
    "ResponseShape",
    "ScheduleResult",
    "ScheduleState",
    "acquire",
    "assemble",
    "candidates_for",
    "decode",
    "run_candidates",
    "unwrap_envelope",
]

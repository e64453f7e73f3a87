"""Structured decode cascade for free-form model output.

Model text is decoded by progressively more forgiving strategies until one
produces a value the caller's pydantic model accepts:

    0  strict     the payload as-is (or an already-structured value)
    1  fence      code fence, control characters and whitespace stripped
    2  span       first "{" to last "}"
    3  repair     cut at the last complete record, close what is still open
    4  patterns   "field": value pairs scraped from flat {...} fragments

The pydantic model is the only definition of "valid": tier 4 takes its
field names from the record model and validates every fragment with it.
decode() never raises; a total miss comes back as a DecodeFailure.
"""

from __future__ import annotations

import functools
import json
import re
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Generic, TypeVar, get_args

import structlog
from pydantic import BaseModel, ValidationError

from vinylscout.acquisition.types import (
    DecodedResult,
    DecodeFailure,
    DecodeTier,
    preview,
)

log = structlog.get_logger("acquisition.decode")

M = TypeVar("M", bound=BaseModel)

_FENCE_OPEN = re.compile(r"^\s*```[\w+-]*[ \t]*\r?\n?")
_FENCE_CLOSE = re.compile(r"\r?\n?[ \t]*```\s*$")
# Everything below 0x20 except \t \n \r, plus DEL
_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]")
_FLAT_OBJECT = re.compile(r"\{[^{}]*\}")
_JSON_SCALAR = r'"(?:[^"\\]|\\.)*"|-?\d+(?:\.\d+)?(?:[eE][+-]?\d+)?|true|false|null'
# A scalar must be followed by the next pair or the end of the fragment
_SCALAR_END = r"(?=\s*[,}])"

MAX_REPAIR_CUTS = 5
# json and pydantic both recurse per nesting level
_DECODE_ERRORS = (ValueError, RecursionError)


@dataclass(frozen=True)
class ResponseShape(Generic[M]):
    """What the caller expects back: a pydantic model, optionally record-based.

    ``records_field`` names a ``list[Record]`` field on ``model``. Shapes with
    a record list also accept a bare top-level array and can be salvaged
    record by record.
    """

    model: type[M]
    records_field: str | None = None

    @property
    def record_model(self) -> type[BaseModel] | None:
        if not self.records_field:
            return None
        annotation = self.model.model_fields[self.records_field].annotation
        for arg in get_args(annotation):
            if isinstance(arg, type) and issubclass(arg, BaseModel):
                return arg
        return None

    def validate(self, value: Any) -> M:
        if self.records_field and isinstance(value, list):
            value = {self.records_field: value}
        return self.model.model_validate(value)

    def from_records(self, records: list[BaseModel]) -> M:
        return self.model.model_validate({self.records_field: records})

    def empty(self) -> M | None:
        """Zero-record value, or None when the shape is not record-based."""
        return self.from_records([]) if self.records_field else None


class _NotApplicable(Exception):
    """A tier does not apply to this payload; skip it silently."""


def clean_text(text: str) -> str:
    """Strip one wrapping code fence (closed or not) and control characters."""
    text = _CONTROL_CHARS.sub("", text).strip()
    if text.startswith("```"):
        text = _FENCE_OPEN.sub("", text, count=1)
        text = _FENCE_CLOSE.sub("", text, count=1)
    return text.strip()


def _structured_preview(value: Any) -> str:
    try:
        return preview(json.dumps(value, default=str))
    except _DECODE_ERRORS:
        return preview(type(value).__name__)


def _describe(exc: Exception) -> str:
    if isinstance(exc, ValidationError):
        first = exc.errors()[0]
        loc = ".".join(str(p) for p in first["loc"]) or "<root>"
        return f"{exc.error_count()} validation error(s), first at {loc}: {first['msg']}"
    return str(exc)[:200]


# --- Tier 0-2 -------------------------------------------------------------


def _strict(text: str, shape: ResponseShape[Any], truncated: bool) -> Any:
    return shape.validate(json.loads(text))


def _fence_stripped(text: str, shape: ResponseShape[Any], truncated: bool) -> Any:
    cleaned = clean_text(text)
    if cleaned == text:
        raise _NotApplicable
    return shape.validate(json.loads(cleaned))


def _brace_span(text: str, shape: ResponseShape[Any], truncated: bool) -> Any:
    cleaned = clean_text(text)
    start, end = cleaned.find("{"), cleaned.rfind("}")
    if start == -1 or end <= start:
        raise ValueError("no {...} span in payload")
    try:
        return shape.validate(json.loads(cleaned[start : end + 1]))
    except _DECODE_ERRORS:
        # A record list may come back as a bare array inside prose
        if not shape.records_field:
            raise
        start, end = cleaned.find("["), cleaned.rfind("]")
        if start == -1 or end <= start:
            raise
        return shape.validate(json.loads(cleaned[start : end + 1]))


# --- Tier 3: truncation repair ---------------------------------------------


@dataclass(frozen=True)
class _Scan:
    open_at_end: tuple[str, ...]
    # (index of "}", brackets still open right after it)
    record_ends: tuple[tuple[int, tuple[str, ...]], ...]


def _scan_structure(text: str) -> _Scan:
    """String-aware bracket scan.

    The records array is the first array seen directly holding an object.
    A record end is a "}" that closes one of its elements; objects closing
    deeper, inside a record still being written, never count.
    """
    stack: list[str] = []
    ends: list[tuple[int, tuple[str, ...]]] = []
    record_depth: int | None = None
    in_string = False
    escaped = False
    for i, ch in enumerate(text):
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch in "{[":
            if ch == "{" and record_depth is None and stack and stack[-1] == "[":
                record_depth = len(stack)
            stack.append(ch)
        elif ch in "}]":
            if not stack:
                continue
            stack.pop()
            if ch == "}" and len(stack) == record_depth and stack[-1] == "[":
                ends.append((i, tuple(stack)))
    return _Scan(open_at_end=tuple(stack), record_ends=tuple(ends))


def _closers(open_brackets: tuple[str, ...]) -> str:
    return "".join("}" if b == "{" else "]" for b in reversed(open_brackets))


def _truncation_repaired(text: str, shape: ResponseShape[Any], truncated: bool) -> Any:
    cleaned = clean_text(text)
    start = 0 if cleaned.startswith("[") else cleaned.find("{")
    if start == -1:
        raise ValueError("no structure to repair")
    body = cleaned[start:]
    scan = _scan_structure(body)
    if not truncated and not scan.open_at_end:
        raise _NotApplicable
    if not scan.record_ends:
        raise ValueError("no complete record before the cut")

    last_error: Exception = ValueError("repair failed")
    for index, still_open in reversed(scan.record_ends[-MAX_REPAIR_CUTS:]):
        repaired = body[: index + 1] + _closers(still_open)
        try:
            return shape.validate(json.loads(repaired))
        except _DECODE_ERRORS as exc:
            last_error = exc
    raise last_error


# --- Tier 4: field patterns --------------------------------------------------


@dataclass(frozen=True)
class _FieldPattern:
    key: str
    present: re.Pattern[str]
    value: re.Pattern[str]


@functools.lru_cache(maxsize=32)
def _field_patterns(record_model: type[BaseModel]) -> tuple[_FieldPattern, ...]:
    patterns = []
    for name, info in record_model.model_fields.items():
        key = re.escape(info.alias or name)
        patterns.append(
            _FieldPattern(
                key=info.alias or name,
                present=re.compile(r'"' + key + r'"\s*:'),
                value=re.compile(
                    r'"' + key + r'"\s*:\s*(' + _JSON_SCALAR + ")" + _SCALAR_END
                ),
            )
        )
    return tuple(patterns)


def _scrape_fields(fragment: str, record_model: type[BaseModel]) -> dict[str, Any] | None:
    """Known fields of one fragment, or None when any of them is malformed."""
    fields: dict[str, Any] = {}
    for pattern in _field_patterns(record_model):
        if pattern.present.search(fragment) is None:
            continue
        match = pattern.value.search(fragment)
        if match is None:
            return None
        try:
            fields[pattern.key] = json.loads(match.group(1))
        except ValueError:
            return None
    return fields


def _field_patterns_tier(text: str, shape: ResponseShape[Any], truncated: bool) -> Any:
    record_model = shape.record_model
    if record_model is None:
        raise _NotApplicable
    records: list[BaseModel] = []
    dropped = 0
    for match in _FLAT_OBJECT.finditer(clean_text(text)):
        fields = _scrape_fields(match.group(0), record_model)
        if fields is None:
            dropped += 1
            continue
        if not fields:
            continue
        try:
            records.append(record_model.model_validate(fields))
        except ValidationError:
            dropped += 1
    if dropped:
        log.debug("decode_fragments_dropped", dropped=dropped, kept=len(records))
    if not records:
        raise ValueError("no well-formed record fragments")
    return shape.from_records(records)


_Strategy = Callable[[str, ResponseShape[Any], bool], Any]

_TEXT_TIERS: tuple[tuple[DecodeTier, _Strategy], ...] = (
    (DecodeTier.STRICT, _strict),
    (DecodeTier.FENCE_STRIPPED, _fence_stripped),
    (DecodeTier.BRACE_SPAN, _brace_span),
    (DecodeTier.TRUNCATION_REPAIRED, _truncation_repaired),
    (DecodeTier.FIELD_PATTERNS, _field_patterns_tier),
)


def decode(
    payload: str | dict[str, Any] | list[Any] | None,
    shape: ResponseShape[M],
    *,
    truncated: bool = False,
) -> DecodedResult[M] | DecodeFailure:
    """Decode ``payload`` into ``shape.model``, trying each tier in order.

    ``truncated`` comes from the provider's finish reason and makes the
    repair tier run even when the brackets happen to look balanced.
    """
    if payload is None or (isinstance(payload, str) and not payload.strip()):
        return DecodeFailure(error="empty payload", preview="")

    if not isinstance(payload, str):
        try:
            return DecodedResult(value=shape.validate(payload), tier=DecodeTier.STRICT)
        except _DECODE_ERRORS as exc:
            return DecodeFailure(
                error=_describe(exc),
                preview=_structured_preview(payload),
                tiers_tried=(DecodeTier.STRICT,),
            )

    tried: list[DecodeTier] = []
    errors: list[str] = []
    for tier, strategy in _TEXT_TIERS:
        try:
            value = strategy(payload, shape, truncated)
        except _NotApplicable:
            continue
        except _DECODE_ERRORS as exc:
            tried.append(tier)
            errors.append(f"tier {int(tier)}: {_describe(exc)}")
            continue
        if tier is not DecodeTier.STRICT:
            log.info(
                "decode_tier_succeeded",
                tier=int(tier),
                shape=shape.model.__name__,
                failed_tiers=[int(t) for t in tried],
            )
        return DecodedResult(value=value, tier=tier)

    log.warning(
        "decode_failed",
        shape=shape.model.__name__,
        tiers=[int(t) for t in tried],
        preview=preview(payload, 200),
    )
    return DecodeFailure(
        error="; ".join(errors)[:600],
        preview=preview(payload),
        tiers_tried=tuple(tried),
    )

"""Normalize raw trace submissions into canonical TraceData.

Resolves the event kind (unknown names degrade to CUSTOM), infers the
direction from the kind when the caller did not give one, fills in a
correlation id and empty metadata. Runs before redaction so the
redactor only ever sees a complete, canonical payload.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any
from uuid import uuid4

from pydantic import ValidationError

from paytrace.errors import TraceInputError
from paytrace.models.event import TraceData, TraceDirection, TraceEventKind

_OUTBOUND_EVENTS = frozenset({TraceEventKind.PROVIDER_REQUEST_SENT})
_INBOUND_EVENTS = frozenset({
    TraceEventKind.PROVIDER_RESPONSE_RECEIVED,
    TraceEventKind.WEBHOOK_RECEIVED,
    TraceEventKind.WEBHOOK_DUPLICATE,
})


def generate_correlation_id() -> str:
    """Return a fresh random correlation id."""
    return str(uuid4())


def resolve_event(value: TraceEventKind | str | None) -> TraceEventKind:
    """Resolve a raw event value. Unknown or missing names become CUSTOM."""
    if isinstance(value, TraceEventKind):
        return value
    if isinstance(value, str):
        return TraceEventKind.from_value(value)
    return TraceEventKind.CUSTOM


def infer_direction(event: TraceEventKind) -> TraceDirection:
    """Infer the direction of an event from its kind."""
    if event in _OUTBOUND_EVENTS:
        return TraceDirection.OUTBOUND
    if event in _INBOUND_EVENTS:
        return TraceDirection.INBOUND
    return TraceDirection.INTERNAL


def resolve_direction(
    value: TraceDirection | str | None,
    event: TraceEventKind,
) -> TraceDirection:
    """Keep an explicit direction, otherwise infer it from the event kind.

    Raises:
        TraceInputError: If value is a string that names no direction.
    """
    if isinstance(value, TraceDirection):
        return value
    if value is None:
        return infer_direction(event)
    try:
        return TraceDirection(value)
    except ValueError as exc:
        raise TraceInputError(f"Unknown trace direction {value!r}") from exc


def normalize_submission(submission: Mapping[str, Any] | TraceData) -> TraceData:
    """Build a canonical TraceData from a raw submission.

    Args:
        submission: A mapping using TraceData field names, or an
            existing TraceData (re-normalized so a missing correlation
            id is filled in).

    Returns:
        The normalized TraceData. Its payload is not yet redacted or
        validated; pass the redacted payload through with_payload.

    Raises:
        TraceInputError: If payment_id is missing or the submission is
            otherwise malformed.
    """
    if isinstance(submission, TraceData):
        raw: dict[str, Any] = submission.model_dump(exclude={"payload"})
        raw["payload"] = submission.payload
    elif isinstance(submission, Mapping):
        raw = dict(submission)
    else:
        raise TraceInputError(
            f"Trace submission must be a mapping, got {type(submission).__name__}"
        )

    if not raw.get("payment_id"):
        raise TraceInputError("payment_id is required")

    payload = raw.get("payload")
    if payload is not None and not isinstance(payload, Mapping):
        raise TraceInputError("payload must be a mapping")

    event = resolve_event(raw.get("event"))
    raw["event"] = event
    raw["direction"] = resolve_direction(raw.get("direction"), event)
    if not raw.get("correlation_id"):
        raw["correlation_id"] = generate_correlation_id()
    if raw.get("metadata") is None:
        raw["metadata"] = {}
    # Payloads of any depth are accepted here; with_payload validates
    # them once redaction has bounded their nesting.
    raw["payload"] = {}

    try:
        data = TraceData.model_validate(raw)
    except ValidationError as exc:
        raise TraceInputError(f"Invalid trace submission: {exc}") from exc

    if not payload:
        return data
    return data.model_copy(update={"payload": dict(payload)})


def with_payload(data: TraceData, payload: Mapping[str, Any]) -> TraceData:
    """Return a copy of data carrying a validated JSON payload.

    Raises:
        TraceInputError: If the payload holds values that are not JSON.
    """
    try:
        return TraceData.model_validate(
            {**data.model_dump(exclude={"payload"}), "payload": dict(payload)}
        )
    except ValidationError as exc:
        raise TraceInputError(f"Invalid trace payload: {exc}") from exc

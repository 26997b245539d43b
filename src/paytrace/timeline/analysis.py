"""Issue and anomaly detection over an ordered event sequence.

Two independent families of checks:

- Structural issues (analyze): provider timeouts, duplicate webhooks,
  slow responses, and a count-based "missing response" check.
- Pairing-aware anomalies (detect_anomalies): outbound requests with no
  response sharing their correlation id inside a time window, and
  request/response pairs whose latency exceeds a threshold.

All functions are pure and operate on an already-fetched, immutable
sequence of events. An empty sequence yields no results.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime, timedelta
from enum import Enum
from typing import Any

from pydantic import BaseModel

from paytrace.models.event import TraceDirection, TraceEvent, TraceEventKind

SLOW_RESPONSE_THRESHOLD_MS = 5000
ORPHAN_WINDOW_SECONDS = 60
DEFAULT_LATENCY_THRESHOLD_MS = 5000

# Responses counted against requests by the structural checks.
RESPONSE_EVENTS: frozenset[TraceEventKind] = frozenset({
    TraceEventKind.PROVIDER_RESPONSE_RECEIVED,
    TraceEventKind.PROVIDER_ERROR,
    TraceEventKind.PROVIDER_TIMEOUT,
})

# Any of these closes an outbound request for orphan detection.
CLOSING_EVENTS: frozenset[TraceEventKind] = RESPONSE_EVENTS | {
    TraceEventKind.PROVIDER_EXCEPTION,
}


class Severity(str, Enum):
    """How urgently an issue or anomaly needs attention."""

    high = "high"
    medium = "medium"


class Issue(BaseModel):
    """A structural problem found in a timeline. Never persisted."""

    model_config = {"frozen": True}

    type: str
    severity: Severity
    message: str
    events: list[int] | None = None

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)


class Anomaly(BaseModel):
    """A pairing-aware finding; extra fields depend on the anomaly type."""

    model_config = {"frozen": True, "extra": "allow"}

    type: str
    severity: Severity
    message: str

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json")


def elapsed_ms(start: datetime, end: datetime) -> int:
    """Whole milliseconds from start to end (negative if end is earlier)."""
    return (end - start) // timedelta(milliseconds=1)


def is_outbound_request(event: TraceEvent) -> bool:
    return (
        event.event is TraceEventKind.PROVIDER_REQUEST_SENT
        and event.direction is TraceDirection.OUTBOUND
    )


def group_by_correlation(
    events: Sequence[TraceEvent],
) -> dict[str | None, list[TraceEvent]]:
    """Group events by correlation id, preserving first-seen group order."""
    groups: dict[str | None, list[TraceEvent]] = {}
    for event in events:
        groups.setdefault(event.correlation_id, []).append(event)
    return groups


def find_issues(events: Sequence[TraceEvent]) -> list[Issue]:
    """Run the structural checks in their fixed order.

    Order: timeout, duplicate_webhook, slow_response, missing_response.

    Args:
        events: Chronologically ordered events of one payment.

    Returns:
        Issues found, at most one per check.
    """
    issues: list[Issue] = []

    timeouts = [e for e in events if e.event is TraceEventKind.PROVIDER_TIMEOUT]
    if timeouts:
        issues.append(
            Issue(
                type="timeout",
                severity=Severity.high,
                message=f"Provider timeout detected ({len(timeouts)} occurrence(s))",
                events=[e.id for e in timeouts],
            )
        )

    duplicates = [e for e in events if e.event is TraceEventKind.WEBHOOK_DUPLICATE]
    if duplicates:
        issues.append(
            Issue(
                type="duplicate_webhook",
                severity=Severity.medium,
                message=f"Duplicate webhooks received ({len(duplicates)} occurrence(s))",
                events=[e.id for e in duplicates],
            )
        )

    slow = [
        e
        for e in events
        if e.response_time_ms is not None
        and e.response_time_ms > SLOW_RESPONSE_THRESHOLD_MS
    ]
    if slow:
        issues.append(
            Issue(
                type="slow_response",
                severity=Severity.medium,
                message="Slow provider responses detected (>5s)",
                events=[e.id for e in slow],
            )
        )

    # Raw counts, no correlation pairing; see find_orphaned_requests for that.
    requests = sum(1 for e in events if e.event is TraceEventKind.PROVIDER_REQUEST_SENT)
    responses = sum(1 for e in events if e.event in RESPONSE_EVENTS)
    if requests > responses:
        issues.append(
            Issue(
                type="missing_response",
                severity=Severity.high,
                message="Request sent but no response recorded",
            )
        )

    return issues


def find_orphaned_requests(
    events: Sequence[TraceEvent],
    window_seconds: int = ORPHAN_WINDOW_SECONDS,
) -> list[Anomaly]:
    """Flag outbound requests with no closing event in their correlation group.

    A request is closed by a response, error, timeout or exception
    sharing its correlation id, recorded at or after the request and no
    more than window_seconds later. Every request is checked against
    the full event list.
    """
    window = timedelta(seconds=window_seconds)
    anomalies: list[Anomaly] = []

    for request in events:
        if not is_outbound_request(request):
            continue

        has_response = any(
            candidate.correlation_id == request.correlation_id
            and candidate.event in CLOSING_EVENTS
            and timedelta(0) <= candidate.created_at - request.created_at <= window
            for candidate in events
        )
        if has_response:
            continue

        sent_at = request.created_at.strftime("%Y-%m-%d %H:%M:%S")
        anomalies.append(
            Anomaly(
                type="orphaned_request",
                severity=Severity.high,
                message=(
                    f"Orphaned request detected: Request sent at {sent_at} "
                    "but no response received"
                ),
                event_id=request.id,
                correlation_id=request.correlation_id,
                provider=request.provider,
                timestamp=request.created_at.isoformat(),
            )
        )

    return anomalies


def find_excessive_latency(
    events: Sequence[TraceEvent],
    threshold_ms: int = DEFAULT_LATENCY_THRESHOLD_MS,
) -> list[Anomaly]:
    """Flag correlation groups whose request-to-response latency is too high.

    Within each group the first outbound request is paired with the
    first response, error or timeout. Groups missing either side are
    skipped.
    """
    anomalies: list[Anomaly] = []

    for correlation_id, group in group_by_correlation(events).items():
        request = next((e for e in group if is_outbound_request(e)), None)
        if request is None:
            continue
        response = next((e for e in group if e.event in RESPONSE_EVENTS), None)
        if response is None:
            continue

        latency = elapsed_ms(request.created_at, response.created_at)
        if latency <= threshold_ms:
            continue

        anomalies.append(
            Anomaly(
                type="excessive_latency",
                severity=Severity.medium,
                message=(
                    f"Excessive latency detected: {latency}ms "
                    f"(threshold: {threshold_ms}ms)"
                ),
                request_id=request.id,
                response_id=response.id,
                correlation_id=correlation_id,
                provider=request.provider or response.provider,
                latency_ms=latency,
                threshold_ms=threshold_ms,
                request_timestamp=request.created_at.isoformat(),
                response_timestamp=response.created_at.isoformat(),
            )
        )

    return anomalies


def detect_anomalies(
    events: Sequence[TraceEvent],
    threshold_ms: int = DEFAULT_LATENCY_THRESHOLD_MS,
) -> list[Anomaly]:
    """Orphaned requests followed by excessive-latency pairs."""
    return find_orphaned_requests(events) + find_excessive_latency(events, threshold_ms)

"""Tests for issue and anomaly detection."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from paytrace.models.event import TraceEvent, TraceEventKind
from paytrace.recording.normalizer import infer_direction
from paytrace.timeline.analysis import (
    Severity,
    detect_anomalies,
    find_excessive_latency,
    find_issues,
    find_orphaned_requests,
    group_by_correlation,
)

T0 = datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


def _event(
    event_id: int,
    kind: TraceEventKind,
    ms: int = 0,
    correlation_id: str | None = "c1",
    provider: str | None = "paystack",
    **kwargs,
) -> TraceEvent:
    return TraceEvent(
        id=event_id,
        payment_id="pay_1",
        event=kind,
        direction=infer_direction(kind),
        provider=provider,
        correlation_id=correlation_id,
        created_at=T0 + timedelta(milliseconds=ms),
        **kwargs,
    )


REQUEST = TraceEventKind.PROVIDER_REQUEST_SENT
RESPONSE = TraceEventKind.PROVIDER_RESPONSE_RECEIVED


class TestFindIssues:
    """Structural checks."""

    def test_empty(self):
        assert find_issues([]) == []

    def test_fixed_order(self):
        events = [
            _event(1, TraceEventKind.WEBHOOK_DUPLICATE, 0),
            _event(2, TraceEventKind.PROVIDER_TIMEOUT, 100),
        ]
        issues = find_issues(events)
        assert [i.type for i in issues] == ["timeout", "duplicate_webhook"]

    def test_timeout_issue(self):
        issues = find_issues([_event(7, TraceEventKind.PROVIDER_TIMEOUT)])
        assert issues[0].severity is Severity.high
        assert issues[0].message == "Provider timeout detected (1 occurrence(s))"
        assert issues[0].events == [7]

    def test_duplicate_webhook_issue(self):
        events = [
            _event(1, TraceEventKind.WEBHOOK_DUPLICATE),
            _event(2, TraceEventKind.WEBHOOK_DUPLICATE, 10),
        ]
        issue = find_issues(events)[0]
        assert issue.severity is Severity.medium
        assert issue.message == "Duplicate webhooks received (2 occurrence(s))"
        assert issue.events == [1, 2]

    def test_slow_response_issue(self):
        events = [
            _event(1, REQUEST, 0),
            _event(2, RESPONSE, 10, response_time_ms=6000),
            _event(3, RESPONSE, 20, response_time_ms=5000),
        ]
        issues = find_issues(events)
        assert [i.type for i in issues] == ["slow_response"]
        assert issues[0].message == "Slow provider responses detected (>5s)"
        assert issues[0].events == [2]

    def test_missing_response_issue(self):
        issues = find_issues([_event(1, REQUEST)])
        assert issues[0].type == "missing_response"
        assert issues[0].severity is Severity.high
        assert issues[0].message == "Request sent but no response recorded"
        assert issues[0].to_dict() == {
            "type": "missing_response",
            "severity": "high",
            "message": "Request sent but no response recorded",
        }

    def test_errors_and_timeouts_count_as_responses(self):
        events = [
            _event(1, REQUEST, 0),
            _event(2, REQUEST, 10),
            _event(3, TraceEventKind.PROVIDER_ERROR, 20),
            _event(4, TraceEventKind.PROVIDER_TIMEOUT, 30),
        ]
        assert "missing_response" not in [i.type for i in find_issues(events)]


class TestOrphanedRequests:
    """Correlation-aware pairing."""

    def test_request_without_response(self):
        anomalies = find_orphaned_requests([_event(1, REQUEST)])

        assert len(anomalies) == 1
        anomaly = anomalies[0]
        assert anomaly.type == "orphaned_request"
        assert anomaly.severity is Severity.high
        assert anomaly.message == (
            "Orphaned request detected: Request sent at 2026-01-01 12:00:00 "
            "but no response received"
        )
        data = anomaly.to_dict()
        assert data["event_id"] == 1
        assert data["correlation_id"] == "c1"
        assert data["provider"] == "paystack"

    def test_response_inside_window(self):
        events = [_event(1, REQUEST, 0), _event(2, RESPONSE, 60_000)]
        assert find_orphaned_requests(events) == []

    def test_response_outside_window(self):
        events = [_event(1, REQUEST, 0), _event(2, RESPONSE, 61_000)]
        assert len(find_orphaned_requests(events)) == 1

    def test_response_before_request_does_not_count(self):
        events = [_event(1, RESPONSE, 0), _event(2, REQUEST, 1000)]
        anomalies = find_orphaned_requests(events)
        assert [a.to_dict()["event_id"] for a in anomalies] == [2]

    def test_response_in_other_correlation_does_not_count(self):
        events = [
            _event(1, REQUEST, 0, correlation_id="c1"),
            _event(2, RESPONSE, 500, correlation_id="c2"),
        ]
        assert len(find_orphaned_requests(events)) == 1

    def test_exception_closes_request(self):
        events = [_event(1, REQUEST, 0), _event(2, TraceEventKind.PROVIDER_EXCEPTION, 500)]
        assert find_orphaned_requests(events) == []

    def test_missing_response_and_orphan_can_disagree(self):
        """Counts balance but pairing does not, and vice versa."""
        crossed = [
            _event(1, REQUEST, 0, correlation_id="c1"),
            _event(2, RESPONSE, 1000, correlation_id="c2"),
        ]
        assert "missing_response" not in [i.type for i in find_issues(crossed)]
        assert len(find_orphaned_requests(crossed)) == 1

        double_request = [
            _event(1, REQUEST, 0),
            _event(2, REQUEST, 500),
            _event(3, RESPONSE, 1000),
        ]
        assert "missing_response" in [i.type for i in find_issues(double_request)]
        assert find_orphaned_requests(double_request) == []


class TestExcessiveLatency:
    """Request/response latency per correlation group."""

    def test_over_threshold(self):
        events = [_event(1, REQUEST, 0), _event(2, RESPONSE, 6000)]
        anomalies = find_excessive_latency(events, threshold_ms=5000)

        assert len(anomalies) == 1
        data = anomalies[0].to_dict()
        assert data["type"] == "excessive_latency"
        assert data["severity"] == "medium"
        assert data["message"] == "Excessive latency detected: 6000ms (threshold: 5000ms)"
        assert data["latency_ms"] == 6000
        assert data["threshold_ms"] == 5000
        assert data["request_id"] == 1
        assert data["response_id"] == 2

    def test_at_threshold_not_flagged(self):
        events = [_event(1, REQUEST, 0), _event(2, RESPONSE, 5000)]
        assert find_excessive_latency(events, threshold_ms=5000) == []

    def test_custom_threshold(self):
        events = [_event(1, REQUEST, 0), _event(2, RESPONSE, 1500)]
        assert len(find_excessive_latency(events, threshold_ms=1000)) == 1

    def test_group_without_response_skipped(self):
        assert find_excessive_latency([_event(1, REQUEST, 0)]) == []

    def test_one_anomaly_per_group(self):
        events = [
            _event(1, REQUEST, 0, correlation_id="c1"),
            _event(2, REQUEST, 0, correlation_id="c2"),
            _event(3, RESPONSE, 7000, correlation_id="c1"),
            _event(4, RESPONSE, 8000, correlation_id="c2"),
            _event(5, RESPONSE, 9000, correlation_id="c2"),
        ]
        anomalies = find_excessive_latency(events)
        assert [a.to_dict()["latency_ms"] for a in anomalies] == [7000, 8000]


class TestDetectAnomalies:
    """Combined anomaly detection."""

    def test_empty(self):
        assert detect_anomalies([]) == []

    def test_orphans_before_latency(self):
        events = [
            _event(1, REQUEST, 0, correlation_id="c1"),
            _event(2, RESPONSE, 61_000, correlation_id="c1"),
        ]
        anomalies = detect_anomalies(events)
        assert [a.type for a in anomalies] == ["orphaned_request", "excessive_latency"]


class TestGroupByCorrelation:
    """Grouping helper."""

    def test_groups_in_first_seen_order(self):
        events = [
            _event(1, REQUEST, 0, correlation_id="b"),
            _event(2, REQUEST, 10, correlation_id="a"),
            _event(3, RESPONSE, 20, correlation_id="b"),
            _event(4, TraceEventKind.CUSTOM, 30, correlation_id=None),
        ]
        groups = group_by_correlation(events)
        assert list(groups) == ["b", "a", None]
        assert [e.id for e in groups["b"]] == [1, 3]

"""Timeline reconstruction for a single payment.

TimelineBuilder loads every stored event for a payment id and wraps
them in a read-only Timeline (queries, text and JSON projections) or a
DetailedTimeline (adds issue and anomaly analysis). Timelines are built
on demand and never persisted or mutated.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from typing import TYPE_CHECKING, Any

import structlog

from paytrace.models.config import TraceConfig
from paytrace.models.event import TraceEvent, TraceEventKind
from paytrace.timeline.analysis import (
    DEFAULT_LATENCY_THRESHOLD_MS,
    Anomaly,
    Issue,
    detect_anomalies,
    elapsed_ms,
    find_issues,
    group_by_correlation,
)
from paytrace.timeline.formatting import render_findings, render_timeline

if TYPE_CHECKING:
    from paytrace.storage.json_store import TraceStore

logger = structlog.get_logger(__name__)


class Timeline:
    """Chronologically ordered, read-only view of one payment's events.

    Events are sorted by (created_at, id) on construction whatever order
    they arrive in.
    """

    def __init__(self, payment_id: str, events: Iterable[TraceEvent]) -> None:
        self.payment_id = payment_id
        self._events: tuple[TraceEvent, ...] = tuple(
            sorted(events, key=TraceEvent.sort_key)
        )

    def __len__(self) -> int:
        return len(self._events)

    def __iter__(self) -> Iterator[TraceEvent]:
        return iter(self._events)

    @property
    def is_empty(self) -> bool:
        return not self._events

    def all(self) -> list[TraceEvent]:
        return list(self._events)

    def for_provider(self, provider: str) -> list[TraceEvent]:
        return [e for e in self._events if e.provider == provider]

    def errors(self) -> list[TraceEvent]:
        return [e for e in self._events if e.is_error]

    def terminal(self) -> TraceEvent | None:
        """First terminal event, or None if the payment is incomplete."""
        return next((e for e in self._events if e.is_terminal), None)

    def succeeded(self) -> bool:
        terminal = self.terminal()
        return terminal is not None and terminal.event is TraceEventKind.PAYMENT_COMPLETED

    def failed(self) -> bool:
        terminal = self.terminal()
        return terminal is not None and terminal.event is TraceEventKind.PAYMENT_FAILED

    def duration(self) -> int | None:
        """Milliseconds between the first and last event, None if empty."""
        if not self._events:
            return None
        return elapsed_ms(self._events[0].created_at, self._events[-1].created_at)

    def filtered(self, provider: str) -> "Timeline":
        """Same kind of timeline restricted to one provider's events."""
        return Timeline(self.payment_id, self.for_provider(provider))

    def summary(self) -> dict[str, Any]:
        return {
            "total_events": len(self._events),
            "errors": len(self.errors()),
            "duration_ms": self.duration(),
            "succeeded": self.succeeded(),
            "failed": self.failed(),
        }

    def to_text(self) -> str:
        return render_timeline(self)

    def to_dict(self) -> dict[str, Any]:
        """JSON projection: payment id, per-event records and a summary."""
        return {
            "payment_id": self.payment_id,
            "events": [e.to_projection() for e in self._events],
            "summary": self.summary(),
        }


class DetailedTimeline(Timeline):
    """Timeline with structural issue and anomaly analysis."""

    def __init__(
        self,
        payment_id: str,
        events: Iterable[TraceEvent],
        excessive_latency_threshold_ms: int = DEFAULT_LATENCY_THRESHOLD_MS,
    ) -> None:
        super().__init__(payment_id, events)
        self.excessive_latency_threshold_ms = excessive_latency_threshold_ms

    def analyze(self) -> list[Issue]:
        """Timeout, duplicate webhook, slow response, missing response."""
        return find_issues(self._events)

    def detect_anomalies(self) -> list[Anomaly]:
        """Orphaned requests, then excessive request/response latency."""
        return detect_anomalies(self._events, self.excessive_latency_threshold_ms)

    def grouped_by_correlation(self) -> dict[str | None, list[TraceEvent]]:
        return group_by_correlation(self._events)

    def retries(self) -> list[TraceEvent]:
        return [e for e in self._events if e.event.value.startswith("retry.")]

    def filtered(self, provider: str) -> "DetailedTimeline":
        return DetailedTimeline(
            self.payment_id,
            self.for_provider(provider),
            self.excessive_latency_threshold_ms,
        )

    def to_detailed_text(self) -> str:
        return self.to_text() + render_findings(self.analyze(), self.detect_anomalies())

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["issues"] = [issue.to_dict() for issue in self.analyze()]
        data["anomalies"] = [anomaly.to_dict() for anomaly in self.detect_anomalies()]
        return data


class TimelineBuilder:
    """Builds timelines from the trace store."""

    def __init__(self, store: "TraceStore", config: TraceConfig | None = None) -> None:
        self.store = store
        self.config = config or TraceConfig()

    def build(self, payment_id: str) -> Timeline:
        events = self.store.events_for_payment(payment_id)
        logger.debug("timeline.built", payment_id=payment_id, events=len(events))
        return Timeline(payment_id, events)

    def build_detailed(self, payment_id: str) -> DetailedTimeline:
        events = self.store.events_for_payment(payment_id)
        logger.debug("timeline.built", payment_id=payment_id, events=len(events), detailed=True)
        return DetailedTimeline(
            payment_id,
            events,
            excessive_latency_threshold_ms=self.config.excessive_latency_threshold_ms,
        )

"""TraceRecorder orchestrating the recording pipeline.

Normalizes a submission, redacts its payload, then either writes it to
the store synchronously or hands it to the background queue. Also
exposes thin convenience wrappers for common lifecycle transitions.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

import structlog

from paytrace.models.config import TraceConfig
from paytrace.models.event import TraceData, TraceEvent, TraceEventKind
from paytrace.recording.normalizer import (
    generate_correlation_id,
    normalize_submission,
    with_payload,
)
from paytrace.recording.queue import TraceQueue
from paytrace.recording.redaction import PayloadRedactor

if TYPE_CHECKING:
    from paytrace.storage.json_store import TraceStore

logger = structlog.get_logger(__name__)


class TraceRecorder:
    """Records trace events: normalization, redaction, dispatch.

    In synchronous mode record() blocks on the store write and returns
    the stored event; storage errors propagate. In async mode the write
    is queued and record() returns None, so the assigned id is not
    observable by the caller.
    """

    def __init__(
        self,
        store: "TraceStore",
        config: TraceConfig | None = None,
        queue: TraceQueue | None = None,
        redactor: PayloadRedactor | None = None,
    ) -> None:
        self.store = store
        self.config = config or TraceConfig()
        self.redactor = redactor or PayloadRedactor.from_config(self.config)
        if queue is None and self.config.async_mode:
            queue = TraceQueue.from_config(store, self.config.queue)
        self.queue = queue

    def record(self, submission: Mapping[str, Any] | TraceData) -> TraceEvent | None:
        """Record a trace event.

        Args:
            submission: Raw mapping (payment_id, event, direction,
                payload, provider, correlation_id, metadata, http_*,
                response_time_ms) or a TraceData.

        Returns:
            The stored TraceEvent in synchronous mode; None when tracing
            is disabled or the event was queued.

        Raises:
            TraceInputError: If the submission lacks a payment_id, its
                redacted payload is not JSON, or it is otherwise malformed.
            TraceStorageError: If a synchronous write fails.
        """
        if not self.config.enabled:
            logger.debug("trace.skipped", reason="disabled")
            return None

        data = normalize_submission(submission)
        if data.payload:
            data = with_payload(data, self.redactor.redact(data.payload))

        if self.config.async_mode and self.queue is not None:
            self.queue.enqueue(data)
            return None

        event = self.store.insert(data)
        logger.debug(
            "trace.recorded",
            payment_id=event.payment_id,
            event_kind=event.event.value,
            correlation_id=event.correlation_id,
        )
        return event

    def start_correlation(self) -> str:
        """Return a fresh correlation id to thread through related events."""
        return generate_correlation_id()

    def payment_initiated(
        self,
        payment_id: str,
        provider: str | None = None,
        payload: Mapping[str, Any] | None = None,
        correlation_id: str | None = None,
    ) -> TraceEvent | None:
        return self._record_kind(
            TraceEventKind.PAYMENT_INITIATED, payment_id, provider, payload, correlation_id
        )

    def payment_completed(
        self,
        payment_id: str,
        provider: str | None = None,
        payload: Mapping[str, Any] | None = None,
        correlation_id: str | None = None,
    ) -> TraceEvent | None:
        return self._record_kind(
            TraceEventKind.PAYMENT_COMPLETED, payment_id, provider, payload, correlation_id
        )

    def payment_failed(
        self,
        payment_id: str,
        provider: str | None = None,
        payload: Mapping[str, Any] | None = None,
        correlation_id: str | None = None,
    ) -> TraceEvent | None:
        return self._record_kind(
            TraceEventKind.PAYMENT_FAILED, payment_id, provider, payload, correlation_id
        )

    def retry_scheduled(
        self,
        payment_id: str,
        provider: str | None = None,
        payload: Mapping[str, Any] | None = None,
        correlation_id: str | None = None,
    ) -> TraceEvent | None:
        return self._record_kind(
            TraceEventKind.RETRY_SCHEDULED, payment_id, provider, payload, correlation_id
        )

    def retry_executed(
        self,
        payment_id: str,
        provider: str | None = None,
        payload: Mapping[str, Any] | None = None,
        correlation_id: str | None = None,
    ) -> TraceEvent | None:
        return self._record_kind(
            TraceEventKind.RETRY_EXECUTED, payment_id, provider, payload, correlation_id
        )

    def _record_kind(
        self,
        event: TraceEventKind,
        payment_id: str,
        provider: str | None,
        payload: Mapping[str, Any] | None,
        correlation_id: str | None,
    ) -> TraceEvent | None:
        return self.record(
            {
                "payment_id": payment_id,
                "provider": provider,
                "event": event,
                "correlation_id": correlation_id,
                "payload": dict(payload or {}),
            }
        )

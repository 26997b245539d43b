"""Webhook capture with duplicate detection.

Records incoming provider webhooks as webhook.received, or as
webhook.duplicate when an identical webhook for the same payment and
provider was already stored inside the configured window. Payloads are
compared after redaction, since that is the form they are stored in.
"""

from __future__ import annotations

import hashlib
import json
import traceback
from collections.abc import Mapping
from datetime import timedelta
from typing import TYPE_CHECKING, Any

from paytrace.models.event import TraceDirection, TraceEvent, TraceEventKind
from paytrace.recording.redaction import REDACTED_PLACEHOLDER

if TYPE_CHECKING:
    from paytrace.recording.recorder import TraceRecorder
    from paytrace.storage.json_store import TraceStore

SENSITIVE_HEADERS: frozenset[str] = frozenset({
    "authorization",
    "x-api-key",
    "api-key",
    "stripe-signature",
})


def sanitize_headers(headers: Mapping[str, Any]) -> dict[str, Any]:
    """Mask sensitive HTTP headers, keeping the rest unchanged."""
    return {
        key: [REDACTED_PLACEHOLDER] if key.lower() in SENSITIVE_HEADERS else value
        for key, value in headers.items()
    }


def payload_fingerprint(payload: Mapping[str, Any]) -> str:
    """Stable hash of a payload, independent of key order."""
    canonical = json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


class WebhookCapture:
    """Records provider webhooks through a TraceRecorder."""

    def __init__(self, recorder: "TraceRecorder", store: "TraceStore") -> None:
        self.recorder = recorder
        self.store = store

    @property
    def duplicate_window(self) -> int:
        return self.recorder.config.webhook_duplicate_window

    def capture(
        self,
        payment_id: str | None,
        provider: str,
        payload: Mapping[str, Any],
        correlation_id: str | None = None,
        headers: Mapping[str, Any] | None = None,
        metadata: Mapping[str, Any] | None = None,
    ) -> TraceEvent | None:
        """Record a webhook, flagging it as a duplicate when appropriate.

        Args:
            payment_id: Payment the webhook refers to. Nothing is
                recorded when it is empty.
            provider: Provider that sent the webhook.
            payload: Webhook body.
            correlation_id: Optional correlation id.
            headers: Request headers; sanitized before storage.
            metadata: Extra request context (ip, user agent, ...).

        Returns:
            The stored event, or None when nothing was stored
            synchronously.
        """
        if not payment_id:
            return None

        event = (
            TraceEventKind.WEBHOOK_DUPLICATE
            if self.is_duplicate(payment_id, provider, payload)
            else TraceEventKind.WEBHOOK_RECEIVED
        )

        request_metadata: dict[str, Any] = dict(metadata or {})
        if headers is not None:
            request_metadata["headers"] = sanitize_headers(headers)

        return self.recorder.record(
            {
                "payment_id": payment_id,
                "provider": provider,
                "correlation_id": correlation_id,
                "event": event,
                "direction": TraceDirection.INBOUND,
                "payload": dict(payload),
                "metadata": request_metadata,
            }
        )

    def is_duplicate(
        self,
        payment_id: str,
        provider: str,
        payload: Mapping[str, Any],
    ) -> bool:
        """Check for an identical webhook.received inside the window."""
        cutoff = self.store.now() - timedelta(seconds=self.duplicate_window)
        fingerprint = payload_fingerprint(self.recorder.redactor.redact(payload))

        return any(
            existing.provider == provider
            and existing.event is TraceEventKind.WEBHOOK_RECEIVED
            and existing.created_at >= cutoff
            and payload_fingerprint(existing.payload) == fingerprint
            for existing in self.store.events_for_payment(payment_id)
        )

    def capture_validation_failure(
        self,
        payment_id: str | None,
        provider: str,
        reason: str,
        payload: Mapping[str, Any] | None = None,
    ) -> TraceEvent | None:
        """Record a webhook whose signature or shape failed validation."""
        if not payment_id:
            return None

        return self.recorder.record(
            {
                "payment_id": payment_id,
                "provider": provider,
                "event": TraceEventKind.WEBHOOK_VALIDATION_FAILED,
                "direction": TraceDirection.INBOUND,
                "payload": {
                    "reason": reason,
                    "webhook_payload": dict(payload) if payload is not None else None,
                },
            }
        )

    def capture_processing_failure(
        self,
        payment_id: str,
        provider: str,
        exc: BaseException,
        payload: Mapping[str, Any] | None = None,
    ) -> TraceEvent | None:
        """Record a webhook that was accepted but could not be processed."""
        redact_text = self.recorder.redactor.redact_text
        return self.recorder.record(
            {
                "payment_id": payment_id,
                "provider": provider,
                "event": TraceEventKind.WEBHOOK_PROCESSING_FAILED,
                "direction": TraceDirection.INBOUND,
                "payload": {
                    "error": redact_text(str(exc)),
                    "exception_class": type(exc).__name__,
                    "trace": redact_text("".join(traceback.format_exception(exc))),
                    "webhook_payload": dict(payload) if payload is not None else None,
                },
            }
        )

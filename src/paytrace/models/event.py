"""Trace event models.

Event kinds and directions are closed string enums with lookup tables
for their descriptions and classification. TraceData is a normalized
submission that has not been persisted yet; TraceEvent is the stored,
immutable record carrying the storage-assigned id and timestamp.

Pydantic models (not dataclasses) because events are serialized to JSON
for the store and for the async queue.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, JsonValue


class TraceDirection(str, Enum):
    """Which way an event travelled relative to the application."""

    INTERNAL = "internal"
    OUTBOUND = "outbound"
    INBOUND = "inbound"

    @property
    def description(self) -> str:
        return _DIRECTION_DESCRIPTIONS[self]

    @property
    def icon(self) -> str:
        return _DIRECTION_ICONS[self]


_DIRECTION_DESCRIPTIONS: dict[TraceDirection, str] = {
    TraceDirection.INTERNAL: "Internal application event",
    TraceDirection.OUTBOUND: "Outbound request to provider",
    TraceDirection.INBOUND: "Inbound webhook or response",
}

_DIRECTION_ICONS: dict[TraceDirection, str] = {
    TraceDirection.INTERNAL: "•",
    TraceDirection.OUTBOUND: "→",
    TraceDirection.INBOUND: "←",
}


class TraceEventKind(str, Enum):
    """Every lifecycle event paytrace knows how to record."""

    # Payment lifecycle
    PAYMENT_INITIATED = "payment.initiated"
    PAYMENT_COMPLETED = "payment.completed"
    PAYMENT_FAILED = "payment.failed"
    PAYMENT_CANCELLED = "payment.cancelled"
    PAYMENT_REFUNDED = "payment.refunded"

    # Provider communication
    PROVIDER_REQUEST_SENT = "provider.request.sent"
    PROVIDER_RESPONSE_RECEIVED = "provider.response.received"
    PROVIDER_TIMEOUT = "provider.timeout"
    PROVIDER_ERROR = "provider.error"
    PROVIDER_EXCEPTION = "provider.exception"

    # Webhooks
    WEBHOOK_RECEIVED = "webhook.received"
    WEBHOOK_DUPLICATE = "webhook.duplicate"
    WEBHOOK_VALIDATION_FAILED = "webhook.validation_failed"
    WEBHOOK_PROCESSING_FAILED = "webhook.processing_failed"

    # Retries
    RETRY_SCHEDULED = "retry.scheduled"
    RETRY_EXECUTED = "retry.executed"
    RETRY_ABANDONED = "retry.abandoned"

    # 3DS / authentication
    AUTH_REQUIRED = "auth.required"
    AUTH_COMPLETED = "auth.completed"
    AUTH_FAILED = "auth.failed"

    # Verification
    VERIFICATION_STARTED = "verification.started"
    VERIFICATION_COMPLETED = "verification.completed"
    VERIFICATION_FAILED = "verification.failed"

    CUSTOM = "custom"

    @classmethod
    def from_value(cls, value: str) -> TraceEventKind:
        """Map a raw event name to a kind, falling back to CUSTOM."""
        try:
            return cls(value)
        except ValueError:
            return cls.CUSTOM

    @property
    def description(self) -> str:
        return _EVENT_DESCRIPTIONS[self]

    @property
    def is_terminal(self) -> bool:
        """True for kinds that end a transaction's observable flow."""
        return self in TERMINAL_EVENTS

    @property
    def is_error(self) -> bool:
        return self in ERROR_EVENTS


_EVENT_DESCRIPTIONS: dict[TraceEventKind, str] = {
    TraceEventKind.PAYMENT_INITIATED: "Payment flow initiated",
    TraceEventKind.PAYMENT_COMPLETED: "Payment successfully completed",
    TraceEventKind.PAYMENT_FAILED: "Payment failed",
    TraceEventKind.PAYMENT_CANCELLED: "Payment cancelled by user or system",
    TraceEventKind.PAYMENT_REFUNDED: "Payment refunded",
    TraceEventKind.PROVIDER_REQUEST_SENT: "Request sent to payment provider",
    TraceEventKind.PROVIDER_RESPONSE_RECEIVED: "Response received from payment provider",
    TraceEventKind.PROVIDER_TIMEOUT: "Provider request timed out",
    TraceEventKind.PROVIDER_ERROR: "Provider returned an error",
    TraceEventKind.PROVIDER_EXCEPTION: "Exception occurred during provider communication",
    TraceEventKind.WEBHOOK_RECEIVED: "Webhook received from provider",
    TraceEventKind.WEBHOOK_DUPLICATE: "Duplicate webhook detected",
    TraceEventKind.WEBHOOK_VALIDATION_FAILED: "Webhook signature validation failed",
    TraceEventKind.WEBHOOK_PROCESSING_FAILED: "Webhook processing failed",
    TraceEventKind.RETRY_SCHEDULED: "Retry scheduled",
    TraceEventKind.RETRY_EXECUTED: "Retry attempt executed",
    TraceEventKind.RETRY_ABANDONED: "Retry attempts abandoned",
    TraceEventKind.AUTH_REQUIRED: "3DS or additional authentication required",
    TraceEventKind.AUTH_COMPLETED: "Authentication completed",
    TraceEventKind.AUTH_FAILED: "Authentication failed",
    TraceEventKind.VERIFICATION_STARTED: "Payment verification started",
    TraceEventKind.VERIFICATION_COMPLETED: "Payment verification completed",
    TraceEventKind.VERIFICATION_FAILED: "Payment verification failed",
    TraceEventKind.CUSTOM: "Custom trace event",
}

TERMINAL_EVENTS: frozenset[TraceEventKind] = frozenset({
    TraceEventKind.PAYMENT_COMPLETED,
    TraceEventKind.PAYMENT_FAILED,
    TraceEventKind.PAYMENT_CANCELLED,
    TraceEventKind.RETRY_ABANDONED,
})

ERROR_EVENTS: frozenset[TraceEventKind] = frozenset({
    TraceEventKind.PAYMENT_FAILED,
    TraceEventKind.PROVIDER_TIMEOUT,
    TraceEventKind.PROVIDER_ERROR,
    TraceEventKind.PROVIDER_EXCEPTION,
    TraceEventKind.WEBHOOK_VALIDATION_FAILED,
    TraceEventKind.WEBHOOK_PROCESSING_FAILED,
    TraceEventKind.AUTH_FAILED,
    TraceEventKind.VERIFICATION_FAILED,
})


class TraceData(BaseModel):
    """A normalized trace submission, ready for redaction and storage.

    Crosses the async queue as JSON, so every field must round-trip
    through model_dump_json/model_validate_json.
    """

    model_config = {"extra": "forbid", "frozen": True}

    payment_id: str = Field(min_length=1)
    event: TraceEventKind = TraceEventKind.CUSTOM
    direction: TraceDirection = TraceDirection.INTERNAL
    payload: dict[str, JsonValue] = Field(default_factory=dict)
    provider: str | None = None
    correlation_id: str | None = None
    metadata: dict[str, JsonValue] = Field(default_factory=dict)
    http_method: str | None = None
    http_url: str | None = None
    http_status_code: int | None = None
    response_time_ms: int | None = None


class TraceEvent(TraceData):
    """A persisted trace event. Never updated once written."""

    id: int
    created_at: datetime

    @property
    def is_error(self) -> bool:
        return self.event.is_error

    @property
    def is_terminal(self) -> bool:
        return self.event.is_terminal

    def sort_key(self) -> tuple[datetime, int]:
        """Total order of events within a timeline."""
        return (self.created_at, self.id)

    def to_projection(self) -> dict[str, Any]:
        """Per-event record used by the timeline JSON projection."""
        return {
            "id": self.id,
            "timestamp": self.created_at.isoformat(),
            "event": self.event.value,
            "direction": self.direction.value,
            "provider": self.provider,
            "http_status": self.http_status_code,
            "response_time_ms": self.response_time_ms,
            "payload": self.payload,
        }

"""Tests for webhook capture and duplicate detection."""

from __future__ import annotations

from paytrace.models.config import TraceConfig
from paytrace.models.event import TraceDirection, TraceEventKind
from paytrace.recording.recorder import TraceRecorder
from paytrace.recording.redaction import REDACTED_PLACEHOLDER
from paytrace.recording.webhooks import (
    WebhookCapture,
    payload_fingerprint,
    sanitize_headers,
)

PAYLOAD = {"event": "charge.success", "data": {"reference": "ref_1", "amount": 5000}}


def _capture(recorder, store) -> WebhookCapture:
    return WebhookCapture(recorder, store)


class TestHelpers:
    """Header sanitizing and fingerprints."""

    def test_sanitize_headers(self):
        headers = {
            "Authorization": ["Bearer abc"],
            "Stripe-Signature": ["t=1,v1=x"],
            "Content-Type": ["application/json"],
        }
        assert sanitize_headers(headers) == {
            "Authorization": [REDACTED_PLACEHOLDER],
            "Stripe-Signature": [REDACTED_PLACEHOLDER],
            "Content-Type": ["application/json"],
        }

    def test_fingerprint_ignores_key_order(self):
        assert payload_fingerprint({"a": 1, "b": 2}) == payload_fingerprint({"b": 2, "a": 1})
        assert payload_fingerprint({"a": 1}) != payload_fingerprint({"a": 2})


class TestCapture:
    """Recording incoming webhooks."""

    def test_first_webhook_received(self, recorder, store):
        event = _capture(recorder, store).capture("pay_1", "paystack", PAYLOAD)
        assert event.event is TraceEventKind.WEBHOOK_RECEIVED
        assert event.direction is TraceDirection.INBOUND
        assert event.payload == PAYLOAD

    def test_identical_webhook_in_window_is_duplicate(self, recorder, store, clock):
        capture = _capture(recorder, store)
        capture.capture("pay_1", "paystack", PAYLOAD)
        clock.advance(seconds=299)

        event = capture.capture("pay_1", "paystack", dict(PAYLOAD))
        assert event.event is TraceEventKind.WEBHOOK_DUPLICATE

    def test_identical_webhook_after_window_is_received(self, recorder, store, clock):
        capture = _capture(recorder, store)
        capture.capture("pay_1", "paystack", PAYLOAD)
        clock.advance(seconds=301)

        event = capture.capture("pay_1", "paystack", PAYLOAD)
        assert event.event is TraceEventKind.WEBHOOK_RECEIVED

    def test_window_from_config(self, store, clock):
        recorder = TraceRecorder(store, TraceConfig(webhook_duplicate_window=10))
        capture = _capture(recorder, store)
        assert capture.duplicate_window == 10

        capture.capture("pay_1", "paystack", PAYLOAD)
        clock.advance(seconds=11)
        assert capture.capture("pay_1", "paystack", PAYLOAD).event is TraceEventKind.WEBHOOK_RECEIVED

    def test_different_provider_not_duplicate(self, recorder, store):
        capture = _capture(recorder, store)
        capture.capture("pay_1", "paystack", PAYLOAD)
        event = capture.capture("pay_1", "stripe", PAYLOAD)
        assert event.event is TraceEventKind.WEBHOOK_RECEIVED

    def test_different_payload_not_duplicate(self, recorder, store):
        capture = _capture(recorder, store)
        capture.capture("pay_1", "paystack", PAYLOAD)
        event = capture.capture("pay_1", "paystack", {"event": "charge.failed"})
        assert event.event is TraceEventKind.WEBHOOK_RECEIVED

    def test_compared_after_redaction(self, recorder, store):
        capture = _capture(recorder, store)
        capture.capture("pay_1", "paystack", {"token": "tok_1", "amount": 1})
        event = capture.capture("pay_1", "paystack", {"token": "tok_1", "amount": 1})
        assert event.event is TraceEventKind.WEBHOOK_DUPLICATE
        assert event.payload == {"token": REDACTED_PLACEHOLDER, "amount": 1}

    def test_missing_payment_id_records_nothing(self, recorder, store):
        assert _capture(recorder, store).capture(None, "paystack", PAYLOAD) is None
        assert store.list_payment_ids() == []

    def test_headers_sanitized_into_metadata(self, recorder, store):
        event = _capture(recorder, store).capture(
            "pay_1",
            "paystack",
            PAYLOAD,
            headers={"X-Api-Key": "k", "Accept": "json"},
            metadata={"ip": "10.0.0.1"},
        )
        assert event.metadata == {
            "ip": "10.0.0.1",
            "headers": {"X-Api-Key": [REDACTED_PLACEHOLDER], "Accept": "json"},
        }


class TestFailures:
    """Validation and processing failures."""

    def test_validation_failure(self, recorder, store):
        event = _capture(recorder, store).capture_validation_failure(
            "pay_1", "paystack", "Invalid signature", PAYLOAD
        )
        assert event.event is TraceEventKind.WEBHOOK_VALIDATION_FAILED
        assert event.is_error
        assert event.payload["reason"] == "Invalid signature"
        assert event.payload["webhook_payload"] == PAYLOAD

    def test_validation_failure_without_payment(self, recorder, store):
        capture = _capture(recorder, store)
        assert capture.capture_validation_failure(None, "paystack", "bad") is None

    def test_processing_failure_redacts_error_text(self, recorder, store):
        exc = RuntimeError("card 4242424242424242 rejected by sk_test_abcdefghijklmnopqrstuvwx")
        event = _capture(recorder, store).capture_processing_failure("pay_1", "stripe", exc)

        assert event.event is TraceEventKind.WEBHOOK_PROCESSING_FAILED
        assert event.payload["exception_class"] == "RuntimeError"
        assert event.payload["error"] == (
            f"card {REDACTED_PLACEHOLDER} rejected by {REDACTED_PLACEHOLDER}"
        )
        assert "4242424242424242" not in event.payload["trace"]
        assert event.payload["webhook_payload"] is None

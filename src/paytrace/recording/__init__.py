"""Recording subpackage: normalization, redaction, dispatch and capture.

Provides the payload redactor, the submission normalizer, the
TraceRecorder with its synchronous and queued persistence paths, and
webhook capture with duplicate detection.
"""

from paytrace.recording.normalizer import (
    generate_correlation_id,
    infer_direction,
    normalize_submission,
    with_payload,
)
from paytrace.recording.queue import TraceQueue
from paytrace.recording.recorder import TraceRecorder
from paytrace.recording.redaction import (
    MAX_DEPTH_PLACEHOLDER,
    REDACTED_PLACEHOLDER,
    PayloadRedactor,
    redact_patterns,
    redact_payload,
)
from paytrace.recording.webhooks import WebhookCapture, sanitize_headers

__all__ = [
    "MAX_DEPTH_PLACEHOLDER",
    "REDACTED_PLACEHOLDER",
    "PayloadRedactor",
    "TraceQueue",
    "TraceRecorder",
    "WebhookCapture",
    "generate_correlation_id",
    "infer_direction",
    "normalize_submission",
    "redact_patterns",
    "redact_payload",
    "sanitize_headers",
    "with_payload",
]

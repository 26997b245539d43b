"""Payload redaction for trace storage safety.

Masks values whose keys name a sensitive field (card numbers, secrets,
tokens, ...) before an event is persisted or queued. Recursion into
nested mappings and lists is bounded by a max depth so deeply nested or
adversarial payloads cannot blow the stack. Also provides pattern-based
redaction for free text such as error messages.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from paytrace.models.config import TraceConfig

REDACTED_PLACEHOLDER = "[REDACTED]"
MAX_DEPTH_PLACEHOLDER = "[MAX_DEPTH_EXCEEDED]"

DEFAULT_MAX_DEPTH = 10

# (pattern, replacement) pairs applied to free text.
TEXT_REDACTION_PATTERNS: list[tuple[str, str]] = [
    (r"\b\d{13,19}\b", REDACTED_PLACEHOLDER),  # Card numbers
    (r"sk_live_[a-zA-Z0-9]{24,}", REDACTED_PLACEHOLDER),  # Live secret keys
    (r"sk_test_[a-zA-Z0-9]{24,}", REDACTED_PLACEHOLDER),  # Test secret keys
    (r"Bearer\s+[a-zA-Z0-9_\-\.]+", f"Bearer {REDACTED_PLACEHOLDER}"),
]

# Compiled once at module load.
_COMPILED_TEXT_PATTERNS: list[tuple[re.Pattern[str], str]] = [
    (re.compile(pattern), replacement)
    for pattern, replacement in TEXT_REDACTION_PATTERNS
]


def should_redact(key: Any, fields: Iterable[str]) -> bool:
    """Check whether a key names a sensitive field.

    Matching is case-insensitive and substring-based, so a configured
    field "secret" also matches "client_secret".
    """
    key_lower = str(key).lower()
    return any(field.lower() in key_lower for field in fields)


def redact_payload(
    payload: Mapping[str, Any],
    fields: Iterable[str],
    max_depth: int = DEFAULT_MAX_DEPTH,
) -> dict[str, Any]:
    """Return a copy of payload with sensitive fields masked.

    Values under a matching key become [REDACTED] and are not walked.
    Nested mappings and lists are walked one level deeper; any nested
    structure found at max_depth is replaced wholesale with
    [MAX_DEPTH_EXCEEDED]. The input is never mutated.

    Args:
        payload: The mapping to redact.
        fields: Sensitive field names.
        max_depth: Depth at which nested structures are cut off. The
            top-level mapping is depth 0.

    Returns:
        A new dict with the same shape, minus sensitive values.
    """
    return _redact_mapping(payload, tuple(fields), 0, max_depth)


def _redact_mapping(
    data: Mapping[str, Any],
    fields: tuple[str, ...],
    depth: int,
    max_depth: int,
) -> dict[str, Any]:
    redacted: dict[str, Any] = {}
    for key, value in data.items():
        if should_redact(key, fields):
            redacted[key] = REDACTED_PLACEHOLDER
            continue
        redacted[key] = _redact_value(value, fields, depth + 1, max_depth)
    return redacted


def _redact_value(
    value: Any,
    fields: tuple[str, ...],
    depth: int,
    max_depth: int,
) -> Any:
    if not isinstance(value, (Mapping, list, tuple)):
        return value
    if depth >= max_depth:
        return MAX_DEPTH_PLACEHOLDER
    if isinstance(value, Mapping):
        return _redact_mapping(value, fields, depth, max_depth)
    return [_redact_value(item, fields, depth + 1, max_depth) for item in value]


def redact_patterns(text: str) -> str:
    """Replace card numbers, secret keys and bearer tokens in free text.

    Args:
        text: The string to redact.

    Returns:
        Text with every matching pattern replaced.
    """
    for pattern, replacement in _COMPILED_TEXT_PATTERNS:
        text = pattern.sub(replacement, text)
    return text


class PayloadRedactor:
    """Redacts trace payloads with a fixed field list and depth limit."""

    def __init__(
        self,
        fields: Iterable[str],
        max_depth: int = DEFAULT_MAX_DEPTH,
    ) -> None:
        self.fields = tuple(fields)
        self.max_depth = max_depth

    @classmethod
    def from_config(cls, config: "TraceConfig") -> "PayloadRedactor":
        return cls(config.redact_fields, max_depth=config.redaction_max_depth)

    def redact(self, payload: Mapping[str, Any]) -> dict[str, Any]:
        return redact_payload(payload, self.fields, self.max_depth)

    def redact_text(self, text: str) -> str:
        return redact_patterns(text)

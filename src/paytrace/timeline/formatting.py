"""Plain-text rendering of timelines, issues and anomalies.

Output is deterministic for a given event sequence: no colours, no
terminal detection. The CLI adds Rich styling on top of its own
rendering; these functions back Timeline.to_text() and
DetailedTimeline.to_detailed_text().
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from paytrace.models.event import TraceEvent
    from paytrace.timeline.analysis import Anomaly, Issue
    from paytrace.timeline.builder import Timeline

RULE = "=" * 80
SUB_LINE_INDENT = " " * 9


def format_time(event: "TraceEvent") -> str:
    """HH:MM:SS.mmm of the event's timestamp."""
    return event.created_at.strftime("%H:%M:%S.") + f"{event.created_at.microsecond // 1000:03d}"


def format_event_line(event: "TraceEvent") -> str:
    """One timeline line: time, direction glyph, event name, provider."""
    provider = f" ({event.provider})" if event.provider else ""
    return f"{format_time(event)} {event.direction.icon} {event.event.value}{provider}"


def format_event_details(event: "TraceEvent") -> list[str]:
    """Indented response-time and HTTP status lines, when present."""
    lines: list[str] = []
    if event.response_time_ms is not None:
        lines.append(f"{SUB_LINE_INDENT}└─ Response time: {event.response_time_ms}ms")
    if event.http_status_code is not None:
        lines.append(f"{SUB_LINE_INDENT}└─ HTTP {event.http_status_code}")
    return lines


def render_summary(timeline: "Timeline") -> str:
    lines = [
        "Summary:",
        f"- Total Events: {len(timeline)}",
        f"- Errors: {len(timeline.errors())}",
    ]

    duration = timeline.duration()
    if duration is not None:
        lines.append(f"- Duration: {duration}ms")

    terminal = timeline.terminal()
    lines.append(f"- Status: {terminal.event.value if terminal else 'incomplete'}")

    return "\n".join(lines)


def render_timeline(timeline: "Timeline") -> str:
    """Render the header, one line per event, and the summary block."""
    if timeline.is_empty:
        return f"No trace events found for payment: {timeline.payment_id}"

    lines = [f"Payment Timeline: {timeline.payment_id}", RULE, ""]
    for event in timeline.all():
        lines.append(format_event_line(event))
        lines.extend(format_event_details(event))

    lines.append("")
    lines.append(render_summary(timeline))
    return "\n".join(lines)


def render_findings(
    issues: Sequence["Issue"],
    anomalies: Sequence["Anomaly"],
) -> str:
    """Render the Issues and Anomalies blocks; each is omitted when empty."""
    text = ""

    if issues:
        text += f"\n\n{RULE}\nIssues Detected:\n\n"
        for issue in issues:
            text += f"⚠️  [{issue.severity.value}] {issue.message}\n"

    if anomalies:
        text += f"\n\n{RULE}\nAnomalies Detected:\n\n"
        for anomaly in anomalies:
            text += f"🔍 [{anomaly.severity.value}] {anomaly.message}\n"

    return text

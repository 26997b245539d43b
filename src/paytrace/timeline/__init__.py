"""Timeline reconstruction and forensic analysis."""

from paytrace.timeline.analysis import Anomaly, Issue, Severity
from paytrace.timeline.builder import DetailedTimeline, Timeline, TimelineBuilder

__all__ = [
    "Anomaly",
    "DetailedTimeline",
    "Issue",
    "Severity",
    "Timeline",
    "TimelineBuilder",
]

"""paytrace data models - re-exports all public model classes."""

from paytrace.models.config import ProjectConfig, QueueConfig, TraceConfig
from paytrace.models.event import (
    TraceData,
    TraceDirection,
    TraceEvent,
    TraceEventKind,
)

__all__ = [
    "ProjectConfig",
    "QueueConfig",
    "TraceConfig",
    "TraceData",
    "TraceDirection",
    "TraceEvent",
    "TraceEventKind",
]

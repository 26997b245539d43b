"""Shared fixtures: a controllable clock and a store/recorder on tmp_path."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from paytrace.models.config import TraceConfig
from paytrace.recording.recorder import TraceRecorder
from paytrace.storage.json_store import TraceStore

T0 = datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


class ManualClock:
    """Clock that only moves when told to."""

    def __init__(self, start: datetime = T0) -> None:
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, ms: int = 0, seconds: int = 0, days: int = 0) -> None:
        self.current += timedelta(milliseconds=ms, seconds=seconds, days=days)

    def set(self, value: datetime) -> None:
        self.current = value


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def store(tmp_path, clock) -> TraceStore:
    return TraceStore(tmp_path, clock=clock)


@pytest.fixture
def recorder(store) -> TraceRecorder:
    return TraceRecorder(store, TraceConfig())

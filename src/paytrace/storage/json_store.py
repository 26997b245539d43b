"""JSON Lines storage layer for trace events.

Appends TraceEvent objects to one .jsonl file per payment under
.paytrace/events/, assigning a monotonically increasing id from a
sequence file and a UTC timestamp from an injectable clock. Events are
never updated; pruning rewrites a payment file atomically, a chunk at
a time, to drop expired events.
"""

from __future__ import annotations

import os
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from pathlib import Path
from threading import RLock
from urllib.parse import quote, unquote

import structlog
from pydantic import ValidationError

from paytrace.errors import TraceStorageError
from paytrace.models.config import DEFAULT_STORAGE_DIR
from paytrace.models.event import TraceData, TraceEvent

logger = structlog.get_logger(__name__)

DEFAULT_PRUNE_CHUNK_SIZE = 1000


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class TraceStore:
    """Persist and query TraceEvent objects as JSON Lines in .paytrace/.

    File layout:
        .paytrace/
            events/
                {payment-id}.jsonl   # One event per line, append-only
            sequence                 # Last assigned event id

    Writes are serialized by a lock. Rewrites (pruning) and sequence
    updates are atomic (write to .tmp, then replace).
    """

    def __init__(
        self,
        project_root: Path,
        storage_dir: str | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.base_dir = project_root / (storage_dir or DEFAULT_STORAGE_DIR)
        self.events_dir = self.base_dir / "events"
        self.sequence_path = self.base_dir / "sequence"
        self._clock = clock or utc_now
        self._lock = RLock()

    def ensure_dirs(self) -> None:
        """Create .paytrace/events/."""
        self.events_dir.mkdir(parents=True, exist_ok=True)

    def now(self) -> datetime:
        """Current time according to the store's clock."""
        return self._clock()

    def insert(self, data: TraceData) -> TraceEvent:
        """Persist a normalized event and return the stored record.

        Args:
            data: The redacted, normalized event to store.

        Returns:
            The TraceEvent with its assigned id and created_at.

        Raises:
            TraceStorageError: If the event could not be written.
        """
        with self._lock:
            try:
                self.ensure_dirs()
                event = TraceEvent.model_validate(
                    {
                        **data.model_dump(),
                        "id": self._next_id(),
                        "created_at": self._clock(),
                    }
                )
                path = self._payment_path(event.payment_id)
                line = event.model_dump_json() + "\n"
                if self._has_torn_tail(path):
                    line = "\n" + line
                with path.open("a", encoding="utf-8") as fh:
                    fh.write(line)
            except OSError as exc:
                raise TraceStorageError(
                    f"Failed to store trace event for payment {data.payment_id!r}: {exc}"
                ) from exc

        logger.debug(
            "trace.stored",
            payment_id=event.payment_id,
            event_kind=event.event.value,
            event_id=event.id,
        )
        return event

    def events_for_payment(self, payment_id: str) -> list[TraceEvent]:
        """Load every event for a payment, ordered by (created_at, id).

        Args:
            payment_id: The payment to load.

        Returns:
            Chronologically ordered events; empty if none exist.
        """
        path = self._payment_path(payment_id)
        with self._lock:
            events = self._read_path(path)
        return sorted(events, key=TraceEvent.sort_key)

    def list_payment_ids(self) -> list[str]:
        """List payment ids that have at least one stored event."""
        return [unquote(path.stem) for path in self._event_paths()]

    def count_older_than(self, days: int) -> int:
        """Count events whose created_at is more than `days` days old."""
        cutoff = self._cutoff(days)
        total = 0
        for path in self._event_paths():
            with self._lock:
                total += sum(1 for e in self._read_path(path) if e.created_at < cutoff)
        return total

    def sample_older_than(self, days: int, limit: int = 5) -> list[TraceEvent]:
        """Return up to `limit` events that a prune of `days` would delete."""
        cutoff = self._cutoff(days)
        samples: list[TraceEvent] = []
        for path in self._event_paths():
            with self._lock:
                expired = [e for e in self._read_path(path) if e.created_at < cutoff]
            samples.extend(sorted(expired, key=TraceEvent.sort_key))
            if len(samples) >= limit:
                break
        return samples[:limit]

    def prune(
        self,
        older_than_days: int,
        chunk_size: int = DEFAULT_PRUNE_CHUNK_SIZE,
        on_chunk: Callable[[int], None] | None = None,
    ) -> int:
        """Delete events older than the given age.

        Each payment file is rewritten once per chunk of at most
        chunk_size expired events, and the lock is released between
        chunks so concurrent inserts are not held up for long.

        Args:
            older_than_days: Age in days beyond which events are deleted.
            chunk_size: Maximum number of events removed per rewrite.
            on_chunk: Called with the number of events removed per chunk.

        Returns:
            Total number of events deleted.

        Raises:
            TraceStorageError: If a payment file could not be rewritten.
        """
        if chunk_size < 1:
            raise ValueError("chunk_size must be at least 1")

        cutoff = self._cutoff(older_than_days)
        total_deleted = 0

        for path in self._event_paths():
            while True:
                with self._lock:
                    events = self._read_path(path)
                    expired = sorted(
                        (e for e in events if e.created_at < cutoff),
                        key=TraceEvent.sort_key,
                    )[:chunk_size]
                    if not expired:
                        break
                    expired_ids = {e.id for e in expired}
                    self._rewrite(path, [e for e in events if e.id not in expired_ids])

                total_deleted += len(expired)
                if on_chunk is not None:
                    on_chunk(len(expired))

        logger.info(
            "trace.pruned",
            deleted=total_deleted,
            older_than_days=older_than_days,
        )
        return total_deleted

    # -- Internal helpers --

    def _payment_path(self, payment_id: str) -> Path:
        return self.events_dir / f"{quote(payment_id, safe='')}.jsonl"

    def _event_paths(self) -> list[Path]:
        if not self.events_dir.exists():
            return []
        return sorted(self.events_dir.glob("*.jsonl"))

    def _cutoff(self, days: int) -> datetime:
        return self._clock() - timedelta(days=days)

    def _read_path(self, path: Path) -> list[TraceEvent]:
        if not path.exists():
            return []
        try:
            content = path.read_text(encoding="utf-8", errors="replace")
        except OSError as exc:
            raise TraceStorageError(f"Failed to read {path}: {exc}") from exc

        events: list[TraceEvent] = []
        for lineno, line in enumerate(content.splitlines(), start=1):
            if not line.strip():
                continue
            try:
                events.append(TraceEvent.model_validate_json(line))
            except ValidationError as exc:
                # Torn or corrupt line, usually from an interrupted append.
                logger.warning(
                    "trace.line_skipped",
                    path=str(path),
                    line=lineno,
                    error=str(exc).splitlines()[0],
                )
        return events

    def _has_torn_tail(self, path: Path) -> bool:
        """True if the last line of path was cut off before its newline."""
        if not path.exists() or path.stat().st_size == 0:
            return False
        with path.open("rb") as fh:
            fh.seek(-1, os.SEEK_END)
            return fh.read(1) != b"\n"

    def _rewrite(self, path: Path, events: list[TraceEvent]) -> None:
        try:
            if not events:
                path.unlink()
                return
            content = "".join(e.model_dump_json() + "\n" for e in events)
            # Atomic write
            tmp_file = path.with_name(path.name + ".tmp")
            tmp_file.write_text(content, encoding="utf-8")
            tmp_file.replace(path)
        except OSError as exc:
            raise TraceStorageError(f"Failed to rewrite {path}: {exc}") from exc

    def _next_id(self) -> int:
        current = 0
        if self.sequence_path.exists():
            text = self.sequence_path.read_text(encoding="utf-8").strip()
            current = int(text) if text else 0
        next_id = current + 1

        # Atomic write
        tmp_path = self.sequence_path.with_name("sequence.tmp")
        tmp_path.write_text(str(next_id), encoding="utf-8")
        tmp_path.replace(self.sequence_path)
        return next_id

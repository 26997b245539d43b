"""Bounded in-process queue for asynchronous trace persistence.

The recorder hands the queue an already normalized and redacted
TraceData; the queue serializes it to JSON and a single background
worker thread writes it to the store. Failed writes are retried with a
fixed backoff and, once attempts run out, reported to the log and to an
optional failure sink. Nothing raised by the worker ever reaches the
code that enqueued the event.
"""

from __future__ import annotations

import queue
import threading
import time
from collections.abc import Callable
from typing import TYPE_CHECKING

import structlog

from paytrace.models.event import TraceData
from paytrace.recording.retry import retry_fixed

if TYPE_CHECKING:
    from paytrace.models.config import QueueConfig
    from paytrace.storage.json_store import TraceStore

logger = structlog.get_logger(__name__)

FailureSink = Callable[[TraceData, Exception], None]


class TraceQueueFullError(Exception):
    """The queue had no room for another event."""


class TraceQueue:
    """Message-passing queue feeding a background persistence worker.

    The worker thread is started lazily on the first enqueue and runs
    as a daemon. Ordering between enqueued events is best-effort FIFO.
    """

    _STOP = None

    def __init__(
        self,
        store: "TraceStore",
        *,
        name: str = "default",
        connection: str | None = None,
        max_size: int = 1000,
        attempts: int = 3,
        backoff_seconds: float = 10.0,
        on_failure: FailureSink | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.store = store
        self.name = name
        self.connection = connection
        self.attempts = attempts
        self.backoff_seconds = backoff_seconds
        self.on_failure = on_failure
        self.failed_count = 0
        self._sleep = sleep
        self._queue: queue.Queue[str | None] = queue.Queue(maxsize=max_size)
        self._worker: threading.Thread | None = None
        self._worker_lock = threading.Lock()
        self._count_lock = threading.Lock()

    @classmethod
    def from_config(
        cls,
        store: "TraceStore",
        config: "QueueConfig",
        on_failure: FailureSink | None = None,
    ) -> "TraceQueue":
        return cls(
            store,
            name=config.name,
            connection=config.connection,
            max_size=config.max_size,
            attempts=config.attempts,
            backoff_seconds=config.backoff_seconds,
            on_failure=on_failure,
        )

    def enqueue(self, data: TraceData) -> bool:
        """Queue an event for background persistence.

        Args:
            data: A normalized, redacted event.

        Returns:
            True if the event was queued, False if the queue was full
            (the drop is reported like any other persistence failure).
        """
        message = data.model_dump_json()
        self._ensure_worker()
        try:
            self._queue.put_nowait(message)
        except queue.Full:
            self._report_failure(
                data,
                TraceQueueFullError(f"Trace queue {self.name!r} is full"),
                log_event="trace.queue_full",
            )
            return False

        logger.debug(
            "trace.enqueued",
            payment_id=data.payment_id,
            event_kind=data.event.value,
            queue=self.name,
        )
        return True

    def join(self) -> None:
        """Block until every queued event has been processed."""
        self._queue.join()

    def close(self) -> None:
        """Drain the queue and stop the worker thread."""
        with self._worker_lock:
            worker = self._worker
            self._worker = None
        if worker is not None and worker.is_alive():
            self._queue.put(self._STOP)
            worker.join()

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def _ensure_worker(self) -> None:
        with self._worker_lock:
            if self._worker is not None and self._worker.is_alive():
                return
            self._worker = threading.Thread(
                target=self._run,
                name=f"paytrace-queue-{self.name}",
                daemon=True,
            )
            self._worker.start()

    def _run(self) -> None:
        while True:
            message = self._queue.get()
            try:
                if message is self._STOP:
                    return
                self._process(message)
            except Exception:
                # Keeps the worker alive for the rest of the queue.
                logger.exception("trace.worker_error", queue=self.name)
            finally:
                self._queue.task_done()

    def _process(self, message: str) -> None:
        try:
            data = TraceData.model_validate_json(message)
        except ValueError:
            self._count_failure()
            logger.exception("trace.message_invalid", queue=self.name)
            return

        try:
            _, retries_used, _ = retry_fixed(
                lambda: self.store.insert(data),
                attempts=self.attempts,
                backoff_seconds=self.backoff_seconds,
                sleep=self._sleep,
            )
        except Exception as exc:
            self._report_failure(data, exc)
            return

        if retries_used:
            logger.info(
                "trace.persisted_after_retry",
                payment_id=data.payment_id,
                event_kind=data.event.value,
                retries=retries_used,
            )

    def _report_failure(
        self,
        data: TraceData,
        exc: Exception,
        log_event: str = "trace.persist_failed",
    ) -> None:
        self._count_failure()
        logger.error(
            log_event,
            payment_id=data.payment_id,
            event_kind=data.event.value,
            queue=self.name,
            connection=self.connection,
            error=str(exc),
        )
        if self.on_failure is None:
            return
        try:
            self.on_failure(data, exc)
        except Exception:
            logger.exception("trace.failure_sink_error", payment_id=data.payment_id)

    def _count_failure(self) -> None:
        with self._count_lock:
            self.failed_count += 1

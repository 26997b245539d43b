"""Fixed-backoff retry for background trace persistence.

The queue worker retries every failure the same way: a bounded number
of attempts with a constant pause between them.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from typing import Any


def retry_fixed(
    func: Callable[[], Any],
    attempts: int = 3,
    backoff_seconds: float = 10.0,
    sleep: Callable[[float], None] = time.sleep,
) -> tuple[Any, int, list[str]]:
    """Call func until it succeeds or attempts are exhausted.

    Args:
        func: Zero-argument callable to invoke.
        attempts: Total number of calls allowed (at least 1).
        backoff_seconds: Pause between consecutive attempts.
        sleep: Sleep function, injectable for tests.

    Returns:
        Tuple of (result, retries_used, list of error type names seen).

    Raises:
        Exception: The last exception once all attempts are used.
    """
    attempts = max(1, attempts)
    error_types: list[str] = []

    for attempt in range(attempts):
        try:
            result = func()
            return (result, attempt, error_types)
        except Exception as exc:
            error_types.append(type(exc).__name__)
            if attempt == attempts - 1:
                raise
            sleep(backoff_seconds)

    # Unreachable, but satisfies type checker
    raise RuntimeError("Retry loop exited unexpectedly")  # pragma: no cover

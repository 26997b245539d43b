"""Exception hierarchy for paytrace.

Input errors are raised synchronously before any redaction or
persistence work. Storage errors wrap filesystem failures from the
trace store and propagate on the synchronous recording path.
"""

from __future__ import annotations


class PaytraceError(Exception):
    """Base class for all paytrace errors."""


class TraceInputError(PaytraceError, ValueError):
    """A trace submission is malformed (missing payment_id, bad direction, ...)."""


class TraceStorageError(PaytraceError):
    """The trace store could not read or write events."""

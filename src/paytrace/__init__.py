"""paytrace: payment lifecycle tracing and forensic timeline analysis."""

__version__ = "0.1.0"

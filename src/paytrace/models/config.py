"""Project configuration model for paytrace.

Captures paytrace.yaml fields with sensible defaults. TraceConfig is
frozen and passed explicitly into the recorder, queue and timeline
builder rather than read from ambient global state.
"""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, Field

CONFIG_FILENAME = "paytrace.yaml"
DEFAULT_STORAGE_DIR = ".paytrace"

DEFAULT_REDACT_FIELDS: tuple[str, ...] = (
    "card_number",
    "cvv",
    "cvc",
    "card_cvv",
    "card_cvc",
    "secret",
    "password",
    "api_key",
    "secret_key",
    "private_key",
    "authorization",
    "token",
    "access_token",
    "refresh_token",
)


class QueueConfig(BaseModel):
    """Async recording queue settings.

    connection and name identify the queue in log output; attempts and
    backoff_seconds drive the worker's fixed-backoff retry policy.
    """

    model_config = {"extra": "forbid", "frozen": True}

    connection: str | None = None
    name: str = "default"
    max_size: int = Field(default=1000, ge=1)
    attempts: int = Field(default=3, ge=1)
    backoff_seconds: float = Field(default=10.0, ge=0.0)


class TraceConfig(BaseModel):
    """Tracing behaviour: enablement, dispatch mode, redaction, thresholds."""

    model_config = {"extra": "forbid", "frozen": True}

    enabled: bool = True
    async_mode: bool = False
    redact_fields: tuple[str, ...] = DEFAULT_REDACT_FIELDS
    redaction_max_depth: int = Field(default=10, ge=1, le=64)
    excessive_latency_threshold_ms: int = Field(default=5000, ge=0)
    # Seconds; consumed by webhook capture, not by the timeline analysis.
    webhook_duplicate_window: int = Field(default=300, ge=0)
    retention_days: int | None = Field(default=90, ge=1)
    queue: QueueConfig = Field(default_factory=QueueConfig)


class ProjectConfig(BaseModel):
    """Project-level configuration loaded from paytrace.yaml."""

    model_config = {"extra": "forbid"}

    storage_dir: str = DEFAULT_STORAGE_DIR
    log_level: str = "INFO"
    trace: TraceConfig = Field(default_factory=TraceConfig)


def find_project_root(start: Path | None = None) -> Path:
    """Walk up from start (default: cwd) looking for paytrace.yaml or .paytrace/.

    Args:
        start: Starting path (file or directory). Defaults to cwd.

    Returns:
        Path to the directory containing paytrace.yaml or .paytrace/,
        or cwd if neither is found.
    """
    current = (start or Path.cwd()).resolve()
    if current.is_file():
        current = current.parent
    while current != current.parent:
        if (current / CONFIG_FILENAME).exists() or (current / DEFAULT_STORAGE_DIR).exists():
            return current
        current = current.parent
    return Path.cwd()


def load_project_config(project_root: Path | None = None) -> ProjectConfig:
    """Load ProjectConfig from paytrace.yaml. Returns defaults if not found.

    Args:
        project_root: Path to the project root directory. If None,
            uses find_project_root() to locate it.

    Returns:
        Validated ProjectConfig instance.
    """
    if project_root is None:
        project_root = find_project_root()
    config_path = project_root / CONFIG_FILENAME
    if not config_path.exists():
        return ProjectConfig()
    import yaml

    raw = yaml.safe_load(config_path.read_text(encoding="utf-8"))
    if raw is None:
        return ProjectConfig()
    return ProjectConfig.model_validate(raw)

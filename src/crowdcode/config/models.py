"""Pydantic configuration models with env var support.

Configuration Hierarchy (highest to lowest precedence):
1. Direct kwargs to load_config()
2. Environment variables (CROWDCODE__SECTION__KEY)
3. Workspace YAML (.crowdcode/config.yaml)
4. Global YAML (~/.config/crowdcode/config.yaml)
5. Built-in defaults (this file)

Examples:
    CROWDCODE__LOGGING__LEVEL=DEBUG
    CROWDCODE__UPLOAD__ENDPOINT=https://example.invalid/v1/recordings
    CROWDCODE__PERSISTENCE__SAVE_INTERVAL_SEC=60
"""

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, field_validator

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


class LogOutputConfig(BaseModel):
    """Single logging output configuration."""

    format: Literal["json", "console"] = "console"
    destination: str = "stderr"  # stderr, stdout, or absolute file path
    level: LogLevel | None = None  # Inherits from parent if None

    @field_validator("destination")
    @classmethod
    def validate_destination(cls, v: str) -> str:
        if v in ("stderr", "stdout"):
            return v
        path = Path(v).expanduser()
        if not path.is_absolute():
            raise ValueError(f"File destination must be absolute path: {v}")
        return str(path)


class LoggingConfig(BaseModel):
    """Logging configuration.

    Env vars:
        CROWDCODE__LOGGING__LEVEL: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """

    level: LogLevel = Field(
        default="INFO",
        description="Root log level. DEBUG logs every dropped change and observation.",
    )
    outputs: list[LogOutputConfig] = Field(default_factory=lambda: [LogOutputConfig()])


class CaptureConfig(BaseModel):
    """Signal capture configuration.

    Env vars:
        CROWDCODE__CAPTURE__VIEWPORT_POLL_INTERVAL_SEC: Viewport sampling period
        CROWDCODE__CAPTURE__MAX_FILE_SIZE_BYTES: Files above this are never tracked
        CROWDCODE__CAPTURE__FS_DEBOUNCE_SEC: Per-path debounce (0 = immediate)
    """

    viewport_poll_interval_sec: float = Field(
        default=0.1,
        description="Viewport sampling period. Only dirty viewports are captured.",
    )
    terminal_poll_interval_sec: float = Field(
        default=0.1,
        description="Period of the terminal viewport poll for the focused terminal.",
    )
    terminal_viewport_lines: int = Field(
        default=20,
        description="Trailing lines kept per terminal buffer.",
    )
    pending_edits_per_file: int = Field(
        default=1000,
        description="Buffered user edits kept per file before the file is marked unreliable.",
    )
    cache_max_entries: int = Field(
        default=5000,
        description="Content cache capacity. Least-recently-used entries are evicted.",
    )
    max_file_size_bytes: int = Field(
        default=100_000,
        description="Files larger than this are never tracked or diffed.",
    )
    fs_debounce_sec: float = Field(
        default=0.0,
        description="Per-path debounce for filesystem notifications. "
        "0 processes immediately; content equality already suppresses duplicates.",
    )
    extra_ignore_patterns: list[str] = Field(
        default_factory=list,
        description="Additional gitignore-style exclusion patterns.",
    )
    respect_gitignore: bool = Field(
        default=True,
        description="Exclude paths matched by .gitignore files in the workspace.",
    )

    @field_validator(
        "terminal_viewport_lines",
        "pending_edits_per_file",
        "cache_max_entries",
        "max_file_size_bytes",
    )
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError(f"Must be positive, got {v}")
        return v


class GitConfig(BaseModel):
    """Version-control detection configuration."""

    operation_window_sec: float = Field(
        default=0.5,
        description="Filesystem changes within this window of a .git signal are "
        "attributed to version control.",
    )


class PersistenceConfig(BaseModel):
    """Chunk persistence configuration.

    Env vars:
        CROWDCODE__PERSISTENCE__EXPORT_PATH: Directory for chunk and snapshot files
        CROWDCODE__PERSISTENCE__SAVE_INTERVAL_SEC: Periodic save interval
    """

    export_path: str | None = Field(
        default=None,
        description="Directory for chunk and snapshot files. "
        "Default: .crowdcode/recordings inside the workspace.",
    )
    save_interval_sec: float = Field(
        default=300.0,
        description="Periodic chunk save interval (5 min). This bounds in-memory log size.",
    )
    snapshot_part_size_bytes: int = Field(
        default=5 * 1024 * 1024,
        description="Compressed snapshots above this size are split into parts.",
    )
    max_consecutive_write_failures: int = Field(
        default=3,
        description="Consecutive chunk write failures before the session is cancelled.",
    )
    add_to_gitignore: bool = Field(
        default=False,
        description="Append an export directory inside the workspace to the workspace .gitignore.",
    )


class UploadConfig(BaseModel):
    """Upload configuration. Uploads also require recorded consent."""

    endpoint: str | None = Field(
        default=None,
        description="Control endpoint issuing short-lived upload URLs. None disables upload.",
    )
    url_timeout_sec: float = Field(default=10.0, description="Upload URL issuance timeout.")
    transfer_timeout_sec: float = Field(default=60.0, description="Upload transfer timeout.")
    client_version: str = Field(
        default="2.0.0",
        description="Version string sent with every upload request.",
    )


class RedactionConfig(BaseModel):
    """Panic redaction window configuration."""

    base_window_sec: float = Field(default=10.0, description="Window of the first press.")
    step_sec: float = Field(default=10.0, description="Growth per repeated press.")
    burst_gap_sec: float = Field(
        default=3.0,
        description="Presses closer than this extend the window; longer gaps reset it.",
    )


class CrowdCodeConfig(BaseModel):
    """Root configuration for CrowdCode."""

    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    capture: CaptureConfig = Field(default_factory=CaptureConfig)
    git: GitConfig = Field(default_factory=GitConfig)
    persistence: PersistenceConfig = Field(default_factory=PersistenceConfig)
    upload: UploadConfig = Field(default_factory=UploadConfig)
    redaction: RedactionConfig = Field(default_factory=RedactionConfig)

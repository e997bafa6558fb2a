"""Core module exports."""

from crowdcode.core.errors import (
    CaptureError,
    ConfigError,
    CrowdCodeError,
    ErrorCode,
    InternalError,
    PersistenceError,
    UploadError,
)
from crowdcode.core.logging import (
    bind_session_id,
    clear_session_id,
    configure_logging,
    get_logger,
    get_session_id,
)

__all__ = [
    # Errors
    "CaptureError",
    "ConfigError",
    "CrowdCodeError",
    "ErrorCode",
    "InternalError",
    "PersistenceError",
    "UploadError",
    # Logging
    "bind_session_id",
    "clear_session_id",
    "configure_logging",
    "get_logger",
    "get_session_id",
]

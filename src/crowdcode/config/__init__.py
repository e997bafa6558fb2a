"""Config module exports."""

from crowdcode.config.loader import load_config, resolve_export_path
from crowdcode.config.models import (
    CaptureConfig,
    CrowdCodeConfig,
    LoggingConfig,
    PersistenceConfig,
    UploadConfig,
)

__all__ = [
    "load_config",
    "resolve_export_path",
    "CrowdCodeConfig",
    "CaptureConfig",
    "LoggingConfig",
    "PersistenceConfig",
    "UploadConfig",
]

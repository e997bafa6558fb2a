"""CrowdCode error types with typed error codes.

Error code ranges:
- 2xxx: Config
- 3xxx: Capture
- 4xxx: Persistence
- 5xxx: Upload
- 9xxx: Internal
"""

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any


class ErrorCode(IntEnum):
    """Typed error codes for programmatic handling."""

    # Config (2xxx)
    CONFIG_PARSE_ERROR = 2001
    CONFIG_INVALID_VALUE = 2002
    CONFIG_NO_EXPORT_LOCATION = 2003
    CONFIG_NO_WORKSPACE = 2004

    # Capture (3xxx)
    CAPTURE_UNREADABLE_FILE = 3001

    # Persistence (4xxx)
    PERSISTENCE_WRITE_FAILED = 4001

    # Upload (5xxx)
    UPLOAD_URL_ISSUANCE_FAILED = 5001
    UPLOAD_TRANSFER_FAILED = 5002

    # Internal (9xxx)
    INTERNAL_ERROR = 9001
    INTERNAL_INVARIANT_VIOLATION = 9002


@dataclass(frozen=True, slots=True)
class CrowdCodeError(Exception):
    """Base error with structured context for logs."""

    code: ErrorCode
    message: str
    retryable: bool = False
    details: dict[str, Any] = field(default_factory=dict)

    @property
    def error_name(self) -> str:
        """String identifier for logging (e.g., 'CONFIG_PARSE_ERROR')."""
        return self.code.name

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code.value,
            "error": self.error_name,
            "message": self.message,
            "retryable": self.retryable,
            "details": self.details,
        }

    def __str__(self) -> str:
        return f"[{self.code.value}] {self.error_name}: {self.message}"


class ConfigError(CrowdCodeError):
    """Configuration-related errors. Reported once; recording does not start."""

    @classmethod
    def parse_error(cls, path: str, reason: str) -> "ConfigError":
        return cls(
            code=ErrorCode.CONFIG_PARSE_ERROR,
            message=f"Failed to parse config at {path}: {reason}",
            details={"path": path, "reason": reason},
        )

    @classmethod
    def invalid_value(cls, field: str, value: Any, reason: str) -> "ConfigError":
        return cls(
            code=ErrorCode.CONFIG_INVALID_VALUE,
            message=f"Invalid value for '{field}': {reason}",
            details={"field": field, "value": str(value), "reason": reason},
        )

    @classmethod
    def no_export_location(cls, path: str, reason: str) -> "ConfigError":
        return cls(
            code=ErrorCode.CONFIG_NO_EXPORT_LOCATION,
            message=f"Export location is not writable: {path} ({reason})",
            details={"path": path, "reason": reason},
        )

    @classmethod
    def no_workspace(cls, path: str) -> "ConfigError":
        return cls(
            code=ErrorCode.CONFIG_NO_WORKSPACE,
            message=f"No workspace folder at {path}",
            details={"path": path},
        )


class CaptureError(CrowdCodeError):
    """Transient capture failures. The affected change is dropped."""

    @classmethod
    def unreadable_file(cls, path: str, reason: str) -> "CaptureError":
        return cls(
            code=ErrorCode.CAPTURE_UNREADABLE_FILE,
            message=f"Cannot read {path}: {reason}",
            retryable=True,
            details={"path": path, "reason": reason},
        )


class PersistenceError(CrowdCodeError):
    """Local chunk or snapshot write failures."""

    @classmethod
    def write_failed(cls, path: str, reason: str) -> "PersistenceError":
        return cls(
            code=ErrorCode.PERSISTENCE_WRITE_FAILED,
            message=f"Failed to write {path}: {reason}",
            retryable=True,
            details={"path": path, "reason": reason},
        )


class UploadError(CrowdCodeError):
    """Network failures. Logged only, never surfaced to the host."""

    @classmethod
    def url_issuance_failed(cls, file_name: str, reason: str) -> "UploadError":
        return cls(
            code=ErrorCode.UPLOAD_URL_ISSUANCE_FAILED,
            message=f"Could not obtain upload URL for {file_name}: {reason}",
            details={"file_name": file_name, "reason": reason},
        )

    @classmethod
    def transfer_failed(cls, file_name: str, reason: str) -> "UploadError":
        return cls(
            code=ErrorCode.UPLOAD_TRANSFER_FAILED,
            message=f"Upload of {file_name} failed: {reason}",
            details={"file_name": file_name, "reason": reason},
        )


class InternalError(CrowdCodeError):
    """Programming errors. These fail loudly instead of corrupting the log."""

    @classmethod
    def invariant_violation(cls, reason: str, **details: Any) -> "InternalError":
        return cls(
            code=ErrorCode.INTERNAL_INVARIANT_VIOLATION,
            message=f"Invariant violated: {reason}",
            details=details,
        )

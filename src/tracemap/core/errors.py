"""tracemap error types with typed error codes.

Error code ranges:
- 2xxx: Config
- 3xxx: Index store
- 4xxx: Pipeline
"""

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any


class ErrorCode(IntEnum):
    """Typed error codes for programmatic handling."""

    # Config (2xxx)
    CONFIG_PARSE_ERROR = 2001
    CONFIG_INVALID_VALUE = 2002

    # Index store (3xxx)
    STORE_INIT_FAILED = 3001
    STORE_TRUNCATE_FAILED = 3002
    STORE_WRITE_FAILED = 3003

    # Pipeline (4xxx)
    PIPELINE_ALREADY_RUNNING = 4001


@dataclass(frozen=True, slots=True)
class TracemapError(Exception):
    """Base error with structured context."""

    code: ErrorCode
    message: str
    retryable: bool = False
    details: dict[str, Any] = field(default_factory=dict)

    @property
    def error_name(self) -> str:
        """String identifier for logging (e.g., 'STORE_INIT_FAILED')."""
        return self.code.name

    def to_dict(self) -> dict[str, Any]:
        """Serialize for JSON output."""
        return {
            "code": self.code.value,
            "error": self.error_name,
            "message": self.message,
            "retryable": self.retryable,
            "details": self.details,
        }

    def __str__(self) -> str:
        return f"[{self.code.value}] {self.error_name}: {self.message}"


class ConfigError(TracemapError):
    """Configuration-related errors."""

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


class StoreError(TracemapError):
    """Index store errors.

    ``init_failed`` and ``truncate_failed`` are fatal for the invoking run;
    ``write_failed`` is raised per file and absorbed by the pipeline.
    """

    @classmethod
    def init_failed(cls, db_path: str, reason: str) -> "StoreError":
        return cls(
            code=ErrorCode.STORE_INIT_FAILED,
            message=f"Failed to initialize index store at {db_path}: {reason}",
            details={"db_path": db_path, "reason": reason},
        )

    @classmethod
    def truncate_failed(cls, reason: str) -> "StoreError":
        return cls(
            code=ErrorCode.STORE_TRUNCATE_FAILED,
            message=f"Full rescan aborted, truncation failed: {reason}",
            details={"reason": reason},
        )

    @classmethod
    def write_failed(cls, path: str, reason: str) -> "StoreError":
        return cls(
            code=ErrorCode.STORE_WRITE_FAILED,
            message=f"Failed to commit {path}: {reason}",
            retryable=True,
            details={"path": path, "reason": reason},
        )


class PipelineError(TracemapError):
    """Indexing pipeline errors."""

    @classmethod
    def already_running(cls, lock_path: str) -> "PipelineError":
        return cls(
            code=ErrorCode.PIPELINE_ALREADY_RUNNING,
            message=f"Another indexing run holds {lock_path}",
            retryable=True,
            details={"lock_path": lock_path},
        )

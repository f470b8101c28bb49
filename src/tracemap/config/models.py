"""Pydantic configuration models with env var support.

Configuration Hierarchy (highest to lowest precedence):
1. Direct kwargs to load_config()
2. Environment variables (TRACEMAP__SECTION__KEY)
3. Repo YAML (.tracemap/config.yaml)
4. Global YAML (~/.config/tracemap/config.yaml)
5. Built-in defaults (this file)

Examples:
    TRACEMAP__LOGGING__LEVEL=DEBUG
    TRACEMAP__INDEX__MAX_FILE_SIZE_MB=20
    TRACEMAP__SYNC__BATCH_SIZE=100
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
        TRACEMAP__LOGGING__LEVEL: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """

    level: LogLevel = Field(
        default="INFO",
        description="Root log level. DEBUG logs every indexed file.",
    )
    outputs: list[LogOutputConfig] = Field(default_factory=lambda: [LogOutputConfig()])


class IndexConfig(BaseModel):
    """Index storage and pipeline configuration.

    Env vars:
        TRACEMAP__INDEX__INDEX_DIR: Override index storage location
        TRACEMAP__INDEX__MAX_FILE_SIZE_MB: Skip files larger than this
        TRACEMAP__INDEX__AUDIT_MAX_MB: Audit log rotation threshold
        TRACEMAP__INDEX__MAX_WORKERS: Parallel extraction workers
    """

    index_dir: str | None = Field(
        default=None,
        description="Directory holding index.db, the audit log and archives. "
        "Default: .tracemap/ in the indexed root.",
    )
    max_file_size_mb: int = Field(
        default=10,
        description="Files larger than this (MB) are counted as failures and skipped.",
    )
    audit_max_mb: float = Field(
        default=50.0,
        description="Audit log is compressed to a timestamped archive past this size (MB).",
    )
    max_workers: int = Field(
        default=1,
        description="Threads used for extraction. Commits stay serialized per file.",
    )

    @field_validator("max_file_size_mb", "max_workers")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"Must be >= 1, got {v}")
        return v

    @field_validator("audit_max_mb")
    @classmethod
    def validate_audit_size(cls, v: float) -> float:
        if v <= 0:
            raise ValueError(f"Must be > 0, got {v}")
        return v


class CategoryRule(BaseModel):
    """Path prefix -> category mapping for self-made files."""

    prefix: str
    category: str


def _default_categories() -> list[CategoryRule]:
    return [
        CategoryRule(prefix="components/", category="component"),
        CategoryRule(prefix="app/", category="app"),
        CategoryRule(prefix="core/", category="core"),
        CategoryRule(prefix="game/systems/", category="game-system"),
        CategoryRule(prefix="game/components/", category="game-component"),
        CategoryRule(prefix="game/", category="game"),
        CategoryRule(prefix="lib/", category="library"),
        CategoryRule(prefix="scripts/", category="script"),
        CategoryRule(prefix="config/", category="config"),
    ]


DEFAULT_BUILTIN_CLASSES: tuple[str, ...] = (
    "Array",
    "ArrayBuffer",
    "Blob",
    "BigInt64Array",
    "DataView",
    "Date",
    "Error",
    "Event",
    "EventTarget",
    "Float32Array",
    "Float64Array",
    "FormData",
    "Function",
    "Headers",
    "Image",
    "Int16Array",
    "Int32Array",
    "Int8Array",
    "IntersectionObserver",
    "Map",
    "MutationObserver",
    "Number",
    "Object",
    "Promise",
    "Proxy",
    "RangeError",
    "RegExp",
    "Request",
    "ResizeObserver",
    "Response",
    "Set",
    "String",
    "SyntaxError",
    "TextDecoder",
    "TextEncoder",
    "TypeError",
    "URL",
    "URLSearchParams",
    "Uint16Array",
    "Uint32Array",
    "Uint8Array",
    "Uint8ClampedArray",
    "WeakMap",
    "WeakRef",
    "WeakSet",
    "WebSocket",
    "Worker",
    "XMLHttpRequest",
)


class RulesConfig(BaseModel):
    """Path rules. All pattern lists share one glob dialect (see core/globs.py).

    scan/ignore select candidate files for a tree scan; include/exclude/critical
    drive the self-made classifier.
    """

    scan: list[str] = Field(
        default_factory=lambda: ["**/*.{js,jsx,mjs,cjs,ts,tsx,mts,cts,json,yaml,yml}"],
        description="Files a full scan considers. '!pattern' re-excludes.",
    )
    ignore: list[str] = Field(
        default_factory=lambda: [
            "**/node_modules/**",
            "**/dist/**",
            "**/build/**",
            "**/.git/**",
            "**/.next/**",
            "**/*.log",
            "**/*.jsonl",
            "**/*.min.js",
            "**/*.map",
        ],
        description="Files a full scan never considers.",
    )
    include: list[str] = Field(
        default_factory=lambda: ["src/**", "app/**", "lib/**", "components/**", "game/**"],
        description="Self-made code (confidence 0.95).",
    )
    exclude: list[str] = Field(
        default_factory=lambda: ["**/node_modules/**", "vendor/**", "**/vendor/**", "**/*.min.js"],
        description="External code (confidence 1.0). Checked before everything else.",
    )
    critical: list[str] = Field(
        default_factory=list,
        description="Critical self-made files (confidence 1.0). Pattern, substring or suffix.",
    )
    config_files: list[str] = Field(
        default_factory=lambda: ["package.json", "tsconfig.json", "**/*.config.{js,ts,json}"],
        description="Files categorized as 'config' when classified self-made.",
    )
    categories: list[CategoryRule] = Field(default_factory=_default_categories)
    builtin_classes: list[str] = Field(
        default_factory=lambda: list(DEFAULT_BUILTIN_CLASSES),
        description="Constructor names never recorded as instantiation sites.",
    )


class ResolverConfig(BaseModel):
    """Reverse resolver configuration.

    Env vars:
        TRACEMAP__RESOLVER__SOURCE_SEGMENTS: JSON list of source directory names
    """

    source_segments: list[str] = Field(
        default_factory=lambda: ["src"],
        description="Directory names that earn the source-path confidence bonus.",
    )


class SyncConfig(BaseModel):
    """Staleness/sync coordinator configuration.

    Env vars:
        TRACEMAP__SYNC__FRESHNESS_INTERVAL_SEC: Freshness refresh period
        TRACEMAP__SYNC__RERESOLVE_INTERVAL_SEC: Stale re-resolution period
        TRACEMAP__SYNC__BATCH_SIZE: Reports re-resolved per run
        TRACEMAP__SYNC__MAX_ATTEMPTS: Re-resolution attempts before a report is parked
        TRACEMAP__SYNC__REPORTS_DB: Error report database path
    """

    freshness_interval_sec: float = Field(
        default=3600.0,
        description="How often last_index_time is recomputed (1 hour default).",
    )
    reresolve_interval_sec: float = Field(
        default=21600.0,
        description="How often stale reports are re-resolved (6 hours default).",
    )
    batch_size: int = Field(
        default=50,
        description="Maximum stale reports handled per re-resolution run.",
    )
    max_attempts: int = Field(
        default=10,
        description="Attempts after which a pending report is no longer re-resolved.",
    )
    reports_db: str | None = Field(
        default=None,
        description="Error report database. Default: errors.db in the index directory.",
    )

    @field_validator("freshness_interval_sec", "reresolve_interval_sec")
    @classmethod
    def validate_interval(cls, v: float) -> float:
        if v <= 0:
            raise ValueError(f"Interval must be > 0, got {v}")
        return v

    @field_validator("batch_size", "max_attempts")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"Must be >= 1, got {v}")
        return v


class DatabaseConfig(BaseModel):
    """Database connection configuration.

    Env vars:
        TRACEMAP__DATABASE__BUSY_TIMEOUT_MS: SQLite busy timeout
        TRACEMAP__DATABASE__MAX_RETRIES: Max retry attempts for locked DB
    """

    busy_timeout_ms: int = Field(
        default=30000,
        description="SQLite busy timeout (ms). How long to wait for locks.",
    )
    max_retries: int = Field(
        default=3,
        description="Max retry attempts for locked database errors.",
    )
    retry_base_delay_sec: float = Field(
        default=0.1,
        description="Base delay between retries (exponential backoff).",
    )


class TracemapConfig(BaseModel):
    """Root configuration for tracemap."""

    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    index: IndexConfig = Field(default_factory=IndexConfig)
    rules: RulesConfig = Field(default_factory=RulesConfig)
    resolver: ResolverConfig = Field(default_factory=ResolverConfig)
    sync: SyncConfig = Field(default_factory=SyncConfig)
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)

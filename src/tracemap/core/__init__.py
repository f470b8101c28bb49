"""Core module exports."""

from tracemap.core.errors import (
    ConfigError,
    ErrorCode,
    PipelineError,
    StoreError,
    TracemapError,
)
from tracemap.core.globs import first_match, is_selected, matches_glob
from tracemap.core.logging import (
    clear_run_id,
    configure_logging,
    get_logger,
    get_run_id,
    run_context,
    set_run_id,
)
from tracemap.core.progress import progress, status

__all__ = [
    # Errors
    "ConfigError",
    "ErrorCode",
    "PipelineError",
    "StoreError",
    "TracemapError",
    # Globs
    "first_match",
    "is_selected",
    "matches_glob",
    # Logging
    "clear_run_id",
    "configure_logging",
    "get_logger",
    "get_run_id",
    "run_context",
    "set_run_id",
    # Progress
    "progress",
    "status",
]

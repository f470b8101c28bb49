"""Index freshness tracking and deferred re-resolution of error reports."""

from tracemap.sync.coordinator import (
    FRESHNESS_JOB,
    RERESOLVE_JOB,
    Assessment,
    BatchResult,
    SyncCoordinator,
    to_timestamp,
)
from tracemap.sync.reports import ErrorReport, ReportStore, SyncState

__all__ = [
    "FRESHNESS_JOB",
    "RERESOLVE_JOB",
    "Assessment",
    "BatchResult",
    "ErrorReport",
    "ReportStore",
    "SyncCoordinator",
    "SyncState",
    "to_timestamp",
]

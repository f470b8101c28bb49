"""Staleness tracking and deferred re-resolution of error reports.

An error captured before the newest indexing pass may point at code that has
since moved. Such reports are stored as stale and re-resolved later in
batches once the index has caught up.

Two periodic jobs, each guarded so a trigger that finds the previous run
still active is skipped:

- freshness: recompute last_index_time from the index (hourly by default)
- reresolve: re-run the resolver for stale or unresolved reports (every 6 hours
  by default)
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import threading
import time
from collections.abc import Callable
from dataclasses import asdict, dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import structlog
from sqlalchemy.exc import SQLAlchemyError

from tracemap.config.constants import SYNC_KEY_LAST_INDEX_TIME
from tracemap.config.loader import get_index_paths, load_config
from tracemap.config.models import SyncConfig, TracemapConfig
from tracemap.index.models import ResolvedMapping
from tracemap.index.store import IndexStore
from tracemap.resolve.resolver import ReverseResolver
from tracemap.sync.reports import ErrorReport, ReportStore

logger = structlog.get_logger()

FRESHNESS_JOB = "freshness"
RERESOLVE_JOB = "reresolve"

Timestamp = float | int | datetime | str


def to_timestamp(value: Timestamp | None) -> float | None:
    """Convert Unix seconds, a datetime or an ISO-8601 string to Unix seconds.

    Numeric strings are read as seconds; naive datetimes are taken as UTC.

    Raises:
        ValueError: If a string is not ISO-8601.
    """
    if value is None:
        return None
    if isinstance(value, str):
        text = value.strip()
        try:
            return float(text)
        except ValueError:
            value = datetime.fromisoformat(text)
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=UTC)
        return value.timestamp()
    return float(value)


@dataclass
class Assessment:
    """Outcome of assessing one incoming error location."""

    mapping: ResolvedMapping | None
    is_stale: bool


@dataclass
class BatchResult:
    """Counts from one stale re-resolution batch."""

    selected: int = 0
    resolved: int = 0
    unresolved: int = 0
    failed: int = 0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class SyncCoordinator:
    """Freshness bookkeeping plus the two background jobs.

    Usage::

        coordinator = SyncCoordinator.for_root(Path("."))
        coordinator.refresh_freshness()
        assessment = coordinator.assess("dist/app.js", 12, event_timestamp=ts)

        await coordinator.start()   # periodic jobs
        ...
        await coordinator.stop()
    """

    def __init__(
        self,
        store: IndexStore,
        reports: ReportStore,
        *,
        resolver: ReverseResolver | None = None,
        config: SyncConfig | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.store = store
        self.reports = reports
        self.resolver = resolver or ReverseResolver(store)
        self.config = config or SyncConfig()
        self._clock = clock
        self._last_index_time: float | None = self._load_persisted()
        self._job_locks: dict[str, threading.Lock] = {
            FRESHNESS_JOB: threading.Lock(),
            RERESOLVE_JOB: threading.Lock(),
        }
        self._tasks: list[asyncio.Task[None]] = []
        self._stop_event = asyncio.Event()

    @classmethod
    def for_root(cls, root: Path, config: TracemapConfig | None = None) -> SyncCoordinator:
        config = config or load_config(root)
        paths = get_index_paths(root, config)
        store = IndexStore.open(paths.db_path, config.database)
        return cls(
            store,
            ReportStore.open(paths.reports_db_path, config.database),
            resolver=ReverseResolver(store, config.resolver.source_segments),
            config=config.sync,
        )

    @property
    def last_index_time(self) -> float | None:
        return self._last_index_time

    def _load_persisted(self) -> float | None:
        try:
            value = self.reports.get_state(SYNC_KEY_LAST_INDEX_TIME)
        except SQLAlchemyError as e:
            logger.warning("sync_state_read_failed", error=str(e))
            return None
        if value is None:
            return None
        try:
            return float(value)
        except ValueError:
            logger.warning("sync_state_invalid", key=SYNC_KEY_LAST_INDEX_TIME, value=value)
            return None

    # =========================================================================
    # Freshness
    # =========================================================================

    def refresh_freshness(self) -> float | None:
        """Recompute last_index_time; on a storage error keep the previous value."""
        try:
            latest = self.store.max_indexed_at()
        except SQLAlchemyError as e:
            logger.error("freshness_refresh_failed", error=str(e))
            return self._last_index_time

        if latest is None:
            logger.info("freshness_refreshed", last_index_time=None)
            return self._last_index_time

        self._last_index_time = latest
        try:
            self.reports.set_state(SYNC_KEY_LAST_INDEX_TIME, repr(latest))
        except SQLAlchemyError as e:
            logger.error("freshness_persist_failed", error=str(e))
        logger.info("freshness_refreshed", last_index_time=latest)
        return latest

    def is_stale(self, event_timestamp: Timestamp | None) -> bool:
        """True iff the event predates the last known indexing pass."""
        ts = to_timestamp(event_timestamp)
        if ts is None or self._last_index_time is None:
            return False
        return ts < self._last_index_time

    # =========================================================================
    # Ingestion side
    # =========================================================================

    def assess(
        self, raw_path: str, line: int, event_timestamp: Timestamp | None = None
    ) -> Assessment:
        """Resolve now, or defer when the event is older than the index."""
        if self.is_stale(event_timestamp):
            return Assessment(mapping=None, is_stale=True)
        return Assessment(mapping=self.resolver.resolve(raw_path, line), is_stale=False)

    def record(
        self,
        raw_path: str,
        line: int,
        *,
        column: int | None = None,
        event_timestamp: Timestamp | None = None,
        message: str = "",
        stack: str = "",
    ) -> ErrorReport:
        """Assess a location and persist it as an error report."""
        ts = to_timestamp(event_timestamp)
        assessment = self.assess(raw_path, line, ts)
        report = ErrorReport(
            received_at=self._clock(),
            event_timestamp=ts,
            message=message,
            stack=stack,
            raw_path=raw_path,
            line=line,
            column=column,
            is_stale=assessment.is_stale,
        )
        mapping = assessment.mapping
        if mapping is not None:
            report.resolved_path = mapping.path
            report.resolved_symbol = mapping.symbol
            report.resolution_stage = mapping.stage.value
            report.confidence = mapping.confidence
            report.resolved_at = report.received_at
            report.deps_json = json.dumps(mapping.deps)
        return self.reports.add_report(report)

    # =========================================================================
    # Re-resolution
    # =========================================================================

    def reresolve_stale(self, batch_size: int | None = None) -> BatchResult:
        """Re-run the resolver for up to ``batch_size`` stale or unresolved reports.

        Reports with the fewest attempts go first; those at
        ``config.max_attempts`` are left alone.
        """
        size = batch_size if batch_size is not None else self.config.batch_size
        result = BatchResult()
        try:
            batch = self.reports.select_pending(size, self.config.max_attempts)
        except SQLAlchemyError as e:
            logger.error("stale_select_failed", error=str(e))
            return result
        result.selected = len(batch)

        for report in batch:
            if report.id is None:
                logger.warning("stale_report_without_id", raw_path=report.raw_path)
                result.failed += 1
                continue
            try:
                mapping = self.resolver.resolve(report.raw_path, report.line)
                if mapping is None:
                    self.reports.mark_failed(report.id, "unresolved")
                    result.unresolved += 1
                else:
                    self.reports.mark_resolved(report.id, mapping, self._clock())
                    result.resolved += 1
            except Exception as e:  # noqa: BLE001
                result.failed += 1
                logger.warning("stale_reresolve_failed", report_id=report.id, error=str(e))
                try:
                    self.reports.mark_failed(report.id, str(e))
                except SQLAlchemyError as mark_error:
                    logger.error(
                        "stale_mark_failed", report_id=report.id, error=str(mark_error)
                    )

        logger.info("stale_reresolved", **result.to_dict())
        return result

    # =========================================================================
    # Jobs
    # =========================================================================

    def is_job_running(self, name: str) -> bool:
        return self._job_locks[name].locked()

    def run_job_now(self, name: str) -> Any:
        """Run one job in the calling thread; returns None if it was already running."""
        job: Callable[[], Any] = {
            FRESHNESS_JOB: self.refresh_freshness,
            RERESOLVE_JOB: self.reresolve_stale,
        }[name]
        lock = self._job_locks[name]
        if not lock.acquire(blocking=False):
            logger.info("sync_job_skipped", job=name, reason="previous_run_active")
            return None
        try:
            return job()
        finally:
            lock.release()

    async def run_job(self, name: str) -> Any:
        """Run one job in a worker thread; returns None if it was already running."""
        return await asyncio.to_thread(self.run_job_now, name)

    async def start(self) -> None:
        """Start both periodic jobs. Each runs immediately, then on its interval."""
        if self._tasks:
            return
        self._stop_event.clear()
        self._tasks = [
            asyncio.create_task(
                self._periodic(FRESHNESS_JOB, self.config.freshness_interval_sec)
            ),
            asyncio.create_task(
                self._periodic(RERESOLVE_JOB, self.config.reresolve_interval_sec)
            ),
        ]
        logger.info(
            "sync_started",
            freshness_interval_sec=self.config.freshness_interval_sec,
            reresolve_interval_sec=self.config.reresolve_interval_sec,
        )

    async def stop(self) -> None:
        self._stop_event.set()
        for task in self._tasks:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._tasks = []
        logger.info("sync_stopped")

    async def _periodic(self, name: str, interval: float) -> None:
        while not self._stop_event.is_set():
            try:
                await self.run_job(name)
            except Exception as e:  # noqa: BLE001
                logger.error("sync_job_failed", job=name, error=str(e))
            with contextlib.suppress(TimeoutError):
                await asyncio.wait_for(self._stop_event.wait(), timeout=interval)


"""Tests for freshness tracking and stale re-resolution."""

import asyncio
import threading
from collections.abc import Callable
from datetime import UTC, datetime

import pytest
from sqlalchemy.exc import SQLAlchemyError

from tracemap.config.models import SyncConfig
from tracemap.index.models import FileRecord, ResolvedMapping
from tracemap.index.store import IndexStore
from tracemap.sync import (
    FRESHNESS_JOB,
    RERESOLVE_JOB,
    BatchResult,
    SyncCoordinator,
    to_timestamp,
)
from tracemap.sync.reports import ErrorReport, ReportStore


@pytest.fixture
def coordinator(
    indexed_store: IndexStore, reports: ReportStore, clock: Callable[[], float]
) -> SyncCoordinator:
    return SyncCoordinator(indexed_store, reports, clock=clock)


class TestToTimestamp:
    """Timestamp conversion tests."""

    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            (None, None),
            (1700000000, 1700000000.0),
            (1700000000.5, 1700000000.5),
            ("1700000000.5", 1700000000.5),
            ("2024-01-01T00:00:00Z", 1704067200.0),
            ("2024-01-01T01:00:00+01:00", 1704067200.0),
            (datetime(2024, 1, 1), 1704067200.0),
            (datetime(2024, 1, 1, tzinfo=UTC), 1704067200.0),
        ],
    )
    def test_given_supported_value_when_convert_then_unix_seconds(
        self, value: object, expected: float | None
    ) -> None:
        """Numbers, numeric strings, ISO strings and datetimes all convert; naive is UTC."""
        assert to_timestamp(value) == expected  # type: ignore[arg-type]

    def test_given_garbage_string_when_convert_then_value_error(self) -> None:
        """Unparseable strings raise."""
        with pytest.raises(ValueError):
            to_timestamp("yesterday-ish")


class TestFreshness:
    """last_index_time bookkeeping."""

    def test_given_new_coordinator_when_not_refreshed_then_nothing_is_stale(
        self, coordinator: SyncCoordinator
    ) -> None:
        """Without a known index time every event is fresh."""
        assert coordinator.last_index_time is None
        assert coordinator.is_stale(1.0) is False

    def test_given_refresh_when_indexed_then_max_indexed_at(
        self, coordinator: SyncCoordinator
    ) -> None:
        """Refreshing takes the newest last_indexed_at."""
        assert coordinator.refresh_freshness() == 1000.0
        assert coordinator.last_index_time == 1000.0

    def test_given_refreshed_when_compare_then_strictly_older_is_stale(
        self, coordinator: SyncCoordinator
    ) -> None:
        """Only events strictly before the index time are stale."""
        # Given
        coordinator.refresh_freshness()

        # Then
        assert coordinator.is_stale(999.999) is True
        assert coordinator.is_stale(1000.0) is False
        assert coordinator.is_stale(1000.5) is False
        assert coordinator.is_stale(None) is False
        assert coordinator.is_stale(datetime(1970, 1, 1, 0, 10, tzinfo=UTC)) is True

    def test_given_refreshed_when_new_coordinator_then_value_persisted(
        self, coordinator: SyncCoordinator, indexed_store: IndexStore, reports: ReportStore
    ) -> None:
        """The last index time survives a restart through the report store."""
        # Given
        coordinator.refresh_freshness()

        # When
        restarted = SyncCoordinator(indexed_store, reports)

        # Then
        assert restarted.last_index_time == 1000.0

    def test_given_empty_index_when_refresh_then_previous_value_kept(
        self, temp_store: IndexStore, reports: ReportStore
    ) -> None:
        """An empty index never clears a known time."""
        # Given
        reports.set_state("last_index_time", "500.0")
        coordinator = SyncCoordinator(temp_store, reports)

        # When
        result = coordinator.refresh_freshness()

        # Then
        assert result == 500.0
        assert coordinator.last_index_time == 500.0

    def test_given_storage_error_when_refresh_then_previous_value_kept(
        self,
        coordinator: SyncCoordinator,
        indexed_store: IndexStore,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        """A failed refresh leaves last_index_time untouched."""
        # Given
        coordinator.refresh_freshness()

        def _boom() -> float | None:
            raise SQLAlchemyError("database is locked")

        monkeypatch.setattr(indexed_store, "max_indexed_at", _boom)

        # When
        result = coordinator.refresh_freshness()

        # Then
        assert result == 1000.0
        assert coordinator.last_index_time == 1000.0

    def test_given_corrupt_persisted_value_when_start_then_ignored(
        self, indexed_store: IndexStore, reports: ReportStore
    ) -> None:
        """An unreadable persisted value is treated as unknown."""
        reports.set_state("last_index_time", "not-a-number")
        assert SyncCoordinator(indexed_store, reports).last_index_time is None


class TestAssessAndRecord:
    """Ingestion-side tests."""

    def test_given_fresh_event_when_assess_then_resolved_now(
        self, coordinator: SyncCoordinator
    ) -> None:
        """Events newer than the index are resolved immediately."""
        # Given
        coordinator.refresh_freshness()

        # When
        assessment = coordinator.assess("dist/widgets/Button.js", 10, event_timestamp=2000.0)

        # Then
        assert assessment.is_stale is False
        assert assessment.mapping is not None
        assert assessment.mapping.path == "src/widgets/Button.js"
        assert assessment.mapping.symbol == "render"

    def test_given_stale_event_when_assess_then_deferred(
        self, coordinator: SyncCoordinator
    ) -> None:
        """Events older than the index are not resolved."""
        # Given
        coordinator.refresh_freshness()

        # When
        assessment = coordinator.assess("dist/widgets/Button.js", 10, event_timestamp=10.0)

        # Then
        assert assessment.is_stale is True
        assert assessment.mapping is None

    def test_given_fresh_event_when_record_then_stored_with_mapping(
        self, coordinator: SyncCoordinator, reports: ReportStore
    ) -> None:
        """A fresh report is stored resolved."""
        # Given
        coordinator.refresh_freshness()

        # When
        report = coordinator.record(
            "http://localhost:3000/src/widgets/Button.js",
            12,
            column=4,
            event_timestamp="1970-01-01T00:30:00Z",
            message="TypeError: boom",
        )

        # Then
        assert report.id is not None
        stored = reports.get_report(report.id)
        assert stored is not None
        assert stored.is_stale is False
        assert stored.event_timestamp == 1800.0
        assert stored.resolved_path == "src/widgets/Button.js"
        assert stored.resolution_stage == "full_path"
        assert stored.resolved_at == stored.received_at
        assert stored.column == 4
        assert stored.message == "TypeError: boom"

    def test_given_stale_event_when_record_then_stored_unresolved(
        self, coordinator: SyncCoordinator, reports: ReportStore
    ) -> None:
        """A stale report waits for re-resolution."""
        # Given
        coordinator.refresh_freshness()

        # When
        report = coordinator.record("dist/widgets/Button.js", 12, event_timestamp=1.0)

        # Then
        assert report.is_stale is True
        assert report.resolved_path is None
        assert reports.count_stale() == 1


class TestReresolve:
    """Batch re-resolution tests."""

    @pytest.fixture
    def stale_reports(self, coordinator: SyncCoordinator) -> list[int]:
        coordinator.refresh_freshness()
        ids = []
        for raw in ("dist/widgets/Button.js", "dist/nowhere.js", "cdn/lib/util.js"):
            report = coordinator.record(raw, 5, event_timestamp=1.0)
            assert report.id is not None
            ids.append(report.id)
        return ids

    def test_given_stale_reports_when_reresolve_then_counts(
        self, coordinator: SyncCoordinator, reports: ReportStore, stale_reports: list[int]
    ) -> None:
        """Resolvable reports are updated; the rest record an attempt."""
        # When
        result = coordinator.reresolve_stale()

        # Then
        assert result == BatchResult(selected=3, resolved=2, unresolved=1, failed=0)
        button = reports.get_report(stale_reports[0])
        assert button is not None
        assert button.is_stale is False
        assert button.resolved_path == "src/widgets/Button.js"
        missing = reports.get_report(stale_reports[1])
        assert missing is not None
        assert missing.is_stale is True
        assert missing.attempts == 1
        assert missing.last_error == "unresolved"
        assert reports.count_stale() == 1

    def test_given_batch_size_when_reresolve_then_oldest_only(
        self, coordinator: SyncCoordinator, reports: ReportStore, stale_reports: list[int]
    ) -> None:
        """The batch size bounds one run, oldest reports first."""
        # When
        result = coordinator.reresolve_stale(batch_size=1)

        # Then
        assert result.selected == 1
        assert result.resolved == 1
        first = reports.get_report(stale_reports[0])
        assert first is not None and first.is_stale is False
        assert reports.count_stale() == 2

    def test_given_resolver_error_when_reresolve_then_failed_and_continues(
        self,
        coordinator: SyncCoordinator,
        reports: ReportStore,
        stale_reports: list[int],
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        """An exception on one report is counted and recorded on it."""

        # Given
        def _boom(raw_path: str, line: int) -> ResolvedMapping | None:
            raise RuntimeError("index unavailable")

        monkeypatch.setattr(coordinator.resolver, "resolve", _boom)

        # When
        result = coordinator.reresolve_stale()

        # Then
        assert result.failed == 3
        report = reports.get_report(stale_reports[0])
        assert report is not None
        assert report.last_error == "index unavailable"
        assert report.attempts == 1

    def test_given_unresolvable_backlog_when_reresolve_again_then_newer_report_reached(
        self, coordinator: SyncCoordinator, reports: ReportStore
    ) -> None:
        """Reports that keep failing do not hold every batch."""
        # Given
        coordinator.refresh_freshness()
        for _ in range(3):
            coordinator.record("dist/gone.js", 5, event_timestamp=1.0)
        button = coordinator.record("dist/widgets/Button.js", 5, event_timestamp=1.0)
        assert button.id is not None

        # When
        first = coordinator.reresolve_stale(batch_size=3)
        second = coordinator.reresolve_stale(batch_size=3)

        # Then
        assert first == BatchResult(selected=3, resolved=0, unresolved=3, failed=0)
        assert second.resolved == 1
        stored = reports.get_report(button.id)
        assert stored is not None
        assert stored.is_stale is False
        assert stored.resolved_path == "src/widgets/Button.js"

    def test_given_fresh_report_for_unindexed_file_when_indexed_later_then_resolved(
        self,
        coordinator: SyncCoordinator,
        indexed_store: IndexStore,
        reports: ReportStore,
        make_record: Callable[..., FileRecord],
    ) -> None:
        """An unresolved fresh report is retried once its file is indexed."""
        # Given
        coordinator.refresh_freshness()
        report = coordinator.record("src/late.js", 3, event_timestamp=2000.0)
        assert report.id is not None
        assert report.is_stale is False
        assert report.resolved_path is None
        indexed_store.commit_file(make_record("src/late.js", last_indexed_at=3000.0), [], [])
        coordinator.refresh_freshness()

        # When
        result = coordinator.reresolve_stale()

        # Then
        assert result == BatchResult(selected=1, resolved=1, unresolved=0, failed=0)
        stored = reports.get_report(report.id)
        assert stored is not None
        assert stored.resolved_path == "src/late.js"

    def test_given_attempt_cap_when_reresolve_then_exhausted_reports_skipped(
        self, indexed_store: IndexStore, reports: ReportStore, clock: Callable[[], float]
    ) -> None:
        """Reports at max_attempts are no longer selected."""
        # Given
        coordinator = SyncCoordinator(
            indexed_store, reports, config=SyncConfig(max_attempts=2), clock=clock
        )
        coordinator.refresh_freshness()
        coordinator.record("dist/gone.js", 5, event_timestamp=1.0)
        coordinator.reresolve_stale()
        coordinator.reresolve_stale()

        # When
        result = coordinator.reresolve_stale()

        # Then
        assert result == BatchResult()
        assert reports.count_stale() == 1

    def test_given_report_without_id_when_reresolve_then_counted_failed(
        self, coordinator: SyncCoordinator, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """A selected row with no id is skipped and counted, not asserted on."""
        # Given
        orphan = ErrorReport(received_at=1.0, raw_path="dist/app.js", line=3)
        monkeypatch.setattr(coordinator.reports, "select_pending", lambda *_: [orphan])

        # When
        result = coordinator.reresolve_stale()

        # Then
        assert result == BatchResult(selected=1, resolved=0, unresolved=0, failed=1)

    def test_given_no_stale_reports_when_reresolve_then_empty_batch(
        self, coordinator: SyncCoordinator
    ) -> None:
        """Nothing to do is not an error."""
        assert coordinator.reresolve_stale() == BatchResult()


class TestJobs:
    """Job guard and scheduling tests."""

    def test_given_job_running_when_triggered_again_then_skipped(
        self, coordinator: SyncCoordinator, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """A trigger that finds the previous run active does nothing."""
        # Given
        entered = threading.Event()
        release = threading.Event()

        def _slow_refresh() -> float | None:
            entered.set()
            release.wait(timeout=5)
            return 1.0

        monkeypatch.setattr(coordinator, "refresh_freshness", _slow_refresh)
        results: list[object] = []
        worker = threading.Thread(
            target=lambda: results.append(coordinator.run_job_now(FRESHNESS_JOB))
        )
        worker.start()
        assert entered.wait(timeout=5)

        # When
        skipped = coordinator.run_job_now(FRESHNESS_JOB)
        other = coordinator.run_job_now(RERESOLVE_JOB)

        # Then
        assert skipped is None
        assert coordinator.is_job_running(FRESHNESS_JOB)
        assert isinstance(other, BatchResult)
        release.set()
        worker.join(timeout=5)
        assert results == [1.0]
        assert not coordinator.is_job_running(FRESHNESS_JOB)

    @pytest.mark.asyncio
    async def test_given_async_trigger_when_run_job_then_result_returned(
        self, coordinator: SyncCoordinator
    ) -> None:
        """run_job executes the job off the event loop."""
        assert await coordinator.run_job(FRESHNESS_JOB) == 1000.0

    @pytest.mark.asyncio
    async def test_given_started_when_stopped_then_jobs_ran_and_tasks_cleared(
        self, indexed_store: IndexStore, reports: ReportStore
    ) -> None:
        """Jobs run on start; stopping is idempotent."""
        # Given
        coordinator = SyncCoordinator(
            indexed_store,
            reports,
            config=SyncConfig(freshness_interval_sec=60, reresolve_interval_sec=60),
        )

        # When
        await coordinator.start()
        for _ in range(100):
            if coordinator.last_index_time is not None:
                break
            await asyncio.sleep(0.02)
        await coordinator.stop()

        # Then
        assert coordinator.last_index_time == 1000.0
        await coordinator.stop()

"""Error-report storage shared with the ingestion side.

Reports live in their own database file (``errors.db`` by default) so the
index can be truncated and rebuilt without touching captured errors.
"""

import json
from collections.abc import Sequence
from pathlib import Path

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Field, SQLModel, col, select

from tracemap.config.models import DatabaseConfig
from tracemap.core.errors import StoreError
from tracemap.index._internal.db import Database
from tracemap.index.models import ResolvedMapping


class ErrorReport(SQLModel, table=True):
    """A captured runtime error and its (possibly deferred) mapping."""

    __tablename__ = "error_reports"

    id: int | None = Field(default=None, primary_key=True)
    received_at: float = Field(index=True)
    event_timestamp: float | None = None
    message: str = ""
    stack: str = ""
    raw_path: str
    line: int
    column: int | None = None
    resolved_path: str | None = None
    resolved_symbol: str | None = None
    resolution_stage: str | None = None
    deps_json: str = "[]"
    confidence: float | None = None
    resolved_at: float | None = None
    is_stale: bool = Field(default=False, index=True)
    attempts: int = 0
    last_error: str | None = None

    def get_deps(self) -> list[str]:
        result: list[str] = json.loads(self.deps_json or "[]")
        return result


class SyncState(SQLModel, table=True):
    """Key/value state of the sync jobs."""

    __tablename__ = "sync_state"

    key: str = Field(primary_key=True)
    value: str


REPORT_TABLES = (ErrorReport, SyncState)


class ReportStore:
    """CRUD over error reports and sync state."""

    def __init__(self, db: Database) -> None:
        self.db = db

    @classmethod
    def open(cls, db_path: Path, config: DatabaseConfig | None = None) -> "ReportStore":
        """Open (and create if needed) the report database.

        Raises:
            StoreError: If the database or its schema cannot be created.
        """
        config = config or DatabaseConfig()
        try:
            db_path.parent.mkdir(parents=True, exist_ok=True)
            db = Database(db_path, config)
            db.create_all(REPORT_TABLES)
        except (OSError, SQLAlchemyError) as e:
            raise StoreError.init_failed(str(db_path), str(e)) from e
        return cls(db)

    # =========================================================================
    # Reports
    # =========================================================================

    def add_report(self, report: ErrorReport) -> ErrorReport:
        with self.db.session() as session:
            session.add(report)
            session.commit()
            session.refresh(report)
        return report

    def add_reports(self, reports: Sequence[ErrorReport]) -> int:
        """Insert many reports in one transaction."""
        with self.db.bulk_writer() as writer:
            return writer.insert_many(
                ErrorReport, [r.model_dump(exclude={"id"}) for r in reports]
            )

    def get_report(self, report_id: int) -> ErrorReport | None:
        with self.db.session() as session:
            return session.get(ErrorReport, report_id)

    def list_reports(self, *, stale_only: bool = False, limit: int = 100) -> list[ErrorReport]:
        stmt = select(ErrorReport)
        if stale_only:
            stmt = stmt.where(col(ErrorReport.is_stale))
        stmt = stmt.order_by(col(ErrorReport.id).desc()).limit(limit)
        with self.db.session() as session:
            return list(session.exec(stmt).all())

    def select_pending(self, limit: int, max_attempts: int) -> list[ErrorReport]:
        """Stale or unresolved reports still under ``max_attempts``.

        Fewest attempts first, then oldest, so reports that keep failing
        cannot crowd out ones that were never retried.
        """
        stmt = (
            select(ErrorReport)
            .where(col(ErrorReport.is_stale) | col(ErrorReport.resolved_path).is_(None))
            .where(col(ErrorReport.attempts) < max_attempts)
            .order_by(
                col(ErrorReport.attempts), col(ErrorReport.received_at), col(ErrorReport.id)
            )
            .limit(limit)
        )
        with self.db.session() as session:
            return list(session.exec(stmt).all())

    def count_stale(self) -> int:
        with self.db.session() as session:
            return session.exec(
                select(func.count(col(ErrorReport.id))).where(col(ErrorReport.is_stale))
            ).one()

    def mark_resolved(self, report_id: int, mapping: ResolvedMapping, resolved_at: float) -> None:
        """Store a refreshed mapping and clear the stale flag."""
        with self.db.bulk_writer() as writer:
            writer.update_by_id(
                ErrorReport,
                report_id,
                {
                    "resolved_path": mapping.path,
                    "resolved_symbol": mapping.symbol,
                    "resolution_stage": mapping.stage.value,
                    "deps_json": json.dumps(mapping.deps),
                    "confidence": mapping.confidence,
                    "resolved_at": resolved_at,
                    "is_stale": False,
                    "last_error": None,
                },
            )

    def mark_failed(self, report_id: int, error: str) -> None:
        """Count a failed attempt; the report stays stale."""
        with self.db.session() as session:
            report = session.get(ErrorReport, report_id)
            if report is None:
                return
            report.attempts += 1
            report.last_error = error
            session.add(report)
            session.commit()

    # =========================================================================
    # Sync state
    # =========================================================================

    def get_state(self, key: str) -> str | None:
        with self.db.session() as session:
            row = session.get(SyncState, key)
            return row.value if row is not None else None

    def set_state(self, key: str, value: str) -> None:
        with self.db.session() as session:
            row = session.get(SyncState, key)
            if row is None:
                row = SyncState(key=key, value=value)
            else:
                row.value = value
            session.add(row)
            session.commit()

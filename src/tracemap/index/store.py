"""Durable index store.

Write contract: everything about one file (its FileRecord, dependency edges
and instance sites) is committed in a single BEGIN IMMEDIATE transaction, so
readers observe either the complete old state or the complete new state.

Lookup helpers back the reverse resolver's three stages; suffix matching
always happens on '/' boundaries.
"""

from __future__ import annotations

from collections.abc import Sequence
from pathlib import Path

import structlog
from sqlalchemy import case, delete, func, insert, literal
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import col, select

from tracemap.config.models import DatabaseConfig
from tracemap.core.errors import StoreError
from tracemap.index._internal.db import Database
from tracemap.index.models import (
    FACT_TABLES,
    INDEX_TABLES,
    DependencyEdge,
    FileRecord,
    IndexRun,
    InstanceSite,
)

logger = structlog.get_logger()


class IndexStore:
    """Tables of indexed files and their owned facts."""

    def __init__(self, db: Database) -> None:
        self.db = db

    @classmethod
    def open(cls, db_path: Path, config: DatabaseConfig | None = None) -> IndexStore:
        """Open (and create if needed) the store at ``db_path``.

        Raises:
            StoreError: If the database or its schema cannot be created.
        """
        config = config or DatabaseConfig()
        try:
            db_path.parent.mkdir(parents=True, exist_ok=True)
            db = Database(db_path, config)
        except (OSError, SQLAlchemyError) as e:
            raise StoreError.init_failed(str(db_path), str(e)) from e
        store = cls(db)
        store.create_schema()
        return store

    def create_schema(self) -> None:
        try:
            self.db.create_all(INDEX_TABLES)
        except SQLAlchemyError as e:
            raise StoreError.init_failed(str(self.db.db_path), str(e)) from e

    # =========================================================================
    # Writes
    # =========================================================================

    def commit_file(
        self,
        record: FileRecord,
        edges: Sequence[DependencyEdge],
        instances: Sequence[InstanceSite],
    ) -> float:
        """Replace everything stored for ``record.path`` atomically.

        ``last_indexed_at`` never moves backwards for a path: if the stored
        value is newer, it is kept.

        Returns:
            The effective last_indexed_at after the commit.

        Raises:
            StoreError: write_failed; nothing of this file was committed.
        """
        values = record.model_dump(exclude={"id"})
        table = FileRecord.__table__  # type: ignore[attr-defined]
        try:
            with self.db.immediate_transaction() as session:
                upsert = sqlite_insert(table).values(**values)
                updates = {name: upsert.excluded[name] for name in values if name != "path"}
                updates["last_indexed_at"] = func.max(
                    table.c.last_indexed_at, upsert.excluded.last_indexed_at
                )
                session.execute(upsert.on_conflict_do_update(index_elements=["path"], set_=updates))

                session.execute(
                    delete(DependencyEdge).where(col(DependencyEdge.source_path) == record.path)
                )
                session.execute(
                    delete(InstanceSite).where(col(InstanceSite.file_path) == record.path)
                )
                if edges:
                    session.execute(
                        insert(DependencyEdge),
                        [e.model_dump(exclude={"id"}) for e in edges],
                    )
                if instances:
                    session.execute(
                        insert(InstanceSite),
                        [i.model_dump(exclude={"id"}) for i in instances],
                    )

                effective = session.exec(
                    select(FileRecord.last_indexed_at).where(FileRecord.path == record.path)
                ).one()
        except SQLAlchemyError as e:
            raise StoreError.write_failed(record.path, str(e)) from e
        return float(effective)

    def truncate(self) -> None:
        """Delete every file and owned fact in one transaction.

        Raises:
            StoreError: truncate_failed; the store is unchanged.
        """
        try:
            with self.db.bulk_writer() as writer:
                for model in FACT_TABLES:
                    writer.delete_all(model)
        except SQLAlchemyError as e:
            raise StoreError.truncate_failed(str(e)) from e
        logger.info("index_truncated")

    def record_run(self, run: IndexRun) -> None:
        with self.db.session() as session:
            session.add(run)
            session.commit()
            session.refresh(run)

    # =========================================================================
    # Reads
    # =========================================================================

    def get_file(self, path: str) -> FileRecord | None:
        with self.db.session() as session:
            return session.exec(select(FileRecord).where(FileRecord.path == path)).first()

    def find_exact_or_suffix(self, path: str) -> FileRecord | None:
        """Exact match, else a stored path that is a '/'-suffix of ``path`` or vice versa.

        Exact match wins. Next come stored paths that are a suffix of ``path``,
        longest first. Stored paths that merely end with ``path`` come last,
        shortest first, then lexicographic.
        """
        if not path:
            return None
        stored = col(FileRecord.path)
        stored_is_suffix = (func.length(stored) < len(path)) & (
            func.substr(literal(path), len(path) - func.length(stored)) == literal("/") + stored
        )
        path_is_suffix = stored.endswith("/" + path, autoescape=True)
        stmt = (
            select(FileRecord)
            .where((stored == path) | stored_is_suffix | path_is_suffix)
            .order_by(
                case((stored == path, 0), (stored_is_suffix, 1), else_=2),
                case((stored_is_suffix, -func.length(stored)), else_=func.length(stored)),
                stored,
            )
            .limit(1)
        )
        with self.db.session() as session:
            return session.exec(stmt).first()

    def find_by_basename_and_parent(self, basename: str, parent: str) -> FileRecord | None:
        """Shortest stored path ending in ``basename`` with ``parent`` as a directory segment."""
        if not basename or not parent:
            return None
        stored = col(FileRecord.path)
        stmt = (
            select(FileRecord)
            .where((stored == basename) | stored.endswith("/" + basename, autoescape=True))
            .where(
                stored.startswith(parent + "/", autoescape=True)
                | stored.contains("/" + parent + "/", autoescape=True)
            )
            .order_by(func.length(stored), stored)
            .limit(1)
        )
        with self.db.session() as session:
            return session.exec(stmt).first()

    def find_by_basename(self, basename: str) -> FileRecord | None:
        """Shortest stored path whose last segment is ``basename`` (ties: lexicographic)."""
        if not basename:
            return None
        stored = col(FileRecord.path)
        stmt = (
            select(FileRecord)
            .where((stored == basename) | stored.endswith("/" + basename, autoescape=True))
            .order_by(func.length(stored), stored)
            .limit(1)
        )
        with self.db.session() as session:
            return session.exec(stmt).first()

    def dependencies_of(self, path: str) -> list[str]:
        """Outgoing target modules in insertion order, deduplicated."""
        stmt = (
            select(DependencyEdge.target_module)
            .where(DependencyEdge.source_path == path)
            .order_by(col(DependencyEdge.id))
        )
        with self.db.session() as session:
            modules = session.exec(stmt).all()
        return list(dict.fromkeys(modules))

    def max_indexed_at(self) -> float | None:
        with self.db.session() as session:
            value = session.exec(select(func.max(FileRecord.last_indexed_at))).one()
        return float(value) if value is not None else None

    def latest_run(self) -> IndexRun | None:
        stmt = select(IndexRun).order_by(col(IndexRun.id).desc()).limit(1)
        with self.db.session() as session:
            return session.exec(stmt).first()

    def all_paths(self) -> list[str]:
        with self.db.session() as session:
            return list(session.exec(select(FileRecord.path).order_by(FileRecord.path)).all())

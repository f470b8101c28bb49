"""Read-only query surface over the index.

Backs ``tmap query``. All methods open their own session and never write.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import func
from sqlmodel import col, select

from tracemap.index.models import DependencyEdge, FileRecord, InstanceSite
from tracemap.index.paths import normalize_path, stem
from tracemap.index.store import IndexStore

TOP_LARGEST_FILES = 10


@dataclass
class IndexStats:
    """Aggregate view of the index."""

    total_files: int = 0
    total_lines: int = 0
    by_language: dict[str, int] = field(default_factory=dict)
    by_category: dict[str, int] = field(default_factory=dict)
    self_made: int = 0
    external: int = 0
    critical: int = 0
    largest: list[tuple[str, int]] = field(default_factory=list)
    last_index_time: float | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_files": self.total_files,
            "total_lines": self.total_lines,
            "by_language": self.by_language,
            "by_category": self.by_category,
            "self_made": self.self_made,
            "external": self.external,
            "critical": self.critical,
            "largest": [{"path": p, "lines": n} for p, n in self.largest],
            "last_index_time": self.last_index_time,
        }


def _module_stem(module: str) -> str:
    """Last segment of an import specifier, without its extension."""
    return stem(module.rstrip("/"))


class IndexQueries:
    """Lookups used by the CLI and by tooling around the resolver."""

    def __init__(self, store: IndexStore) -> None:
        self._store = store
        self._db = store.db

    def lookup_path(self, pattern: str, limit: int = 50) -> list[FileRecord]:
        """Files whose path contains ``pattern``."""
        stmt = (
            select(FileRecord)
            .where(col(FileRecord.path).contains(pattern, autoescape=True))
            .order_by(FileRecord.path)
            .limit(limit)
        )
        with self._db.session() as session:
            return list(session.exec(stmt).all())

    def get_file(self, path: str) -> FileRecord | None:
        return self._store.get_file(normalize_path(path))

    def lookup_class(self, class_name: str) -> list[InstanceSite]:
        """Every ``new <class_name>(...)`` site, by file then line."""
        stmt = (
            select(InstanceSite)
            .where(InstanceSite.class_name == class_name)
            .order_by(InstanceSite.file_path, InstanceSite.line, InstanceSite.column)
        )
        with self._db.session() as session:
            return list(session.exec(stmt).all())

    def dependencies(self, path: str) -> list[str]:
        return self._store.dependencies_of(normalize_path(path))

    def dependents(self, path: str) -> list[str]:
        """Files importing a module whose last segment matches this file's stem.

        The match is by name only; ``./utils`` and ``../lib/utils.js`` both
        count as dependents of ``src/utils.ts``.
        """
        target = stem(normalize_path(path))
        if not target:
            return []
        stmt = (
            select(DependencyEdge.source_path, DependencyEdge.target_module)
            .where(col(DependencyEdge.target_module).contains(target, autoescape=True))
            .order_by(DependencyEdge.source_path)
        )
        with self._db.session() as session:
            rows = session.exec(stmt).all()
        return list(
            dict.fromkeys(source for source, module in rows if _module_stem(module) == target)
        )

    def list_files(self) -> list[str]:
        return self._store.all_paths()

    def stats(self) -> IndexStats:
        result = IndexStats()
        with self._db.session() as session:
            count, lines = session.exec(
                select(func.count(col(FileRecord.id)), func.sum(FileRecord.line_count))
            ).one()
            result.total_files = int(count or 0)
            result.total_lines = int(lines or 0)

            for language, n in session.exec(
                select(FileRecord.language, func.count(col(FileRecord.id)))
                .group_by(FileRecord.language)
                .order_by(FileRecord.language)
            ).all():
                result.by_language[language] = n

            for category, n in session.exec(
                select(FileRecord.category, func.count(col(FileRecord.id)))
                .group_by(FileRecord.category)
                .order_by(FileRecord.category)
            ).all():
                result.by_category[category or "none"] = n

            for is_self_made, n in session.exec(
                select(FileRecord.is_self_made, func.count(col(FileRecord.id))).group_by(
                    FileRecord.is_self_made
                )
            ).all():
                if is_self_made:
                    result.self_made = n
                else:
                    result.external = n

            result.critical = session.exec(
                select(func.count(col(FileRecord.id))).where(col(FileRecord.is_critical))
            ).one()

            result.largest = [
                (path, n)
                for path, n in session.exec(
                    select(FileRecord.path, FileRecord.line_count)
                    .order_by(col(FileRecord.line_count).desc(), FileRecord.path)
                    .limit(TOP_LARGEST_FILES)
                ).all()
            ]

        result.last_index_time = self._store.max_indexed_at()
        return result

"""High-level orchestration of an indexing run.

The IndexingPipeline is the entry point for every write to the index. It
enforces one serialization invariant:

- single-flight: only ONE run per index at a time, guarded in-process by a
  lock keyed on the database path and across processes by a PID lock file.

Per file: read -> hash -> extract -> classify -> commit -> audit.
A failing file is counted and logged; it never stops the run.
"""

from __future__ import annotations

import contextlib
import hashlib
import json
import os
import threading
import time
from collections.abc import Callable, Iterable, Iterator
from concurrent.futures import ThreadPoolExecutor
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any

import structlog
from sqlalchemy.exc import SQLAlchemyError

from tracemap.config.loader import get_index_paths, load_config
from tracemap.config.models import TracemapConfig
from tracemap.config.rules import RuleSet
from tracemap.core.errors import PipelineError, StoreError
from tracemap.core.logging import run_context
from tracemap.core.progress import progress
from tracemap.index._internal.audit import AuditLog, make_record
from tracemap.index._internal.discovery import (
    changed_since_parent,
    filter_candidates,
    head_commit_sha,
    scan_tree,
)
from tracemap.index._internal.extraction import ExtractorRegistry
from tracemap.index.classifier import Classifier
from tracemap.index.models import (
    Classification,
    DependencyEdge,
    FileFacts,
    FileRecord,
    IndexRun,
    InstanceSite,
    RunMode,
)
from tracemap.index.store import IndexStore

logger = structlog.get_logger()

_BYTES_PER_MB = 1024 * 1024

_run_locks: dict[str, threading.Lock] = {}
_run_locks_guard = threading.Lock()


def _run_lock_for(key: str) -> threading.Lock:
    with _run_locks_guard:
        lock = _run_locks.get(key)
        if lock is None:
            lock = threading.Lock()
            _run_locks[key] = lock
        return lock


def _pid_alive(pid: int) -> bool:
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True
    except OSError:
        return False
    return True


def _try_create_lock_file(lock_path: Path) -> bool:
    """Create the lock file exclusively; reclaim it if its owner process is gone."""
    lock_path.parent.mkdir(parents=True, exist_ok=True)
    for _ in range(2):
        try:
            fd = os.open(lock_path, os.O_CREAT | os.O_EXCL | os.O_WRONLY)
        except FileExistsError:
            try:
                owner = int(lock_path.read_text().strip())
            except (FileNotFoundError, ValueError):
                owner = None
            if owner is not None and _pid_alive(owner):
                return False
            logger.warning("stale_index_lock_removed", lock_path=str(lock_path), owner_pid=owner)
            with contextlib.suppress(FileNotFoundError):
                lock_path.unlink()
            continue
        with os.fdopen(fd, "w") as f:
            f.write(str(os.getpid()))
        return True
    return False


@contextlib.contextmanager
def single_flight(db_path: Path, lock_path: Path) -> Iterator[None]:
    """Hold the in-process and on-disk run guards, or raise already_running."""
    lock = _run_lock_for(str(db_path.resolve()))
    if not lock.acquire(blocking=False):
        raise PipelineError.already_running(str(lock_path))
    try:
        if not _try_create_lock_file(lock_path):
            raise PipelineError.already_running(str(lock_path))
        try:
            yield
        finally:
            with contextlib.suppress(FileNotFoundError):
                lock_path.unlink()
    finally:
        lock.release()


@dataclass
class RunStats:
    """Summary of one pipeline run."""

    run_id: str
    mode: str
    succeeded: int = 0
    failed: int = 0
    failures: list[tuple[str, str]] = field(default_factory=list)
    elapsed_seconds: float = 0.0
    freshness: float | None = None
    dry_run: bool = False

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["failures"] = [{"path": p, "reason": r} for p, r in self.failures]
        return data


@dataclass
class _Prepared:
    """Everything computed for a file before it is committed."""

    path: str
    content_hash: str
    facts: FileFacts
    classification: Classification


class IndexingPipeline:
    """
    Indexes a source tree into an IndexStore.

    Usage::

        pipeline = IndexingPipeline.for_root(Path("."))
        stats = pipeline.run(full_scan=True)

        # Watcher-driven
        stats = pipeline.run(paths=["src/app.js"])
    """

    def __init__(
        self,
        root: Path,
        store: IndexStore,
        rules: RuleSet,
        *,
        audit: AuditLog | None = None,
        lock_path: Path | None = None,
        max_file_size_mb: int = 10,
        max_workers: int = 1,
        registry: ExtractorRegistry | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.root = root
        self.store = store
        self.rules = rules
        self.audit = audit or AuditLog(store.db.db_path.parent)
        self.lock_path = lock_path or store.db.db_path.parent / "index.lock"
        self.max_file_bytes = max_file_size_mb * _BYTES_PER_MB
        self.max_workers = max_workers
        self.classifier = Classifier(rules)
        self.registry = registry or ExtractorRegistry.default(rules.builtin_classes)
        self._clock = clock

    @classmethod
    def for_root(cls, root: Path, config: TracemapConfig | None = None) -> IndexingPipeline:
        """Build a pipeline with storage locations and rules taken from config."""
        config = config or load_config(root)
        paths = get_index_paths(root, config)
        store = IndexStore.open(paths.db_path, config.database)
        return cls(
            root,
            store,
            RuleSet.from_config(config),
            audit=AuditLog(paths.audit_dir, max_mb=config.index.audit_max_mb),
            lock_path=paths.lock_path,
            max_file_size_mb=config.index.max_file_size_mb,
            max_workers=config.index.max_workers,
        )

    # =========================================================================
    # Run
    # =========================================================================

    def run(
        self,
        full_scan: bool = False,
        paths: Iterable[str] | None = None,
        dry_run: bool = False,
    ) -> RunStats:
        """
        Execute one indexing run.

        Args:
            full_scan: Truncate the store, then index every candidate in the tree.
            paths: Explicit candidates (e.g. from a file watcher). Not combinable
                with full_scan.
            dry_run: Compute everything but write neither the store nor the audit log.

        Raises:
            PipelineError: already_running if another run holds the guard.
            StoreError: truncate_failed if a full rescan cannot clear the store.
        """
        if full_scan and paths is not None:
            raise ValueError("full_scan and explicit paths are mutually exclusive")

        with single_flight(self.store.db.db_path, self.lock_path):
            with run_context() as run_id:
                return self._run_locked(run_id, full_scan, paths, dry_run)

    def _run_locked(
        self,
        run_id: str,
        full_scan: bool,
        paths: Iterable[str] | None,
        dry_run: bool,
    ) -> RunStats:
        started_at = self._clock()
        start = time.perf_counter()
        mode = RunMode.FULL if full_scan else RunMode.INCREMENTAL
        stats = RunStats(run_id=run_id, mode=mode.value, dry_run=dry_run)

        logger.info("index_run_started", mode=mode.value, dry_run=dry_run, root=str(self.root))

        if not dry_run:
            self.audit.rotate_if_needed()
            if full_scan:
                self.store.truncate()

        candidates, commit_sha = self._candidates(full_scan, paths)
        logger.info("index_candidates", count=len(candidates))

        for path, prepared in self._prepare_all(candidates):
            if isinstance(prepared, Exception):
                self._record_failure(stats, path, prepared)
                continue
            try:
                self._commit(prepared, run_id=run_id, commit_sha=commit_sha, dry_run=dry_run)
            except StoreError as e:
                self._record_failure(stats, path, e)
                continue
            stats.succeeded += 1

        stats.elapsed_seconds = time.perf_counter() - start
        try:
            stats.freshness = self.store.max_indexed_at()
            if not dry_run:
                self.store.record_run(
                    IndexRun(
                        run_id=run_id,
                        mode=mode.value,
                        started_at=started_at,
                        finished_at=self._clock(),
                        files_succeeded=stats.succeeded,
                        files_failed=stats.failed,
                        freshness=stats.freshness,
                    )
                )
        except SQLAlchemyError as e:
            logger.error("index_run_record_failed", error=str(e))

        logger.info(
            "index_run_complete",
            mode=mode.value,
            succeeded=stats.succeeded,
            failed=stats.failed,
            elapsed_sec=round(stats.elapsed_seconds, 3),
            dry_run=dry_run,
        )
        return stats

    def _record_failure(self, stats: RunStats, path: str, error: Exception) -> None:
        stats.failed += 1
        stats.failures.append((path, str(error)))
        logger.warning("file_index_failed", path=path, error=str(error))

    # =========================================================================
    # Candidates
    # =========================================================================

    def _candidates(
        self, full_scan: bool, paths: Iterable[str] | None
    ) -> tuple[list[str], str | None]:
        """Return (candidate paths, commit sha)."""
        if paths is not None:
            return filter_candidates(paths, self.rules), head_commit_sha(self.root)

        if not full_scan:
            changes = changed_since_parent(self.root)
            if changes is not None:
                candidates = filter_candidates(changes.paths, self.rules)
                if candidates:
                    return candidates, changes.commit_sha
                logger.info("git_changes_empty_falling_back_to_scan")
            else:
                logger.info("git_changes_unavailable_falling_back_to_scan")

        return scan_tree(self.root, self.rules), head_commit_sha(self.root)

    # =========================================================================
    # Per-file work
    # =========================================================================

    def _prepare(self, rel_path: str) -> _Prepared:
        full_path = self.root / rel_path
        if not full_path.is_file():
            raise FileNotFoundError(f"File not found: {rel_path}")
        size = full_path.stat().st_size
        if size > self.max_file_bytes:
            raise ValueError(
                f"File too large: {size} bytes exceeds {self.max_file_bytes // _BYTES_PER_MB} MB"
            )
        content = full_path.read_bytes()
        return _Prepared(
            path=rel_path,
            content_hash="sha256:" + hashlib.sha256(content).hexdigest(),
            facts=self.registry.extract(rel_path, content),
            classification=self.classifier.classify(rel_path),
        )

    def _prepare_safe(self, rel_path: str) -> _Prepared | Exception:
        try:
            return self._prepare(rel_path)
        except Exception as e:  # noqa: BLE001
            return e

    def _prepare_all(self, candidates: list[str]) -> Iterator[tuple[str, _Prepared | Exception]]:
        """Prepare candidates in order, in a thread pool when max_workers > 1."""
        if self.max_workers <= 1 or len(candidates) <= 1:
            for rel_path in progress(candidates, desc="Indexing"):
                yield rel_path, self._prepare_safe(rel_path)
            return

        with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
            futures = [pool.submit(self._prepare_safe, p) for p in candidates]
            for rel_path, future in progress(
                list(zip(candidates, futures, strict=True)), desc="Indexing"
            ):
                yield rel_path, future.result()

    def _commit(
        self,
        prepared: _Prepared,
        *,
        run_id: str,
        commit_sha: str | None,
        dry_run: bool,
    ) -> None:
        facts = prepared.facts
        cls = prepared.classification
        record = self._build_record(prepared, run_id=run_id, commit_sha=commit_sha)
        edges = [
            DependencyEdge(source_path=prepared.path, target_module=module, edge_kind=kind)
            for module, kind in facts.dependency_edges()
        ]
        instances = [
            InstanceSite(
                class_name=inst.class_name,
                file_path=prepared.path,
                line=inst.line,
                column=inst.column,
                code_snippet=inst.snippet,
                arguments_json=_dumps(inst.arguments),
            )
            for inst in facts.instances
        ]

        if dry_run:
            logger.debug("file_indexed", path=prepared.path, dry_run=True)
            return

        self.store.commit_file(record, edges, instances)

        payload = {
            "path": prepared.path,
            "file_hash": prepared.content_hash,
            "language": facts.language,
            "kind": self.registry.kind_of(prepared.path).value,
            "symbols": [s.to_dict() for s in facts.symbols],
            "imports": facts.imports,
            "exports": facts.exports,
            "reexports": facts.reexports,
            "instances": [asdict(i) for i in facts.instances],
            "stats": {
                "loc": facts.line_count,
                "symbol_count": len(facts.symbols),
                "import_count": len(facts.imports),
                "export_count": len(facts.exports),
                "reexport_count": len(facts.reexports),
                "instance_count": len(facts.instances),
            },
            "meta": facts.meta,
            "classification": {
                "is_self_made": record.is_self_made,
                "confidence": record.confidence,
                "reason": cls.reason,
                "category": cls.category,
            },
            "is_critical": record.is_critical,
            "parse_error": facts.parse_error,
        }
        try:
            self.audit.append(make_record(payload, run_id=run_id, commit=commit_sha))
        except OSError as e:
            logger.error("audit_append_failed", path=prepared.path, error=str(e))

        logger.debug(
            "file_indexed",
            path=prepared.path,
            language=facts.language,
            symbols=len(facts.symbols),
            instances=len(facts.instances),
        )

    def _build_record(
        self, prepared: _Prepared, *, run_id: str, commit_sha: str | None
    ) -> FileRecord:
        facts = prepared.facts
        cls = prepared.classification
        is_critical = cls.is_critical
        return FileRecord(
            path=prepared.path,
            content_hash=prepared.content_hash,
            language=facts.language,
            symbols_json=_dumps([s.to_dict() for s in facts.symbols]),
            imports_json=_dumps(facts.imports),
            exports_json=_dumps(facts.exports),
            reexports_json=_dumps(facts.reexports),
            meta_json=_dumps(facts.meta),
            line_count=facts.line_count,
            is_self_made=True if is_critical else cls.is_self_made,
            confidence=1.0 if is_critical else cls.confidence,
            classification_reason=cls.reason,
            category=cls.category,
            is_critical=is_critical,
            parse_error=facts.parse_error,
            last_indexed_at=self._clock(),
            run_id=run_id,
            commit_sha=commit_sha,
        )


def _dumps(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False, default=str)

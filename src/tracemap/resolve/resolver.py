"""Reverse resolution of runtime locations to indexed source files.

A location taken from a stack trace rarely matches a stored path verbatim:
bundlers and dev servers prepend build directories, hosts and query strings.
Resolution runs three stages, each only when the previous found nothing:

1. Full path: exact match, else a '/'-boundary suffix match either way.
2. Basename + parent directory name.
3. Basename only (shortest path, then lexicographic).

A storage error inside a stage is logged and counts as a miss for that stage.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence

import structlog
from sqlalchemy.exc import SQLAlchemyError

from tracemap.config.constants import (
    CONFIDENCE_BASE,
    CONFIDENCE_MAX,
    CONFIDENCE_SOURCE_BONUS,
    CONFIDENCE_SYMBOL_BONUS,
)
from tracemap.index.models import FileRecord, ResolutionStage, ResolvedMapping, Symbol
from tracemap.index.paths import basename, has_segment, normalize_path, parent_dir_name
from tracemap.index.store import IndexStore

logger = structlog.get_logger()


def enclosing_symbol(symbols: Sequence[Symbol], line: int) -> Symbol | None:
    """Pick the symbol a line belongs to.

    Among bounded symbols spanning ``line``, the innermost (greatest start,
    then smallest span) wins. Without one, the unbounded symbol starting
    closest above ``line`` is used.
    """
    bounded = [s for s in symbols if s.contains(line)]
    if bounded:
        return max(bounded, key=lambda s: (s.line, s.line - (s.end_line or s.line)))

    unbounded = [s for s in symbols if s.end_line is None and s.line <= line]
    return max(unbounded, key=lambda s: s.line, default=None)


class ReverseResolver:
    """Maps (raw path, line) to a ResolvedMapping, or None when nothing matches.

    Read-only; every lookup opens its own session, so one instance can be
    shared between threads.
    """

    def __init__(self, store: IndexStore, source_segments: Sequence[str] = ("src",)) -> None:
        self._store = store
        self._source_segments = tuple(source_segments)

    def resolve(self, raw_path: str, line: int) -> ResolvedMapping | None:
        normalized = normalize_path(raw_path)
        if not normalized:
            return None

        name = basename(normalized)
        parent = parent_dir_name(normalized)
        stages: list[tuple[ResolutionStage, Callable[[], FileRecord | None]]] = [
            (ResolutionStage.FULL_PATH, lambda: self._store.find_exact_or_suffix(normalized)),
            (
                ResolutionStage.BASENAME_WITH_DIR,
                lambda: self._store.find_by_basename_and_parent(name, parent),
            ),
            (ResolutionStage.BASENAME_ONLY, lambda: self._store.find_by_basename(name)),
        ]

        for stage, lookup in stages:
            try:
                record = lookup()
            except SQLAlchemyError as e:
                logger.warning(
                    "resolver_stage_failed", stage=stage.value, path=normalized, error=str(e)
                )
                continue
            if record is not None:
                mapping = self._build_mapping(record, line, stage)
                logger.debug(
                    "location_resolved",
                    raw_path=raw_path,
                    path=mapping.path,
                    stage=stage.value,
                    confidence=mapping.confidence,
                )
                return mapping

        logger.debug("location_unresolved", raw_path=raw_path, line=line)
        return None

    def _build_mapping(
        self, record: FileRecord, line: int, stage: ResolutionStage
    ) -> ResolvedMapping:
        symbol = enclosing_symbol(record.get_symbols(), line)
        try:
            deps = self._store.dependencies_of(record.path)
        except SQLAlchemyError as e:
            logger.warning("resolver_deps_failed", path=record.path, error=str(e))
            deps = []

        confidence = CONFIDENCE_BASE
        if symbol is not None:
            confidence += CONFIDENCE_SYMBOL_BONUS
        if any(has_segment(record.path, seg) for seg in self._source_segments):
            confidence += CONFIDENCE_SOURCE_BONUS

        return ResolvedMapping(
            path=record.path,
            symbol=symbol.name if symbol is not None else None,
            deps=deps,
            confidence=round(min(confidence, CONFIDENCE_MAX), 4),
            stage=stage,
        )

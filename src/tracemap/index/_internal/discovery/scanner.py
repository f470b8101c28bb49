"""Full-tree candidate discovery.

Walks the root with os.walk, pruning hardcoded and default-prunable
directories, and keeps files selected by the scan patterns and not matched by
any ignore pattern.
"""

from __future__ import annotations

import os
from collections.abc import Iterable
from pathlib import Path

from tracemap.config.rules import RuleSet
from tracemap.core.excludes import HARDCODED_DIRS, is_default_prunable, is_hardcoded_dir
from tracemap.core.globs import first_match, is_selected
from tracemap.index.paths import normalize_path


def _explicitly_scanned_dirs(patterns: Iterable[str]) -> frozenset[str]:
    """Directory names a scan pattern names literally (e.g. ``vendor/**``)."""
    names: set[str] = set()
    for pattern in patterns:
        for segment in pattern.lstrip("!").split("/")[:-1]:
            if segment and not any(ch in segment for ch in "*?[{"):
                names.add(segment)
    return frozenset(names)


def is_candidate(rel_path: str, rules: RuleSet) -> bool:
    """Apply scan/ignore rules and the hardcoded directory exclusions to one path."""
    if not rel_path:
        return False
    if any(part in HARDCODED_DIRS for part in rel_path.split("/")[:-1]):
        return False
    if not is_selected(rel_path, rules.scan):
        return False
    return first_match(rel_path, rules.ignore) is None


def filter_candidates(paths: Iterable[str], rules: RuleSet) -> list[str]:
    """Normalize, deduplicate and filter paths, preserving first-seen order."""
    seen: set[str] = set()
    result: list[str] = []
    for raw in paths:
        rel_path = normalize_path(raw)
        if rel_path in seen or not is_candidate(rel_path, rules):
            continue
        seen.add(rel_path)
        result.append(rel_path)
    return result


def scan_tree(root: Path, rules: RuleSet) -> list[str]:
    """Return sorted normalized relative paths of every candidate file under root."""
    opted_in = _explicitly_scanned_dirs(rules.scan)
    results: list[str] = []
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames[:] = sorted(
            d
            for d in dirnames
            if not is_hardcoded_dir(d) and (not is_default_prunable(d) or d in opted_in)
        )
        rel_dir = Path(dirpath).relative_to(root).as_posix()
        if rel_dir == ".":
            rel_dir = ""
        for filename in filenames:
            rel_path = f"{rel_dir}/{filename}" if rel_dir else filename
            if is_candidate(rel_path, rules):
                results.append(rel_path)
    return sorted(results)

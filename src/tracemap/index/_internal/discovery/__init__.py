"""Candidate file discovery: full tree scan and git-based change detection."""

from tracemap.index._internal.discovery.changes import (
    GitChanges,
    changed_since_parent,
    head_commit_sha,
)
from tracemap.index._internal.discovery.scanner import filter_candidates, is_candidate, scan_tree

__all__ = [
    "GitChanges",
    "changed_since_parent",
    "filter_candidates",
    "head_commit_sha",
    "is_candidate",
    "scan_tree",
]

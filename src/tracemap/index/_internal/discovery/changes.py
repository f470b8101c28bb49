"""Incremental candidate discovery from git.

Changed paths are the files touched between ``HEAD~1`` and ``HEAD`` plus the
working tree's uncommitted changes (staged, unstaged and untracked). Deleted
files are skipped. ``None`` means "no usable git answer" and callers fall
back to a full scan.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

import pygit2
import structlog
from pygit2.enums import DeltaStatus, FileStatus

logger = structlog.get_logger()

_DELETED_STATUS = FileStatus.WT_DELETED | FileStatus.INDEX_DELETED


@dataclass
class GitChanges:
    """Paths (relative to the indexed root) reported by git."""

    commit_sha: str | None
    paths: list[str] = field(default_factory=list)


def _open_repo(root: Path) -> pygit2.Repository | None:
    try:
        repo_path = pygit2.discover_repository(str(root))
    except pygit2.GitError:
        return None
    if repo_path is None:
        return None
    try:
        return pygit2.Repository(repo_path)
    except pygit2.GitError:
        return None


def _relative_to_root(repo: pygit2.Repository, root: Path, repo_rel: str) -> str | None:
    """Map a repo-relative path to a root-relative one (None if outside root)."""
    workdir = Path(repo.workdir).resolve() if repo.workdir else None
    if workdir is None:
        return None
    absolute = workdir / repo_rel
    try:
        return absolute.relative_to(root.resolve()).as_posix()
    except ValueError:
        return None


def head_commit_sha(root: Path) -> str | None:
    """Short sha of HEAD, or None outside a repository / on an unborn branch."""
    repo = _open_repo(root)
    if repo is None or repo.head_is_unborn:
        return None
    return str(repo.head.peel(pygit2.Commit).id)[:7]


def changed_since_parent(root: Path) -> GitChanges | None:
    """Files changed in the last commit plus uncommitted changes.

    Returns None when root is not in a git repository, HEAD is unborn, or HEAD
    has no parent commit.
    """
    repo = _open_repo(root)
    if repo is None:
        logger.debug("git_changes_unavailable", reason="not_a_repository", root=str(root))
        return None
    if repo.head_is_unborn:
        logger.debug("git_changes_unavailable", reason="unborn_head", root=str(root))
        return None

    head = repo.head.peel(pygit2.Commit)
    if not head.parents:
        logger.debug("git_changes_unavailable", reason="no_parent_commit", root=str(root))
        return None

    status = sorted(repo.status().items())
    deleted = {path for path, flags in status if flags & _DELETED_STATUS}

    repo_paths: list[str] = []
    diff = repo.diff(head.parents[0], head)
    for delta in diff.deltas:
        if delta.status == DeltaStatus.DELETED or delta.new_file.path in deleted:
            continue
        repo_paths.append(delta.new_file.path)

    for path, flags in status:
        if path in deleted or flags & FileStatus.IGNORED:
            continue
        repo_paths.append(path)

    changes = GitChanges(commit_sha=str(head.id)[:7])
    seen: set[str] = set()
    for repo_rel in repo_paths:
        rel_path = _relative_to_root(repo, root, repo_rel)
        if rel_path is None or rel_path in seen:
            continue
        seen.add(rel_path)
        changes.paths.append(rel_path)
    return changes

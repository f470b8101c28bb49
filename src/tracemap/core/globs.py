"""The single glob dialect shared by scan, ignore, include, exclude and critical lists.

fnmatch semantics (case-sensitive) with two extensions:
- ``{a,b}`` brace alternatives, expanded before matching
- ``**/`` may match zero directories (``a/**/b.js`` matches ``a/b.js``)

Because fnmatch's ``*`` also crosses ``/``, ``vendor/**`` matches every path
under ``vendor/`` and ``**/node_modules/**`` matches at any depth.
"""

from __future__ import annotations

import fnmatch
import re
from collections.abc import Iterable
from functools import lru_cache

_BRACE = re.compile(r"\{([^{}]*)\}")


def expand_braces(pattern: str) -> list[str]:
    """Expand ``{a,b}`` alternatives, innermost-first, into plain patterns."""
    match = _BRACE.search(pattern)
    if match is None:
        return [pattern]
    head, tail = pattern[: match.start()], pattern[match.end() :]
    expanded: list[str] = []
    for option in match.group(1).split(","):
        expanded.extend(expand_braces(f"{head}{option}{tail}"))
    return expanded


@lru_cache(maxsize=2048)
def _compile(pattern: str) -> tuple[re.Pattern[str], ...]:
    variants: set[str] = set()
    for expanded in expand_braces(pattern):
        variants.add(expanded)
        # Zero-directory forms of "**/"
        collapsed = expanded.replace("/**/", "/")
        variants.add(collapsed)
        if collapsed.startswith("**/"):
            variants.add(collapsed[3:])
    return tuple(re.compile(fnmatch.translate(v)) for v in sorted(variants))


def matches_glob(rel_path: str, pattern: str) -> bool:
    """Check if a normalized relative path matches a glob pattern."""
    return any(regex.match(rel_path) for regex in _compile(pattern))


def first_match(rel_path: str, patterns: Iterable[str]) -> str | None:
    """Return the first pattern in ``patterns`` matching ``rel_path``."""
    for pattern in patterns:
        if matches_glob(rel_path, pattern):
            return pattern
    return None


def is_selected(rel_path: str, patterns: Iterable[str]) -> bool:
    """Evaluate an ordered pattern list where ``!pattern`` re-excludes.

    Later patterns override earlier ones, like .gitignore negation.
    """
    selected = False
    for pattern in patterns:
        if pattern.startswith("!"):
            if selected and matches_glob(rel_path, pattern[1:]):
                selected = False
        elif not selected and matches_glob(rel_path, pattern):
            selected = True
    return selected

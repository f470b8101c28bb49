"""Directories the tree scan skips.

HARDCODED_DIRS are never entered. DEFAULT_PRUNABLE_DIRS are skipped unless a
scan pattern names the directory explicitly (``vendor/**``, ``dist/app.js``).
"""

from __future__ import annotations

HARDCODED_DIRS: frozenset[str] = frozenset(
    {".git", ".hg", ".svn", ".tracemap"}
)

DEFAULT_PRUNABLE_DIRS: frozenset[str] = frozenset(
    {
        # package managers
        "node_modules",
        "bower_components",
        "jspm_packages",
        ".npm",
        ".yarn",
        ".pnpm-store",
        # framework and bundler output
        ".next",
        ".nuxt",
        ".svelte-kit",
        ".angular",
        ".expo",
        ".turbo",
        ".parcel-cache",
        ".vite",
        "storybook-static",
        "dist",
        "build",
        "out",
        # test output
        "coverage",
        ".nyc_output",
        # editors
        ".idea",
        ".vscode",
        ".cache",
    }
)


def is_hardcoded_dir(dirname: str) -> bool:
    return dirname in HARDCODED_DIRS


def is_default_prunable(dirname: str) -> bool:
    return dirname in DEFAULT_PRUNABLE_DIRS

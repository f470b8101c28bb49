"""Shared fixtures for sync tests."""

from __future__ import annotations

import itertools
from collections.abc import Callable
from pathlib import Path

import pytest

from tracemap.index.models import FileRecord, Symbol
from tracemap.index.store import IndexStore
from tracemap.sync.reports import ReportStore


@pytest.fixture
def reports(temp_dir: Path) -> ReportStore:
    """An empty report store."""
    return ReportStore.open(temp_dir / "errors.db")


@pytest.fixture
def indexed_store(temp_store: IndexStore, make_record: Callable[..., FileRecord]) -> IndexStore:
    """An index whose newest file was indexed at t=1000."""
    temp_store.commit_file(
        make_record(
            "src/widgets/Button.js",
            symbols=[Symbol("render", "function", 1, 30)],
            last_indexed_at=1000.0,
        ),
        [],
        [],
    )
    temp_store.commit_file(make_record("lib/util.js", last_indexed_at=900.0), [], [])
    return temp_store


@pytest.fixture
def clock() -> Callable[[], float]:
    """Monotonic fake clock starting at t=5000."""
    counter = itertools.count(5000.0, 1.0)
    return lambda: next(counter)

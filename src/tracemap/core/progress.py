"""Terminal feedback for CLI commands.

Everything here writes to stderr so stdout stays clean for ``--json`` and
query output. A progress bar is drawn only on a TTY and only for long
iterations; while it is live, console log handlers are muted (file handlers
still receive every event).

Usage::

    from tracemap.core.progress import progress, status

    for path in progress(paths, desc="Indexing"):
        index(path)

    status("Index ready", style="success")
"""

from __future__ import annotations

import sys
import threading
from collections.abc import Iterable, Iterator

import structlog
from rich.console import Console
from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    TextColumn,
    TimeElapsedColumn,
)
from rich.table import Table

logger = structlog.get_logger()

BAR_MIN_ITEMS = 100

_console = Console(stderr=True)
_live = threading.Event()

_MARKERS = {
    "success": "[green]✓[/green]",
    "error": "[red]✗[/red]",
    "warning": "[yellow]![/yellow]",
    "info": " ",
}


def get_console() -> Console:
    return _console


def live_display_active() -> bool:
    """True while a progress bar owns the terminal."""
    return _live.is_set()


def status(message: str, *, style: str = "info", indent: int = 0) -> None:
    """One styled line on stderr."""
    marker = _MARKERS.get(style, "")
    prefix = " " * indent + (f"{marker} " if marker else "")
    _console.print(prefix + message, highlight=False)


def pluralize(count: int, singular: str, plural: str | None = None) -> str:
    """``1 file`` / ``3 files``."""
    word = singular if count == 1 else (plural or singular + "s")
    return f"{count} {word}"


def progress[T](
    iterable: Iterable[T],
    *,
    desc: str = "Processing",
    total: int | None = None,
) -> Iterator[T]:
    """Yield from ``iterable``, drawing a bar on a TTY for more than BAR_MIN_ITEMS items."""
    if total is None and hasattr(iterable, "__len__"):
        total = len(iterable)  # type: ignore[arg-type]

    if total is None or total <= BAR_MIN_ITEMS or not sys.stderr.isatty():
        logger.debug("progress_start", desc=desc, total=total)
        yield from iterable
        return

    bar = Progress(
        TextColumn("  {task.description}"),
        BarColumn(bar_width=30),
        MofNCompleteColumn(),
        TimeElapsedColumn(),
        console=_console,
        transient=True,
    )
    _live.set()
    try:
        with bar:
            task_id = bar.add_task(desc, total=total)
            for item in iterable:
                yield item
                bar.advance(task_id)
    finally:
        _live.clear()


def make_counts_table(title: str, counts: dict[str, int], *, max_bar_width: int = 20) -> Table:
    """Label / count table with a proportional bar, largest first."""
    table = Table(title=title, show_header=False, box=None, pad_edge=False)
    table.add_column("label", style="cyan")
    table.add_column("count", justify="right")
    table.add_column("bar")
    peak = max(counts.values(), default=0)
    for label, count in sorted(counts.items(), key=lambda kv: (-kv[1], kv[0])):
        width = round(max_bar_width * count / peak) if peak else 0
        table.add_row(label, str(count), "[dim]" + "█" * width + "[/dim]")
    return table

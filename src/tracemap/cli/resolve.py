"""tmap resolve / tmap trace commands - map runtime locations to source."""

from pathlib import Path
from typing import IO

import click

from tracemap.cli.utils import (
    cli_errors,
    echo_json,
    json_option,
    load_root,
    require_index,
    root_option,
)
from tracemap.index.models import ResolutionStage, ResolvedMapping
from tracemap.index.store import IndexStore
from tracemap.resolve.frames import parse_stack
from tracemap.resolve.resolver import ReverseResolver
from tracemap.sync.coordinator import SyncCoordinator, to_timestamp
from tracemap.sync.reports import ErrorReport


def _format_mapping(mapping: ResolvedMapping | None) -> str:
    if mapping is None:
        return "unresolved"
    symbol = f" in {mapping.symbol}" if mapping.symbol else ""
    return f"{mapping.path}{symbol} (confidence {mapping.confidence:.2f}, {mapping.stage.value})"


def _mapping_from_report(report: ErrorReport) -> ResolvedMapping | None:
    if report.resolved_path is None or report.resolution_stage is None:
        return None
    return ResolvedMapping(
        path=report.resolved_path,
        symbol=report.resolved_symbol,
        deps=report.get_deps(),
        confidence=report.confidence or 0.0,
        stage=ResolutionStage(report.resolution_stage),
    )


@click.command()
@click.argument("file")
@click.argument("line", type=click.IntRange(min=1))
@click.option("--at", "at", default=None, help="Event time (Unix seconds or ISO-8601)")
@click.option("--record", is_flag=True, help="Store the location as an error report")
@root_option
@json_option
def resolve_command(
    file: str, line: int, at: str | None, record: bool, root: Path, as_json: bool
) -> None:
    """Resolve FILE:LINE from a stack trace to an indexed source file.

    With --at, an event older than the last indexing pass is reported as
    stale instead of being resolved.
    """
    try:
        event_ts = to_timestamp(at)
    except ValueError as e:
        raise click.BadParameter(str(e), param_hint="--at") from e

    root, config, paths = load_root(root)
    require_index(paths)

    is_stale: bool | None = None
    with cli_errors():
        if event_ts is None and not record:
            store = IndexStore.open(paths.db_path, config.database)
            resolver = ReverseResolver(store, config.resolver.source_segments)
            mapping = resolver.resolve(file, line)
        else:
            coordinator = SyncCoordinator.for_root(root, config)
            coordinator.refresh_freshness()
            if record:
                report = coordinator.record(file, line, event_timestamp=event_ts)
                mapping, is_stale = _mapping_from_report(report), report.is_stale
            else:
                assessment = coordinator.assess(file, line, event_ts)
                mapping, is_stale = assessment.mapping, assessment.is_stale

    if as_json:
        echo_json(
            {
                "file": file,
                "line": line,
                "mapping": mapping.to_dict() if mapping is not None else None,
                "is_stale": is_stale,
            }
        )
        return

    if is_stale:
        click.echo(f"{file}:{line} -> stale (event predates the index; deferred)")
        return
    click.echo(f"{file}:{line} -> {_format_mapping(mapping)}")
    if mapping is not None and mapping.deps:
        click.echo(f"  deps: {', '.join(mapping.deps)}")


@click.command()
@click.option(
    "--stack-file",
    "stack_file",
    type=click.File("r"),
    default="-",
    help="File holding the stack trace (default: stdin)",
)
@root_option
@json_option
def trace_command(stack_file: IO[str], root: Path, as_json: bool) -> None:
    """Parse a JavaScript stack trace and resolve every frame."""
    frames = parse_stack(stack_file.read())
    if not frames:
        raise click.ClickException("No stack frames found in input")

    _, config, paths = load_root(root)
    require_index(paths)
    with cli_errors():
        store = IndexStore.open(paths.db_path, config.database)
    resolver = ReverseResolver(store, config.resolver.source_segments)

    results = [(frame, resolver.resolve(frame.file, frame.line)) for frame in frames]

    if as_json:
        echo_json(
            [
                {
                    "func": frame.func,
                    "file": frame.file,
                    "line": frame.line,
                    "col": frame.col,
                    "mapping": mapping.to_dict() if mapping is not None else None,
                }
                for frame, mapping in results
            ]
        )
        return

    for frame, mapping in results:
        where = f"{frame.func or '<anonymous>'} {frame.file}:{frame.line}"
        click.echo(f"{where} -> {_format_mapping(mapping)}")

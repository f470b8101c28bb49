"""tmap query commands - read-only lookups against the index."""

from pathlib import Path

import click
from rich.table import Table

from tracemap.cli.utils import (
    cli_errors,
    echo_json,
    json_option,
    load_root,
    require_index,
    root_option,
)
from tracemap.core.progress import get_console, make_counts_table
from tracemap.index.queries import IndexQueries
from tracemap.index.store import IndexStore


def _open_queries(root: Path) -> IndexQueries:
    _, config, paths = load_root(root)
    require_index(paths)
    with cli_errors():
        return IndexQueries(IndexStore.open(paths.db_path, config.database))


@click.group()
def query_group() -> None:
    """Query the index."""


@query_group.command("path")
@click.argument("pattern")
@click.option("--limit", default=50, show_default=True, help="Maximum results")
@root_option
@json_option
def query_path(pattern: str, limit: int, root: Path, as_json: bool) -> None:
    """Files whose path contains PATTERN."""
    records = _open_queries(root).lookup_path(pattern, limit=limit)
    if as_json:
        echo_json(
            [
                {
                    "path": r.path,
                    "language": r.language,
                    "category": r.category,
                    "is_self_made": r.is_self_made,
                    "line_count": r.line_count,
                }
                for r in records
            ]
        )
        return
    for r in records:
        click.echo(f"{r.path}\t{r.language}\t{r.category}")


@query_group.command("class")
@click.argument("name")
@root_option
@json_option
def query_class(name: str, root: Path, as_json: bool) -> None:
    """Every place class NAME is instantiated."""
    sites = _open_queries(root).lookup_class(name)
    if as_json:
        echo_json(
            [
                {
                    "file": s.file_path,
                    "line": s.line,
                    "column": s.column,
                    "snippet": s.code_snippet,
                    "arguments": s.get_arguments(),
                }
                for s in sites
            ]
        )
        return
    for s in sites:
        click.echo(f"{s.file_path}:{s.line}:{s.column}\t{s.code_snippet or ''}")


@query_group.command("deps")
@click.argument("file")
@root_option
@json_option
def query_deps(file: str, root: Path, as_json: bool) -> None:
    """Modules FILE depends on."""
    deps = _open_queries(root).dependencies(file)
    if as_json:
        echo_json(deps)
        return
    for dep in deps:
        click.echo(dep)


@query_group.command("rdeps")
@click.argument("file")
@root_option
@json_option
def query_rdeps(file: str, root: Path, as_json: bool) -> None:
    """Files importing a module named like FILE."""
    dependents = _open_queries(root).dependents(file)
    if as_json:
        echo_json(dependents)
        return
    for path in dependents:
        click.echo(path)


@query_group.command("list")
@root_option
@json_option
def query_list(root: Path, as_json: bool) -> None:
    """Every indexed path."""
    paths = _open_queries(root).list_files()
    if as_json:
        echo_json(paths)
        return
    for path in paths:
        click.echo(path)


@query_group.command("stats")
@root_option
@json_option
def query_stats(root: Path, as_json: bool) -> None:
    """Summary counts of the index."""
    stats = _open_queries(root).stats()
    if as_json:
        echo_json(stats.to_dict())
        return

    console = get_console()
    click.echo(
        f"{stats.total_files} files, {stats.total_lines} lines "
        f"({stats.self_made} self-made, {stats.external} external, {stats.critical} critical)"
    )
    console.print(make_counts_table("Languages", stats.by_language))
    console.print(make_counts_table("Categories", stats.by_category))

    largest = Table(title="Largest files", box=None, pad_edge=False)
    largest.add_column("path", style="cyan")
    largest.add_column("lines", justify="right")
    for path, lines in stats.largest:
        largest.add_row(path, str(lines))
    console.print(largest)

"""tmap index command - run the indexing pipeline."""

from pathlib import Path

import click

from tracemap.cli.utils import cli_errors, echo_json, load_root
from tracemap.core.progress import pluralize, status
from tracemap.index.ops import IndexingPipeline

_MAX_LISTED_FAILURES = 20


@click.command()
@click.argument(
    "path", default=".", type=click.Path(exists=True, file_okay=False, path_type=Path)
)
@click.option("--full-scan", is_flag=True, help="Truncate the index and rescan the whole tree")
@click.option("--dry-run", is_flag=True, help="Extract and classify without writing anything")
@click.option(
    "--file",
    "files",
    multiple=True,
    help="Index only this path (relative to PATH); repeatable",
)
@click.option("--json", "as_json", is_flag=True, help="Output run stats as JSON")
def index_command(
    path: Path, full_scan: bool, dry_run: bool, files: tuple[str, ...], as_json: bool
) -> None:
    """Index PATH (default: current directory).

    Without --full-scan only files changed in the last commit or the working
    tree are indexed; outside a git repository the whole tree is scanned.
    """
    if full_scan and files:
        raise click.UsageError("--full-scan and --file are mutually exclusive")

    root, config, _ = load_root(path)
    with cli_errors():
        pipeline = IndexingPipeline.for_root(root, config)
        stats = pipeline.run(full_scan=full_scan, paths=list(files) or None, dry_run=dry_run)

    if as_json:
        echo_json(stats.to_dict())
        return

    label = "Would index" if dry_run else "Indexed"
    status(
        f"{label} {pluralize(stats.succeeded, 'file')} in {stats.elapsed_seconds:.2f}s "
        f"({stats.mode})",
        style="success" if not stats.failed else "warning",
    )
    if stats.failed:
        status(f"{pluralize(stats.failed, 'file')} failed:", style="warning")
        for failed_path, reason in stats.failures[:_MAX_LISTED_FAILURES]:
            status(f"{failed_path}: {reason}", style="info", indent=2)
        if stats.failed > _MAX_LISTED_FAILURES:
            status(f"... and {stats.failed - _MAX_LISTED_FAILURES} more", style="info", indent=2)

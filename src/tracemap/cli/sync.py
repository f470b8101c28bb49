"""tmap sync command - freshness refresh and stale re-resolution."""

import asyncio
from pathlib import Path

import click

from tracemap.cli.utils import cli_errors, echo_json, json_option, load_root, require_index
from tracemap.core.progress import status
from tracemap.sync.coordinator import SyncCoordinator


async def _run_until_interrupted(coordinator: SyncCoordinator) -> None:
    await coordinator.start()
    try:
        await asyncio.Event().wait()
    finally:
        await coordinator.stop()


@click.command()
@click.argument(
    "path", default=".", type=click.Path(exists=True, file_okay=False, path_type=Path)
)
@click.option("--once", is_flag=True, help="Run the jobs once and exit")
@click.option("--reresolve", is_flag=True, help="With --once, also re-resolve stale reports")
@click.option("--batch-size", type=click.IntRange(min=1), default=None, help="Reports per batch")
@json_option
def sync_command(
    path: Path, once: bool, reresolve: bool, batch_size: int | None, as_json: bool
) -> None:
    """Keep error reports in sync with the index of PATH.

    Without --once, runs the freshness and re-resolution loops until
    interrupted.
    """
    root, config, paths = load_root(path)
    require_index(paths)
    if batch_size is not None:
        config.sync.batch_size = batch_size

    with cli_errors():
        coordinator = SyncCoordinator.for_root(root, config)

    if not once:
        status("Sync running; press Ctrl+C to stop", style="info")
        try:
            asyncio.run(_run_until_interrupted(coordinator))
        except KeyboardInterrupt:
            status("Sync stopped", style="info")
        return

    last_index_time = coordinator.refresh_freshness()
    batch = coordinator.reresolve_stale() if reresolve else None

    if as_json:
        echo_json(
            {
                "last_index_time": last_index_time,
                "stale_pending": coordinator.reports.count_stale(),
                "batch": batch.to_dict() if batch is not None else None,
            }
        )
        return

    click.echo(f"last_index_time: {last_index_time}")
    if batch is not None:
        click.echo(
            f"re-resolved {batch.resolved} of {batch.selected} "
            f"({batch.unresolved} unresolved, {batch.failed} failed)"
        )

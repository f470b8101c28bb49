"""CLI utilities."""

import json
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

import click

from tracemap.config import IndexPaths, TracemapConfig, get_index_paths, load_config
from tracemap.core.errors import TracemapError

root_option = click.option(
    "--root",
    "root",
    default=".",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    help="Indexed project root (default: current directory)",
)
json_option = click.option("--json", "as_json", is_flag=True, help="Output as JSON")


@contextmanager
def cli_errors() -> Iterator[None]:
    """Surface tracemap errors as ClickException (exit code 1, no traceback)."""
    try:
        yield
    except TracemapError as e:
        raise click.ClickException(str(e)) from e


def load_root(root: Path) -> tuple[Path, TracemapConfig, IndexPaths]:
    """Resolve the root, load its config and storage locations."""
    root = root.resolve()
    with cli_errors():
        config = load_config(root)
    return root, config, get_index_paths(root, config)


def require_index(paths: IndexPaths) -> None:
    """Fail unless an index database already exists."""
    if not paths.db_path.exists():
        raise click.ClickException(
            f"No index found at {paths.db_path}. Run 'tmap index' first."
        )


def echo_json(data: Any) -> None:
    click.echo(json.dumps(data, indent=2, default=str))

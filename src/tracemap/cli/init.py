"""tmap init command - create a project configuration."""

from pathlib import Path

import click

from tracemap.config import write_config
from tracemap.config.constants import CONFIG_FILE_NAME, DATA_DIR_NAME
from tracemap.core.progress import status


@click.command()
@click.argument(
    "path", default=".", type=click.Path(exists=True, file_okay=False, path_type=Path)
)
@click.option("--force", is_flag=True, help="Overwrite an existing config.yaml")
def init_command(path: Path, force: bool) -> None:
    """Create .tracemap/config.yaml with the default rules.

    PATH is the project root (default: current directory).
    """
    root = path.resolve()
    data_dir = root / DATA_DIR_NAME
    config_path = data_dir / CONFIG_FILE_NAME

    if config_path.exists() and not force:
        status(f"Already initialized: {config_path}", style="info")
        status("Use --force to overwrite", style="info")
        return

    data_dir.mkdir(exist_ok=True)
    write_config(config_path)

    gitignore_path = data_dir / ".gitignore"
    if not gitignore_path.exists() or force:
        gitignore_path.write_text(
            "# Ignore index artifacts, keep the config\n*\n!.gitignore\n!config.yaml\n"
        )

    status(f"Wrote {config_path}", style="success")
    status("Run 'tmap index --full-scan' to build the index", style="info")

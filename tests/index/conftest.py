"""Shared fixtures for index tests."""

from __future__ import annotations

from collections.abc import Callable, Generator
from pathlib import Path

import pygit2
import pytest

from tracemap.config.rules import RuleSet


@pytest.fixture
def rules() -> RuleSet:
    return RuleSet.default()


@pytest.fixture
def sample_tree(temp_dir: Path) -> Path:
    """A small JS project on disk (no git)."""
    root = temp_dir / "project"
    files = {
        "src/app.js": (
            "import { render } from './widgets/Button';\n"
            "const utils = require('./utils');\n"
            "\n"
            "export function main() {\n"
            "  return new Widget({ id: 1 });\n"
            "}\n"
        ),
        "src/utils.js": "module.exports = { add: (a, b) => a + b };\n",
        "src/widgets/Button.ts": (
            "export class Button {\n"
            "  render(): string {\n"
            "    return 'ok';\n"
            "  }\n"
            "}\n"
        ),
        "package.json": '{"name": "demo", "version": "1.0.0"}\n',
        "node_modules/dep/index.js": "module.exports = 1;\n",
        "README.md": "# demo\n",
    }
    for rel, content in files.items():
        path = root / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content)
    return root


def _commit_all(repo_path: Path, message: str) -> None:
    """Stage everything in the working tree and commit it."""
    repo = pygit2.Repository(str(repo_path))
    repo.index.add_all()
    repo.index.write()
    tree = repo.index.write_tree()
    sig = pygit2.Signature("Test User", "test@example.com")
    parents = [] if repo.head_is_unborn else [repo.head.target]
    repo.create_commit("HEAD", sig, sig, message, tree, parents)


@pytest.fixture
def git_commit() -> Callable[[Path, str], None]:
    """Stage everything under a repo and commit it."""
    return _commit_all


@pytest.fixture
def temp_repo(temp_dir: Path) -> Generator[Path, None, None]:
    """Create a temporary git repository with an initial commit."""
    repo_path = temp_dir / "repo"
    repo_path.mkdir()
    pygit2.init_repository(str(repo_path))

    repo = pygit2.Repository(str(repo_path))
    repo.config["user.name"] = "Test User"
    repo.config["user.email"] = "test@example.com"

    (repo_path / "src").mkdir()
    (repo_path / "src" / "first.js").write_text("export const first = 1;\n")
    _commit_all(repo_path, "Initial commit")

    yield repo_path

"""Shared fixtures for CLI tests."""

import logging
import os
from collections.abc import Generator
from pathlib import Path

import pytest
import structlog


@pytest.fixture(autouse=True)
def reset_state(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Generator[None, None, None]:
    """Reset logging, env and the global config location between tests."""
    structlog.reset_defaults()
    logging.getLogger().handlers.clear()
    monkeypatch.setattr(
        "tracemap.config.loader.GLOBAL_CONFIG_PATH", tmp_path / "global" / "config.yaml"
    )
    for key in list(os.environ):
        if key.startswith("TRACEMAP__"):
            monkeypatch.delenv(key)
    yield
    structlog.reset_defaults()
    logging.getLogger().handlers.clear()


@pytest.fixture
def project(tmp_path: Path) -> Path:
    """A small JS project on disk."""
    root = tmp_path / "project"
    files = {
        "src/app.js": (
            "import { Button } from './widgets/Button';\n"
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
    }
    for rel, content in files.items():
        path = root / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content)
    return root

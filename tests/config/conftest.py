"""Shared fixtures for config tests."""

import os
from pathlib import Path

import pytest


@pytest.fixture(autouse=True)
def isolated_global_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Point the global config at an empty temp location and clear TRACEMAP__ env vars."""
    global_path = tmp_path / "global" / "config.yaml"
    monkeypatch.setattr("tracemap.config.loader.GLOBAL_CONFIG_PATH", global_path)
    for key in list(os.environ):
        if key.startswith("TRACEMAP__"):
            monkeypatch.delenv(key)
    return global_path

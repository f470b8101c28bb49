"""Root conftest.py for test configuration.

Ensures local src/ directory takes priority over any installed packages.
"""

import sys
from pathlib import Path

# Insert local src directory at the beginning of sys.path
# This ensures that the local tracemap package is used, not any installed one
_src_dir = Path(__file__).parent.parent / "src"
if str(_src_dir) not in sys.path:
    sys.path.insert(0, str(_src_dir))

# Force reimport of tracemap modules if already imported
for module_name in list(sys.modules.keys()):
    if module_name.startswith("tracemap"):
        del sys.modules[module_name]

import json  # noqa: E402
import tempfile  # noqa: E402
from collections.abc import Callable, Generator  # noqa: E402

import pytest  # noqa: E402

from tracemap.index.models import FileRecord, Symbol  # noqa: E402
from tracemap.index.store import IndexStore  # noqa: E402


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory(ignore_cleanup_errors=True) as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def temp_store(temp_dir: Path) -> IndexStore:
    """Create an empty index store with schema."""
    return IndexStore.open(temp_dir / "index.db")


@pytest.fixture
def make_record() -> Callable[..., FileRecord]:
    """Build a FileRecord with sensible defaults."""

    def _make(path: str, *, symbols: list[Symbol] | None = None, **overrides: object) -> FileRecord:
        fields: dict[str, object] = {
            "path": path,
            "content_hash": "sha256:" + "0" * 64,
            "language": "javascript",
            "line_count": 10,
            "last_indexed_at": 1000.0,
        }
        if symbols is not None:
            fields["symbols_json"] = json.dumps([s.to_dict() for s in symbols])
        fields.update(overrides)
        return FileRecord(**fields)  # type: ignore[arg-type]

    return _make

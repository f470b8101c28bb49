"""Append-only JSONL audit log of indexing results, with size-based rotation.

One line per indexed file. When the live log grows past the threshold it is
renamed aside and gzip-compressed into a timestamped archive; the next append
starts a new file. The live log is never edited in place.
"""

from __future__ import annotations

import gzip
import json
import shutil
import threading
import time
import uuid
from pathlib import Path
from typing import Any

import structlog

from tracemap.config.constants import (
    AUDIT_ARCHIVE_PREFIX,
    AUDIT_LOG_NAME,
    AUDIT_PROVIDER,
    AUDIT_SCHEMA_VERSION,
)

logger = structlog.get_logger()

_BYTES_PER_MB = 1024 * 1024


def make_record(
    payload: dict[str, Any],
    *,
    run_id: str | None,
    commit: str | None,
    record_type: str = "file_info",
) -> dict[str, Any]:
    """Wrap a payload in the audit envelope."""
    return {
        "record_id": uuid.uuid4().hex,
        "schema_version": AUDIT_SCHEMA_VERSION,
        "provider": {"name": AUDIT_PROVIDER, "version": AUDIT_SCHEMA_VERSION},
        "run_id": run_id,
        "commit": commit,
        "generated_at": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime()),
        "type": record_type,
        "payload": payload,
    }


class AuditLog:
    """JSONL audit log under ``directory``.

    Appends are serialized with a lock so concurrent writers never interleave
    partial lines.
    """

    def __init__(self, directory: Path, max_mb: float = 50.0, archive_dir: Path | None = None):
        self.directory = directory
        self.path = directory / AUDIT_LOG_NAME
        self.archive_dir = archive_dir or directory
        self.max_bytes = int(max_mb * _BYTES_PER_MB)
        self._lock = threading.Lock()

    def size(self) -> int:
        try:
            return self.path.stat().st_size
        except FileNotFoundError:
            return 0

    def archives(self) -> list[Path]:
        """Existing archives, oldest first."""
        return sorted(self.archive_dir.glob(f"{AUDIT_ARCHIVE_PREFIX}*.jsonl.gz"))

    def _archive_path(self) -> Path:
        stamp = time.strftime("%Y%m%dT%H%M%S")
        candidate = self.archive_dir / f"{AUDIT_ARCHIVE_PREFIX}{stamp}.jsonl.gz"
        counter = 1
        while candidate.exists():
            candidate = self.archive_dir / f"{AUDIT_ARCHIVE_PREFIX}{stamp}_{counter}.jsonl.gz"
            counter += 1
        return candidate

    def rotate_if_needed(self) -> Path | None:
        """Archive the live log if it exceeds the threshold.

        The live log is renamed aside before it is compressed, so it is never
        rewritten; the next append starts a new file. Returns the archive
        path, or None when no rotation happened. Failures are logged.
        """
        with self._lock:
            size = self.size()
            if size <= self.max_bytes:
                return None

            archive = self._archive_path()
            rotating = self.directory / f".{archive.name.removesuffix('.gz')}"
            try:
                self.archive_dir.mkdir(parents=True, exist_ok=True)
                self.path.rename(rotating)
            except OSError as e:
                logger.error("audit_rotation_failed", path=str(self.path), error=str(e))
                return None

            try:
                with rotating.open("rb") as src, gzip.open(archive, "wb") as dst:
                    shutil.copyfileobj(src, dst)
            except OSError as e:
                archive.unlink(missing_ok=True)
                logger.error(
                    "audit_rotation_failed", path=str(rotating), error=str(e), kept=rotating.name
                )
                return None
            try:
                rotating.unlink()
            except OSError as e:
                logger.warning("audit_rotation_cleanup_failed", path=str(rotating), error=str(e))

            logger.info("audit_rotated", archive=archive.name, size_bytes=size)
            return archive

    def append(self, record: dict[str, Any]) -> None:
        """Write one record as a single JSON line."""
        line = json.dumps(record, ensure_ascii=False, default=str) + "\n"
        with self._lock:
            self.directory.mkdir(parents=True, exist_ok=True)
            with self.path.open("a", encoding="utf-8") as f:
                f.write(line)

    def read_records(self) -> list[dict[str, Any]]:
        """Records currently in the live log."""
        if not self.path.exists():
            return []
        with self.path.open(encoding="utf-8") as f:
            return [json.loads(line) for line in f if line.strip()]

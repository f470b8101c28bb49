"""Extractor for files with no structural parser: bare metadata only."""

from __future__ import annotations

import posixpath

from tracemap.index._internal.extraction import BaseExtractor
from tracemap.index.models import FileFacts, FileKind


class OpaqueExtractor(BaseExtractor):
    kind = FileKind.OPAQUE

    def extract(self, path: str, content: bytes) -> FileFacts:
        ext = posixpath.splitext(path)[1].lstrip(".").lower()
        return FileFacts(
            language=ext or "unknown",
            line_count=0,
            meta={"type": "opaque", "file_size": len(content)},
        )

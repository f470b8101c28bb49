"""Structural summaries for JSON and YAML files.

A document that fails to parse is still a successful extraction: the summary
records ``invalid_json``/``invalid_yaml`` and the truncated parse error.
"""

from __future__ import annotations

import json
import posixpath
from typing import Any

import yaml

from tracemap.config.constants import PARSE_ERROR_MAX_CHARS, SAMPLE_KEYS_MAX
from tracemap.index._internal.extraction import BaseExtractor
from tracemap.index.models import FileFacts, FileKind


def _summarize(document: Any) -> dict[str, Any]:
    if isinstance(document, dict):
        keys = [str(k) for k in document]
    elif isinstance(document, list):
        keys = [str(i) for i in range(len(document))]
    else:
        keys = []
    return {
        "keys_count": len(keys),
        "has_array": isinstance(document, list),
        "sample_keys": keys[:SAMPLE_KEYS_MAX],
    }


class StructuredExtractor(BaseExtractor):
    kind = FileKind.STRUCTURED
    extensions = frozenset({".json", ".yaml", ".yml"})

    def extract(self, path: str, content: bytes) -> FileFacts:
        ext = posixpath.splitext(path)[1].lower()
        language = "json" if ext == ".json" else "yaml"
        text = content.decode("utf-8", errors="replace")
        meta: dict[str, Any] = {"type": language, "file_size": len(content)}
        parse_error: str | None = None

        try:
            if language == "json":
                document = json.loads(text)
            else:
                document = yaml.safe_load(text)
        except (json.JSONDecodeError, yaml.YAMLError) as e:
            parse_error = str(e)[:PARSE_ERROR_MAX_CHARS]
            meta["type"] = f"invalid_{language}"
            meta["parse_error"] = parse_error
        else:
            meta.update(_summarize(document))

        return FileFacts(
            language=language,
            line_count=len(text.splitlines()),
            meta=meta,
            parse_error=parse_error,
        )

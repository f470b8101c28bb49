"""Fact extraction protocol and registry.

A file's kind is chosen by extension and each kind has one extractor:

- source: JS/TS parsed with tree-sitter (see javascript.py)
- structured: JSON/YAML summaries (see structured.py)
- opaque: everything else, bare metadata (see opaque.py)
"""

from __future__ import annotations

import posixpath
from abc import ABC, abstractmethod
from collections.abc import Iterable

from tracemap.index.models import FileFacts, FileKind


class BaseExtractor(ABC):
    """Base class for per-kind extractors."""

    kind: FileKind
    extensions: frozenset[str] = frozenset()

    @abstractmethod
    def extract(self, path: str, content: bytes) -> FileFacts:
        """Extract facts. Never raises for malformed content; returns a degraded FileFacts."""
        ...


class ExtractorRegistry:
    """Maps extensions to extractors, falling back to the opaque extractor."""

    def __init__(self, fallback: BaseExtractor) -> None:
        self._by_ext: dict[str, BaseExtractor] = {}
        self._fallback = fallback

    def register(self, extractor: BaseExtractor) -> None:
        for ext in extractor.extensions:
            self._by_ext[ext] = extractor

    def get(self, path: str) -> BaseExtractor:
        ext = posixpath.splitext(path)[1].lower()
        return self._by_ext.get(ext, self._fallback)

    def kind_of(self, path: str) -> FileKind:
        return self.get(path).kind

    def extract(self, path: str, content: bytes) -> FileFacts:
        return self.get(path).extract(path, content)

    def supported_extensions(self) -> list[str]:
        return sorted(self._by_ext)

    @classmethod
    def default(cls, builtin_classes: Iterable[str] = ()) -> ExtractorRegistry:
        """Registry with the built-in extractors."""
        # Import here to avoid circular imports
        from tracemap.index._internal.extraction.javascript import JavaScriptExtractor
        from tracemap.index._internal.extraction.opaque import OpaqueExtractor
        from tracemap.index._internal.extraction.structured import StructuredExtractor

        registry = cls(fallback=OpaqueExtractor())
        registry.register(JavaScriptExtractor(builtin_classes=frozenset(builtin_classes)))
        registry.register(StructuredExtractor())
        return registry


__all__ = [
    "BaseExtractor",
    "ExtractorRegistry",
]

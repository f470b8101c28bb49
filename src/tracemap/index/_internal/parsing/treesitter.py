"""Tree-sitter parsing for JavaScript and TypeScript sources.

Grammars are loaded lazily through importlib from the per-language wheels
(tree_sitter_javascript, tree_sitter_typescript). Language objects are
shared; a tree_sitter.Parser is not thread-safe, so each thread gets its own.
"""

from __future__ import annotations

import importlib
import threading
from collections.abc import Iterator
from dataclasses import dataclass
from typing import Any

import tree_sitter


@dataclass(frozen=True, slots=True)
class GrammarSpec:
    """Where to find a grammar: module name and the function returning its pointer."""

    name: str
    module: str
    language_func: str = "language"


JAVASCRIPT = GrammarSpec(name="javascript", module="tree_sitter_javascript")
TYPESCRIPT = GrammarSpec(
    name="typescript", module="tree_sitter_typescript", language_func="language_typescript"
)
TSX = GrammarSpec(name="tsx", module="tree_sitter_typescript", language_func="language_tsx")

# JSX is part of the javascript grammar
GRAMMAR_BY_EXT: dict[str, GrammarSpec] = {
    ".js": JAVASCRIPT,
    ".jsx": JAVASCRIPT,
    ".mjs": JAVASCRIPT,
    ".cjs": JAVASCRIPT,
    ".ts": TYPESCRIPT,
    ".mts": TYPESCRIPT,
    ".cts": TYPESCRIPT,
    ".tsx": TSX,
}


@dataclass
class ParseResult:
    """Result of parsing a file."""

    tree: Any  # Tree-sitter Tree (not serializable)
    grammar: str
    error_count: int
    root_node: Any  # Tree-sitter Node


def walk(node: Any) -> Iterator[Any]:
    """Pre-order traversal in document order, without recursion."""
    stack = [node]
    while stack:
        current = stack.pop()
        yield current
        stack.extend(reversed(current.children))


def node_text(node: Any | None) -> str:
    if node is None or node.text is None:
        return ""
    text: str = node.text.decode("utf-8", errors="replace")
    return text


class TreeSitterParser:
    """
    Tree-sitter parser for JS/TS.

    Usage::

        parser = TreeSitterParser()
        result = parser.parse(".ts", content)
        for node in walk(result.root_node):
            ...
    """

    def __init__(self) -> None:
        self._languages: dict[str, Any] = {}
        self._lock = threading.Lock()
        self._local = threading.local()

    def _get_language(self, spec: GrammarSpec) -> Any:
        """Get or load a Tree-sitter language."""
        with self._lock:
            if spec.name in self._languages:
                return self._languages[spec.name]
            try:
                mod = importlib.import_module(spec.module)
                lang_fn = getattr(mod, spec.language_func)
                lang = tree_sitter.Language(lang_fn())
            except (ImportError, AttributeError) as err:
                raise ValueError(f"Language not available: {spec.name}") from err
            self._languages[spec.name] = lang
            return lang

    def _get_parser(self, spec: GrammarSpec) -> Any:
        parsers: dict[str, Any] | None = getattr(self._local, "parsers", None)
        if parsers is None:
            parsers = {}
            self._local.parsers = parsers
        parser = parsers.get(spec.name)
        if parser is None:
            parser = tree_sitter.Parser(self._get_language(spec))
            parsers[spec.name] = parser
        return parser

    def parse(self, ext: str, content: bytes) -> ParseResult:
        """
        Parse source bytes with the grammar registered for ``ext``.

        Raises:
            ValueError: Unsupported extension or grammar not installed.
        """
        spec = GRAMMAR_BY_EXT.get(ext.lower())
        if spec is None:
            raise ValueError(f"Unsupported file extension: {ext}")

        tree = self._get_parser(spec).parse(content)

        error_count = 0
        if tree.root_node.has_error:
            error_count = sum(
                1 for node in walk(tree.root_node) if node.type == "ERROR" or node.is_missing
            )

        return ParseResult(
            tree=tree,
            grammar=spec.name,
            error_count=error_count,
            root_node=tree.root_node,
        )

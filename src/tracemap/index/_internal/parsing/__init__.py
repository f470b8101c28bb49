"""Tree-sitter parsing for syntactic analysis."""

from tracemap.index._internal.parsing.treesitter import (
    GRAMMAR_BY_EXT,
    ParseResult,
    TreeSitterParser,
    node_text,
    walk,
)

__all__ = [
    "GRAMMAR_BY_EXT",
    "ParseResult",
    "TreeSitterParser",
    "node_text",
    "walk",
]

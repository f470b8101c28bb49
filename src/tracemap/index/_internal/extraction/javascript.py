"""JavaScript/TypeScript fact extraction over tree-sitter syntax trees.

Extracted per file:
- symbols: functions, generators, classes, methods, variable declarators
- imports: ES imports, require() calls and re-exports as import entries
- exports / reexports
- instances: ``new X(...)`` sites with argument summaries

Tree-sitter is error tolerant, so a file with syntax errors still yields
facts; the error count lands in ``meta["syntax_errors"]``. Only a parser
failure produces a degraded FileFacts.
"""

from __future__ import annotations

import posixpath
from typing import Any

import structlog

from tracemap.config.constants import (
    ARG_LITERAL_MAX_CHARS,
    PARSE_ERROR_MAX_CHARS,
    SNIPPET_CONTEXT_LINES,
)
from tracemap.index._internal.extraction import BaseExtractor
from tracemap.index._internal.parsing import GRAMMAR_BY_EXT, TreeSitterParser, node_text, walk
from tracemap.index.models import FileFacts, FileKind, InstanceFact, Symbol, SymbolKind

logger = structlog.get_logger()

_FUNCTION_DECLS = frozenset(
    {"function_declaration", "generator_function_declaration", "method_definition"}
)
_CLASS_DECLS = frozenset({"class_declaration", "abstract_class_declaration"})
_FUNCTION_VALUES = frozenset(
    {"arrow_function", "function_expression", "function", "generator_function"}
)
_CLASS_VALUES = frozenset({"class"})
_VARIABLE_DECLS = frozenset({"lexical_declaration", "variable_declaration"})
_LITERAL_TYPES = frozenset({"string", "number", "true", "false", "null"})


def _unquote(node: Any) -> str:
    return node_text(node).strip("'\"`")


def _line(node: Any) -> int:
    return int(node.start_point[0]) + 1


def _end_line(node: Any) -> int:
    return int(node.end_point[0]) + 1


def _literal_value(node: Any) -> Any:
    kind = node.type
    if kind == "string":
        return _unquote(node)[:ARG_LITERAL_MAX_CHARS]
    if kind == "true":
        return True
    if kind == "false":
        return False
    if kind == "null":
        return None
    raw = node_text(node)
    try:
        return int(raw, 0)
    except ValueError:
        try:
            return float(raw)
        except ValueError:
            return raw[:ARG_LITERAL_MAX_CHARS]


def _object_keys(node: Any) -> list[str]:
    keys: list[str] = []
    for child in node.named_children:
        if child.type == "pair":
            key = child.child_by_field_name("key")
            if key is None:
                continue
            keys.append(_unquote(key) if key.type == "string" else node_text(key))
        elif child.type == "shorthand_property_identifier":
            keys.append(node_text(child))
        elif child.type == "method_definition":
            keys.append(node_text(child.child_by_field_name("name")))
    return keys


def summarize_argument(node: Any) -> dict[str, Any]:
    """Describe one constructor argument without evaluating it."""
    if node.type in _LITERAL_TYPES:
        return {"type": "literal", "value": _literal_value(node)}
    if node.type == "identifier":
        return {"type": "identifier", "name": node_text(node)}
    if node.type == "object":
        return {"type": "object", "keys": _object_keys(node)}
    return {"type": node.type}


class _FileVisitor:
    """Single pass over one syntax tree, accumulating facts."""

    def __init__(self, lines: list[str], builtin_classes: frozenset[str]) -> None:
        self.lines = lines
        self.builtin_classes = builtin_classes
        self.symbols: list[Symbol] = []
        self.imports: list[dict[str, Any]] = []
        self.exports: list[dict[str, Any]] = []
        self.reexports: list[dict[str, Any]] = []
        self.instances: list[InstanceFact] = []

    def visit(self, root: Any) -> None:
        for node in walk(root):
            handler = getattr(self, f"_on_{node.type}", None)
            if handler is not None:
                handler(node)

    # -- symbols -------------------------------------------------------------

    def _add_symbol(self, name_node: Any, kind: SymbolKind, span: Any) -> None:
        name = node_text(name_node)
        if name:
            self.symbols.append(
                Symbol(name=name, kind=kind.value, line=_line(span), end_line=_end_line(span))
            )

    def _on_function_declaration(self, node: Any) -> None:
        self._add_symbol(node.child_by_field_name("name"), SymbolKind.FUNCTION, node)

    _on_generator_function_declaration = _on_function_declaration
    _on_method_definition = _on_function_declaration

    def _on_class_declaration(self, node: Any) -> None:
        self._add_symbol(node.child_by_field_name("name"), SymbolKind.CLASS, node)

    _on_abstract_class_declaration = _on_class_declaration

    def _on_variable_declarator(self, node: Any) -> None:
        name_node = node.child_by_field_name("name")
        if name_node is None or name_node.type != "identifier":
            return
        value = node.child_by_field_name("value")
        if value is not None and value.type in _FUNCTION_VALUES:
            kind = SymbolKind.FUNCTION
        elif value is not None and value.type in _CLASS_VALUES:
            kind = SymbolKind.CLASS
        else:
            kind = SymbolKind.VARIABLE
        self._add_symbol(name_node, kind, node)

    # -- imports -------------------------------------------------------------

    def _on_import_statement(self, node: Any) -> None:
        source_node = node.child_by_field_name("source")
        if source_node is None:
            return
        module = _unquote(source_node)
        specifiers: list[dict[str, Any]] = []

        for child in node.named_children:
            if child.type != "import_clause":
                continue
            for clause_child in child.named_children:
                if clause_child.type == "identifier":
                    specifiers.append({"type": "default", "name": node_text(clause_child)})
                elif clause_child.type == "namespace_import":
                    for ns_child in clause_child.named_children:
                        if ns_child.type == "identifier":
                            specifiers.append(
                                {"type": "namespace", "name": node_text(ns_child)}
                            )
                elif clause_child.type == "named_imports":
                    for spec in clause_child.named_children:
                        if spec.type != "import_specifier":
                            continue
                        imported = node_text(spec.child_by_field_name("name"))
                        alias_node = spec.child_by_field_name("alias")
                        local = node_text(alias_node) if alias_node is not None else imported
                        specifiers.append({"type": "named", "name": local, "imported": imported})

        if not specifiers:
            specifiers.append({"type": "side-effect", "name": None})
        self.imports.append({"module": module, "specifiers": specifiers})

    def _on_call_expression(self, node: Any) -> None:
        func = node.child_by_field_name("function")
        if func is None or func.type != "identifier" or node_text(func) != "require":
            return
        args = node.child_by_field_name("arguments")
        if args is None or not args.named_children:
            return
        first = args.named_children[0]
        if first.type != "string":
            return
        module = _unquote(first)
        if any(imp["module"] == module for imp in self.imports):
            return
        self.imports.append({"module": module, "specifiers": [{"type": "require", "name": None}]})

    # -- exports -------------------------------------------------------------

    def _on_export_statement(self, node: Any) -> None:
        source_node = node.child_by_field_name("source")
        declaration = node.child_by_field_name("declaration")
        is_default = any(child.type == "default" for child in node.children)

        if is_default:
            name = "default"
            target = declaration or node.child_by_field_name("value")
            if target is not None:
                name_node = target.child_by_field_name("name")
                if name_node is not None:
                    name = node_text(name_node)
            self.exports.append({"name": name, "type": "default"})
            return

        if source_node is not None:
            self._reexport(node, _unquote(source_node))

        if declaration is not None:
            if declaration.type in _VARIABLE_DECLS:
                for child in declaration.named_children:
                    if child.type != "variable_declarator":
                        continue
                    name_node = child.child_by_field_name("name")
                    if name_node is not None and name_node.type == "identifier":
                        self.exports.append({"name": node_text(name_node), "type": "named"})
            else:
                name_node = declaration.child_by_field_name("name")
                if name_node is not None:
                    self.exports.append({"name": node_text(name_node), "type": "named"})
            return

        for clause in node.named_children:
            if clause.type != "export_clause":
                continue
            for spec in clause.named_children:
                if spec.type != "export_specifier":
                    continue
                local = node_text(spec.child_by_field_name("name"))
                alias_node = spec.child_by_field_name("alias")
                exported = node_text(alias_node) if alias_node is not None else local
                self.exports.append({"name": exported, "type": "named", "local": local})

    def _reexport(self, node: Any, module: str) -> None:
        clause = next((c for c in node.named_children if c.type == "export_clause"), None)
        if clause is None:
            namespace = next((c for c in node.named_children if c.type == "namespace_export"), None)
            exported_name = None
            if namespace is not None:
                ident = next(
                    (c for c in namespace.named_children if c.type in ("identifier", "string")),
                    None,
                )
                exported_name = _unquote(ident) if ident is not None else None
            self.reexports.append({"type": "all", "module": module, "exported_name": exported_name})
            self.imports.append(
                {
                    "module": module,
                    "specifiers": [{"type": "reexport-all", "name": exported_name or "*"}],
                    "is_reexport": True,
                }
            )
            return

        specifiers: list[dict[str, Any]] = []
        for spec in clause.named_children:
            if spec.type != "export_specifier":
                continue
            imported = node_text(spec.child_by_field_name("name"))
            alias_node = spec.child_by_field_name("alias")
            exported = node_text(alias_node) if alias_node is not None else imported
            specifiers.append({"type": "reexport-named", "exported": exported, "imported": imported})
        self.reexports.append({"type": "named", "module": module, "specifiers": specifiers})
        self.imports.append({"module": module, "specifiers": specifiers, "is_reexport": True})

    # -- instances -----------------------------------------------------------

    def _on_new_expression(self, node: Any) -> None:
        ctor = node.child_by_field_name("constructor")
        if ctor is None:
            return
        if ctor.type == "identifier":
            class_name = node_text(ctor)
        elif ctor.type == "member_expression":
            class_name = node_text(ctor.child_by_field_name("property"))
        else:
            return
        # Constructor-like names only: first char uppercase, not a runtime builtin
        if not class_name[:1].isupper() or class_name in self.builtin_classes:
            return

        args_node = node.child_by_field_name("arguments")
        arguments = (
            [summarize_argument(arg) for arg in args_node.named_children if arg.type != "comment"]
            if args_node is not None
            else []
        )

        start = max(0, _line(node) - 1 - SNIPPET_CONTEXT_LINES)
        snippet = "\n".join(self.lines[start : _end_line(node)]).strip()

        self.instances.append(
            InstanceFact(
                class_name=class_name,
                line=_line(node),
                column=int(node.start_point[1]),
                snippet=snippet,
                arguments=arguments,
            )
        )


class JavaScriptExtractor(BaseExtractor):
    """Tree-sitter backed extractor for JS, JSX, TS and TSX."""

    kind = FileKind.SOURCE
    extensions = frozenset(GRAMMAR_BY_EXT)

    def __init__(
        self,
        builtin_classes: frozenset[str] = frozenset(),
        parser: TreeSitterParser | None = None,
    ) -> None:
        self._builtin_classes = builtin_classes
        self._parser = parser or TreeSitterParser()

    def extract(self, path: str, content: bytes) -> FileFacts:
        ext = posixpath.splitext(path)[1].lower()
        language = "typescript" if ext in (".ts", ".tsx", ".mts", ".cts") else "javascript"

        try:
            result = self._parser.parse(ext, content)
        except Exception as e:  # noqa: BLE001
            logger.warning("source_parse_failed", path=path, error=str(e))
            return FileFacts(language=language, parse_error=str(e)[:PARSE_ERROR_MAX_CHARS])

        text = content.decode("utf-8", errors="replace")
        lines = text.splitlines()
        visitor = _FileVisitor(lines, self._builtin_classes)
        visitor.visit(result.root_node)

        meta: dict[str, Any] = {"type": "source", "grammar": result.grammar}
        if result.error_count:
            meta["syntax_errors"] = result.error_count

        return FileFacts(
            language=language,
            line_count=len(lines),
            symbols=visitor.symbols,
            imports=visitor.imports,
            exports=visitor.exports,
            reexports=visitor.reexports,
            instances=visitor.instances,
            meta=meta,
        )

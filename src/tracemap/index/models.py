"""SQLModel definitions for the code index.

Single source of truth for the index tables:
- files: one FileRecord per indexed path, replaced wholesale on re-index
- file_dependencies / class_instances: owned by a FileRecord, rewritten with it
- index_runs: one row per pipeline run

Extractor output and resolver results are plain dataclasses and never
persisted directly.
"""

import json
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any

from sqlmodel import Field, SQLModel

# ============================================================================
# ENUMS
# ============================================================================


class FileKind(str, Enum):
    """Extractor variant, selected by extension."""

    SOURCE = "source"
    STRUCTURED = "structured"
    OPAQUE = "opaque"


class SymbolKind(str, Enum):
    FUNCTION = "function"
    CLASS = "class"
    VARIABLE = "variable"


class EdgeKind(str, Enum):
    """How a dependency edge was declared."""

    IMPORT = "import"
    REQUIRE = "require"
    REEXPORT = "reexport"


class RunMode(str, Enum):
    FULL = "full"
    INCREMENTAL = "incremental"


class ResolutionStage(str, Enum):
    """Which resolver stage produced a mapping."""

    FULL_PATH = "full_path"
    BASENAME_WITH_DIR = "basename_with_dir"
    BASENAME_ONLY = "basename_only"


# ============================================================================
# TABLE MODELS
# ============================================================================


class FileRecord(SQLModel, table=True):
    """Indexed facts for one file."""

    __tablename__ = "files"

    id: int | None = Field(default=None, primary_key=True)
    path: str = Field(unique=True, index=True)
    content_hash: str
    language: str = Field(index=True)
    symbols_json: str = "[]"
    imports_json: str = "[]"
    exports_json: str = "[]"
    reexports_json: str = "[]"
    meta_json: str = "{}"
    line_count: int = 0
    is_self_made: bool = True
    confidence: float = 0.5
    classification_reason: str | None = None
    category: str | None = Field(default=None, index=True)
    is_critical: bool = False
    parse_error: str | None = None
    last_indexed_at: float = Field(index=True)
    run_id: str | None = None
    commit_sha: str | None = None

    def get_symbols(self) -> "list[Symbol]":
        """Parse symbols_json to Symbol values."""
        return [Symbol.from_dict(s) for s in json.loads(self.symbols_json or "[]")]

    def get_imports(self) -> list[dict[str, Any]]:
        result: list[dict[str, Any]] = json.loads(self.imports_json or "[]")
        return result

    def get_exports(self) -> list[dict[str, Any]]:
        result: list[dict[str, Any]] = json.loads(self.exports_json or "[]")
        return result

    def get_reexports(self) -> list[dict[str, Any]]:
        result: list[dict[str, Any]] = json.loads(self.reexports_json or "[]")
        return result

    def get_meta(self) -> dict[str, Any]:
        result: dict[str, Any] = json.loads(self.meta_json or "{}")
        return result


class DependencyEdge(SQLModel, table=True):
    """Outgoing dependency of a file, as written in the source."""

    __tablename__ = "file_dependencies"

    id: int | None = Field(default=None, primary_key=True)
    source_path: str = Field(index=True)
    target_module: str = Field(index=True)
    edge_kind: str = EdgeKind.IMPORT.value


class InstanceSite(SQLModel, table=True):
    """A ``new X(...)`` call site."""

    __tablename__ = "class_instances"

    id: int | None = Field(default=None, primary_key=True)
    class_name: str = Field(index=True)
    file_path: str = Field(index=True)
    line: int
    column: int = 0
    code_snippet: str | None = None
    arguments_json: str = "[]"

    def get_arguments(self) -> list[dict[str, Any]]:
        result: list[dict[str, Any]] = json.loads(self.arguments_json or "[]")
        return result


class IndexRun(SQLModel, table=True):
    """Summary of one pipeline run."""

    __tablename__ = "index_runs"

    id: int | None = Field(default=None, primary_key=True)
    run_id: str = Field(index=True)
    mode: str
    started_at: float
    finished_at: float | None = None
    files_succeeded: int = 0
    files_failed: int = 0
    freshness: float | None = None


INDEX_TABLES = (FileRecord, DependencyEdge, InstanceSite, IndexRun)
FACT_TABLES = (DependencyEdge, InstanceSite, FileRecord)


# ============================================================================
# NON-TABLE MODELS (extraction and resolution values)
# ============================================================================


@dataclass
class Symbol:
    """A named declaration with its 1-based line span."""

    name: str
    kind: str  # function, class, variable
    line: int
    end_line: int | None = None

    def contains(self, line: int) -> bool:
        return self.end_line is not None and self.line <= line <= self.end_line

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"name": self.name, "kind": self.kind, "line": self.line}
        if self.end_line is not None:
            data["end_line"] = self.end_line
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Symbol":
        return cls(
            name=data["name"],
            kind=data.get("kind", SymbolKind.VARIABLE.value),
            line=int(data["line"]),
            end_line=data.get("end_line"),
        )


@dataclass
class InstanceFact:
    """Extracted constructor call."""

    class_name: str
    line: int
    column: int
    snippet: str
    arguments: list[dict[str, Any]] = field(default_factory=list)


@dataclass
class FileFacts:
    """Everything an extractor learned about one file."""

    language: str
    line_count: int = 0
    symbols: list[Symbol] = field(default_factory=list)
    imports: list[dict[str, Any]] = field(default_factory=list)
    exports: list[dict[str, Any]] = field(default_factory=list)
    reexports: list[dict[str, Any]] = field(default_factory=list)
    instances: list[InstanceFact] = field(default_factory=list)
    meta: dict[str, Any] = field(default_factory=dict)
    parse_error: str | None = None

    def dependency_edges(self) -> list[tuple[str, str]]:
        """(target_module, edge_kind) pairs derived from imports and re-exports."""
        edges: list[tuple[str, str]] = []
        for imp in self.imports:
            module = imp.get("module")
            if not module:
                continue
            types = {spec.get("type") for spec in imp.get("specifiers", [])}
            if types & {"reexport-all", "reexport-named"}:
                kind = EdgeKind.REEXPORT
            elif "require" in types:
                kind = EdgeKind.REQUIRE
            else:
                kind = EdgeKind.IMPORT
            edges.append((module, kind.value))
        return edges


@dataclass(frozen=True, slots=True)
class Classification:
    """Classifier verdict for one path."""

    is_self_made: bool
    confidence: float
    reason: str
    category: str

    @property
    def is_critical(self) -> bool:
        return self.category == "critical"


@dataclass
class ResolvedMapping:
    """Where a runtime location lives in the indexed tree."""

    path: str
    symbol: str | None
    deps: list[str]
    confidence: float
    stage: ResolutionStage

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["stage"] = self.stage.value
        return data

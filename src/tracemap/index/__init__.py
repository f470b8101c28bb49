"""Index module - static fact index of a source tree.

This module provides:
- Extraction: tree-sitter facts for JS/TS, structural summaries for JSON/YAML
- Classification: self-authored vs external, critical and category tagging
- Storage: SQLite tables with per-file atomic commits and an audit log

Public API:
- IndexingPipeline, RunStats: indexing runs (ops.py)
- IndexStore: durable storage and resolver lookups (store.py)
- IndexQueries, IndexStats: read-only query surface (queries.py)

Internal implementations are in `tracemap.index._internal/`.
"""

from tracemap.index.classifier import Classifier
from tracemap.index.models import (
    Classification,
    DependencyEdge,
    EdgeKind,
    FileFacts,
    FileKind,
    FileRecord,
    IndexRun,
    InstanceFact,
    InstanceSite,
    ResolutionStage,
    ResolvedMapping,
    RunMode,
    Symbol,
    SymbolKind,
)
from tracemap.index.ops import IndexingPipeline, RunStats
from tracemap.index.paths import basename, normalize_path, parent_dir_name
from tracemap.index.queries import IndexQueries, IndexStats
from tracemap.index.store import IndexStore

__all__ = [
    # Public API
    "IndexingPipeline",
    "IndexQueries",
    "IndexStats",
    "IndexStore",
    "RunStats",
    "Classifier",
    # Paths
    "basename",
    "normalize_path",
    "parent_dir_name",
    # Enums
    "EdgeKind",
    "FileKind",
    "ResolutionStage",
    "RunMode",
    "SymbolKind",
    # Models
    "Classification",
    "DependencyEdge",
    "FileFacts",
    "FileRecord",
    "IndexRun",
    "InstanceFact",
    "InstanceSite",
    "ResolvedMapping",
    "Symbol",
]

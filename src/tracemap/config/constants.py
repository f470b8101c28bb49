"""Configuration constants.

Values here are NOT user-configurable: scoring weights, schema versions and
format constants. For configurable values, see models.py.
"""

# =============================================================================
# Resolver confidence scoring
# =============================================================================

CONFIDENCE_BASE = 0.5
"""Score of any located file."""

CONFIDENCE_SYMBOL_BONUS = 0.3
"""Added when an enclosing symbol was found for the line."""

CONFIDENCE_SOURCE_BONUS = 0.2
"""Added when the stored path contains a source directory segment."""

CONFIDENCE_MAX = 1.0

# =============================================================================
# Classifier confidence levels
# =============================================================================

CLASSIFY_CERTAIN = 1.0
"""Exclude-pattern and critical-file matches."""

CLASSIFY_INCLUDED = 0.95
"""Include-pattern matches."""

CLASSIFY_UNCERTAIN = 0.5
"""No rule matched; treated as first-party."""

# =============================================================================
# Extraction
# =============================================================================

SNIPPET_CONTEXT_LINES = 1
"""Lines of context kept before a constructor call in instance snippets."""

ARG_LITERAL_MAX_CHARS = 200
"""Longest literal value stored in an argument summary."""

PARSE_ERROR_MAX_CHARS = 100
"""Failure reasons are truncated to this length."""

SAMPLE_KEYS_MAX = 5
"""Top-level keys kept in a structured-data summary."""

# =============================================================================
# Audit log
# =============================================================================

AUDIT_SCHEMA_VERSION = "1.4"
AUDIT_PROVIDER = "tracemap-indexer"
AUDIT_LOG_NAME = "audit.jsonl"
AUDIT_ARCHIVE_PREFIX = "audit_"

# =============================================================================
# Storage layout
# =============================================================================

DATA_DIR_NAME = ".tracemap"
INDEX_DB_NAME = "index.db"
REPORTS_DB_NAME = "errors.db"
LOCK_FILE_NAME = "index.lock"
CONFIG_FILE_NAME = "config.yaml"

SYNC_KEY_LAST_INDEX_TIME = "last_index_time"

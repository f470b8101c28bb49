"""Database layer for the index."""

from tracemap.index._internal.db.database import BulkWriter, Database

__all__ = [
    "BulkWriter",
    "Database",
]

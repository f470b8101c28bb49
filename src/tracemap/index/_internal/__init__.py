"""Internal implementation of the index. Public API lives in tracemap.index."""

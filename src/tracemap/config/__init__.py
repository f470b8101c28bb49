"""Configuration loading and models."""

from tracemap.config.loader import IndexPaths, get_index_paths, load_config, write_config
from tracemap.config.models import TracemapConfig
from tracemap.config.rules import RuleSet

__all__ = [
    "IndexPaths",
    "RuleSet",
    "TracemapConfig",
    "get_index_paths",
    "load_config",
    "write_config",
]

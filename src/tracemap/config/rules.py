"""Frozen rule set built once from configuration.

Classifier and pipeline receive a RuleSet explicitly; nothing reads rules
from module-level state.
"""

from __future__ import annotations

from dataclasses import dataclass

from tracemap.config.models import RulesConfig, TracemapConfig


@dataclass(frozen=True, slots=True)
class RuleSet:
    """Immutable path rules."""

    scan: tuple[str, ...]
    ignore: tuple[str, ...]
    include: tuple[str, ...]
    exclude: tuple[str, ...]
    critical: tuple[str, ...]
    config_files: tuple[str, ...]
    categories: tuple[tuple[str, str], ...]
    builtin_classes: frozenset[str]

    @classmethod
    def from_config(cls, config: TracemapConfig | RulesConfig) -> RuleSet:
        rules = config.rules if isinstance(config, TracemapConfig) else config
        return cls(
            scan=tuple(rules.scan),
            ignore=tuple(rules.ignore),
            include=tuple(rules.include),
            exclude=tuple(rules.exclude),
            critical=tuple(rules.critical),
            config_files=tuple(rules.config_files),
            categories=tuple((r.prefix, r.category) for r in rules.categories),
            builtin_classes=frozenset(rules.builtin_classes),
        )

    @classmethod
    def default(cls) -> RuleSet:
        return cls.from_config(RulesConfig())

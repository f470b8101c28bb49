"""Self-made vs external classification of indexed paths.

Rules are evaluated in a fixed order and the first match wins:

1. exclude pattern  -> external, 1.0
2. critical file    -> self-made, 1.0, category "critical"
3. include pattern  -> self-made, 0.95, category from prefix rules
4. nothing matched  -> self-made, 0.5, "uncertain"

A path listed in ``config_files`` is categorized "config" when it reaches
step 3 or 4; it keeps that step's confidence.
"""

from __future__ import annotations

from tracemap.config.constants import CLASSIFY_CERTAIN, CLASSIFY_INCLUDED, CLASSIFY_UNCERTAIN
from tracemap.config.rules import RuleSet
from tracemap.core.globs import first_match, matches_glob
from tracemap.index.models import Classification
from tracemap.index.paths import normalize_path

CATEGORY_EXTERNAL = "external"
CATEGORY_CRITICAL = "critical"
CATEGORY_CONFIG = "config"
CATEGORY_UNCERTAIN = "uncertain"
CATEGORY_DEFAULT = "self-made"


class Classifier:
    """Pure function of (path, rules); safe to share between threads."""

    def __init__(self, rules: RuleSet) -> None:
        self._rules = rules

    @property
    def rules(self) -> RuleSet:
        return self._rules

    def classify(self, path: str) -> Classification:
        rel_path = normalize_path(path)

        pattern = first_match(rel_path, self._rules.exclude)
        if pattern is not None:
            return Classification(
                is_self_made=False,
                confidence=CLASSIFY_CERTAIN,
                reason=f"matched exclude pattern {pattern}",
                category=CATEGORY_EXTERNAL,
            )

        if self.is_critical(rel_path):
            return Classification(
                is_self_made=True,
                confidence=CLASSIFY_CERTAIN,
                reason="critical file",
                category=CATEGORY_CRITICAL,
            )

        is_config = self.is_config_file(rel_path)

        pattern = first_match(rel_path, self._rules.include)
        if pattern is not None:
            return Classification(
                is_self_made=True,
                confidence=CLASSIFY_INCLUDED,
                reason=f"matched include pattern {pattern}",
                category=CATEGORY_CONFIG if is_config else self.category_for(rel_path),
            )

        return Classification(
            is_self_made=True,
            confidence=CLASSIFY_UNCERTAIN,
            reason="no rule matched",
            category=CATEGORY_CONFIG if is_config else CATEGORY_UNCERTAIN,
        )

    def is_critical(self, rel_path: str) -> bool:
        """Critical entries match as a glob or as a plain substring (suffixes included)."""
        return any(
            matches_glob(rel_path, entry) or entry in rel_path for entry in self._rules.critical
        )

    def is_config_file(self, rel_path: str) -> bool:
        name = rel_path.rsplit("/", 1)[-1]
        return any(
            matches_glob(rel_path, entry) or matches_glob(name, entry)
            for entry in self._rules.config_files
        )

    def category_for(self, rel_path: str) -> str:
        for prefix, category in self._rules.categories:
            if rel_path.startswith(prefix):
                return category
        return CATEGORY_DEFAULT

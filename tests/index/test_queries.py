"""Tests for the read-only query surface."""

from pathlib import Path

import pytest

from tracemap.config.rules import RuleSet
from tracemap.index.ops import IndexingPipeline
from tracemap.index.queries import IndexQueries
from tracemap.index.store import IndexStore


@pytest.fixture
def queries(sample_tree: Path, temp_store: IndexStore, rules: RuleSet) -> IndexQueries:
    """Queries over the indexed sample tree."""
    IndexingPipeline(sample_tree, temp_store, rules, clock=lambda: 1700000000.0).run(
        full_scan=True
    )
    return IndexQueries(temp_store)


class TestLookups:
    """Path, class and dependency lookups."""

    def test_given_fragment_when_lookup_path_then_containing_paths(
        self, queries: IndexQueries
    ) -> None:
        """Paths containing the fragment are returned sorted."""
        assert [r.path for r in queries.lookup_path("widgets")] == ["src/widgets/Button.ts"]
        assert [r.path for r in queries.lookup_path("app")] == ["src/app.js"]

    def test_given_wildcard_characters_when_lookup_path_then_literal(
        self, queries: IndexQueries
    ) -> None:
        """LIKE wildcards in the fragment are matched literally."""
        assert queries.lookup_path("%") == []
        assert queries.lookup_path("src_") == []

    def test_given_limit_when_lookup_path_then_truncated(self, queries: IndexQueries) -> None:
        """At most ``limit`` rows come back."""
        assert len(queries.lookup_path("src/", limit=2)) == 2

    def test_given_class_name_when_lookup_class_then_sites_with_arguments(
        self, queries: IndexQueries
    ) -> None:
        """Instance sites carry location, snippet and argument summaries."""
        # When
        sites = queries.lookup_class("Widget")

        # Then
        assert len(sites) == 1
        site = sites[0]
        assert (site.file_path, site.line) == ("src/app.js", 5)
        assert site.code_snippet is not None and "new Widget" in site.code_snippet
        assert site.get_arguments() == [{"type": "object", "keys": ["id"]}]
        assert queries.lookup_class("Nothing") == []

    def test_given_unnormalized_path_when_get_file_then_found(
        self, queries: IndexQueries
    ) -> None:
        """Query paths are normalized before lookup."""
        record = queries.get_file("./src\\utils.js")
        assert record is not None
        assert record.path == "src/utils.js"

    def test_given_file_when_dependencies_then_modules_in_source_order(
        self, queries: IndexQueries
    ) -> None:
        """Outgoing edges are listed as written."""
        assert queries.dependencies("src/app.js") == ["./widgets/Button", "./utils"]
        assert queries.dependencies("src/utils.js") == []

    def test_given_imported_file_when_dependents_then_importers(
        self, queries: IndexQueries
    ) -> None:
        """Importers are matched on the module's last segment without extension."""
        assert queries.dependents("src/utils.js") == ["src/app.js"]
        assert queries.dependents("src/widgets/Button.ts") == ["src/app.js"]
        assert queries.dependents("src/app.js") == []
        assert queries.dependents("") == []

    def test_given_index_when_list_files_then_sorted_paths(self, queries: IndexQueries) -> None:
        """Every indexed path is listed."""
        assert queries.list_files() == [
            "package.json",
            "src/app.js",
            "src/utils.js",
            "src/widgets/Button.ts",
        ]


class TestStats:
    """Aggregate statistics."""

    def test_given_index_when_stats_then_aggregates(self, queries: IndexQueries) -> None:
        """Counts by language and category, totals and largest files."""
        # When
        stats = queries.stats()

        # Then
        assert stats.total_files == 4
        assert stats.total_lines == 13
        assert stats.by_language == {"javascript": 2, "json": 1, "typescript": 1}
        assert stats.by_category == {"config": 1, "self-made": 3}
        assert stats.self_made == 4
        assert stats.external == 0
        assert stats.critical == 0
        assert stats.largest[:2] == [("src/app.js", 6), ("src/widgets/Button.ts", 5)]
        assert stats.last_index_time == 1700000000.0

    def test_given_stats_when_to_dict_then_largest_as_objects(
        self, queries: IndexQueries
    ) -> None:
        """The dict form is JSON friendly."""
        data = queries.stats().to_dict()
        assert data["largest"][0] == {"path": "src/app.js", "lines": 6}
        assert data["total_files"] == 4

    def test_given_empty_index_when_stats_then_zeroes(self, temp_store: IndexStore) -> None:
        """An empty index reports zeroes and no freshness."""
        stats = IndexQueries(temp_store).stats()
        assert stats.total_files == 0
        assert stats.total_lines == 0
        assert stats.by_language == {}
        assert stats.largest == []
        assert stats.last_index_time is None

"""Tests for the three-stage reverse resolver."""

from collections.abc import Callable

import pytest
from sqlalchemy.exc import SQLAlchemyError

from tracemap.index.models import DependencyEdge, FileRecord, ResolutionStage, Symbol
from tracemap.index.store import IndexStore
from tracemap.resolve import ReverseResolver, enclosing_symbol

MakeRecord = Callable[..., FileRecord]


@pytest.fixture
def store(temp_store: IndexStore, make_record: MakeRecord) -> IndexStore:
    """A store shaped like a small app with colliding basenames."""
    temp_store.commit_file(
        make_record(
            "app/widgets/Button.js",
            symbols=[Symbol("Button", "class", 1, 50), Symbol("render", "function", 10, 40)],
        ),
        [],
        [],
    )
    temp_store.commit_file(
        make_record("src/core/engine.js", symbols=[Symbol("boot", "function", 1, 20)]),
        [
            DependencyEdge(source_path="src/core/engine.js", target_module="./loop"),
            DependencyEdge(source_path="src/core/engine.js", target_module="events"),
        ],
        [],
    )
    temp_store.commit_file(make_record("lib/Utils.js"), [], [])
    temp_store.commit_file(make_record("app/shared/deep/Utils.js"), [], [])
    return temp_store


@pytest.fixture
def resolver(store: IndexStore) -> ReverseResolver:
    return ReverseResolver(store, source_segments=("src",))


class TestStages:
    """Stage selection tests."""

    def test_given_exact_path_behind_url_when_resolve_then_full_path_stage(
        self, resolver: ReverseResolver
    ) -> None:
        """A URL-prefixed location resolves on the first stage with full confidence."""
        # When
        mapping = resolver.resolve("http://localhost:8080/src/core/engine.js?v=1", 5)

        # Then
        assert mapping is not None
        assert mapping.path == "src/core/engine.js"
        assert mapping.stage == ResolutionStage.FULL_PATH
        assert mapping.symbol == "boot"
        assert mapping.deps == ["./loop", "events"]
        assert mapping.confidence == 1.0

    def test_given_build_dir_prefix_when_resolve_then_basename_with_dir(
        self, resolver: ReverseResolver
    ) -> None:
        """A bundle path sharing basename and parent dir resolves on stage two."""
        # When
        mapping = resolver.resolve("dist/bundle/widgets/Button.js", 25)

        # Then
        assert mapping is not None
        assert mapping.path == "app/widgets/Button.js"
        assert mapping.stage == ResolutionStage.BASENAME_WITH_DIR
        assert mapping.symbol == "render"
        assert mapping.confidence == 0.8

    def test_given_only_basename_matches_when_resolve_then_shortest_path(
        self, resolver: ReverseResolver
    ) -> None:
        """Stage three picks the shortest stored path with that basename."""
        # When
        mapping = resolver.resolve("https://cdn.example.com/assets/Utils.js", 3)

        # Then
        assert mapping is not None
        assert mapping.path == "lib/Utils.js"
        assert mapping.stage == ResolutionStage.BASENAME_ONLY
        assert mapping.symbol is None
        assert mapping.deps == []
        assert mapping.confidence == 0.5

    def test_given_bare_basename_when_resolve_then_shortest_stored_path(
        self, resolver: ReverseResolver
    ) -> None:
        """A query that is only a suffix of stored paths prefers the shallowest one."""
        # When
        mapping = resolver.resolve("Utils.js", 3)

        # Then
        assert mapping is not None
        assert mapping.path == "lib/Utils.js"
        assert mapping.stage == ResolutionStage.FULL_PATH

    def test_given_deep_runtime_path_when_resolve_then_longest_stored_suffix(
        self, resolver: ReverseResolver
    ) -> None:
        """A stored path that ends the runtime path wins over shorter basename peers."""
        # When
        mapping = resolver.resolve("/srv/www/app/shared/deep/Utils.js", 3)

        # Then
        assert mapping is not None
        assert mapping.path == "app/shared/deep/Utils.js"
        assert mapping.stage == ResolutionStage.FULL_PATH

    def test_given_full_path_hit_when_resolve_then_later_stages_not_evaluated(
        self, resolver: ReverseResolver, store: IndexStore, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """A first-stage match returns without running the basename lookups."""
        # Given
        calls: list[str] = []

        def _record(name: str) -> Callable[..., FileRecord | None]:
            def lookup(*args: str) -> FileRecord | None:
                calls.append(name)
                raise SQLAlchemyError(f"{name} should not run")

            return lookup

        monkeypatch.setattr(store, "find_by_basename_and_parent", _record("basename_with_dir"))
        monkeypatch.setattr(store, "find_by_basename", _record("basename_only"))

        # When
        mapping = resolver.resolve("src/core/engine.js", 5)

        # Then
        assert mapping is not None
        assert mapping.stage == ResolutionStage.FULL_PATH
        assert calls == []

    def test_given_unknown_file_when_resolve_then_none(self, resolver: ReverseResolver) -> None:
        """Nothing matching at any stage yields None."""
        assert resolver.resolve("dist/vendor.js", 1) is None
        assert resolver.resolve("", 1) is None
        assert resolver.resolve("   ", 1) is None

    def test_given_first_stage_failure_when_resolve_then_later_stage_used(
        self, resolver: ReverseResolver, store: IndexStore, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """A storage error in one stage counts as a miss for that stage."""

        # Given
        def _boom(path: str) -> FileRecord | None:
            raise SQLAlchemyError("disk I/O error")

        monkeypatch.setattr(store, "find_exact_or_suffix", _boom)

        # When
        mapping = resolver.resolve("src/core/engine.js", 5)

        # Then
        assert mapping is not None
        assert mapping.path == "src/core/engine.js"
        assert mapping.stage == ResolutionStage.BASENAME_WITH_DIR

    def test_given_mapping_when_to_dict_then_stage_is_string(
        self, resolver: ReverseResolver
    ) -> None:
        """The dict form is JSON friendly."""
        mapping = resolver.resolve("src/core/engine.js", 5)
        assert mapping is not None
        assert mapping.to_dict() == {
            "path": "src/core/engine.js",
            "symbol": "boot",
            "deps": ["./loop", "events"],
            "confidence": 1.0,
            "stage": "full_path",
        }


class TestConfidence:
    """Confidence scoring tests."""

    def test_given_source_path_without_symbol_when_resolve_then_source_bonus_only(
        self, resolver: ReverseResolver
    ) -> None:
        """A line outside every symbol earns only the source-path bonus."""
        mapping = resolver.resolve("src/core/engine.js", 99)
        assert mapping is not None
        assert mapping.symbol is None
        assert mapping.confidence == 0.7

    def test_given_custom_source_segments_when_resolve_then_bonus_follows(
        self, store: IndexStore
    ) -> None:
        """The source-path bonus uses the configured directory names."""
        mapping = ReverseResolver(store, source_segments=("app",)).resolve(
            "app/widgets/Button.js", 25
        )
        assert mapping is not None
        assert mapping.confidence == 1.0


class TestEnclosingSymbol:
    """Symbol selection tests."""

    def test_given_nested_symbols_when_line_inside_then_innermost(self) -> None:
        """The bounded symbol with the greatest start line wins."""
        symbols = [Symbol("Button", "class", 1, 50), Symbol("render", "function", 10, 40)]
        assert enclosing_symbol(symbols, 25) == symbols[1]
        assert enclosing_symbol(symbols, 45) == symbols[0]

    def test_given_same_start_line_when_enclosing_then_smallest_span(self) -> None:
        """Ties on start line go to the tighter span."""
        outer = Symbol("Outer", "class", 10, 50)
        inner = Symbol("inner", "function", 10, 20)
        assert enclosing_symbol([outer, inner], 15) == inner

    def test_given_only_unbounded_symbols_when_enclosing_then_closest_above(self) -> None:
        """Without a span, the nearest declaration at or above the line is used."""
        symbols = [Symbol("a", "variable", 5), Symbol("b", "variable", 15)]
        assert enclosing_symbol(symbols, 12) == symbols[0]
        assert enclosing_symbol(symbols, 15) == symbols[1]
        assert enclosing_symbol(symbols, 3) is None

    def test_given_no_symbols_when_enclosing_then_none(self) -> None:
        """An empty symbol list has no answer."""
        assert enclosing_symbol([], 1) is None

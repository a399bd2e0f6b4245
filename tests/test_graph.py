"""
Unit tests for the composition parameter builder.
"""
import pytest

from app.composition.graph import (
    OUTPUT_HEIGHT,
    OUTPUT_OPTIONS,
    OUTPUT_WIDTH,
    AudioMixPolicy,
    DurationMode,
    Layout,
    build_graph,
)
from app.errors import ValidationError


class TestLayoutParsing:

    @pytest.mark.parametrize("value", ["SideBySide", "sidebyside", "side_by_side", "Side-By-Side"])
    def test_side_by_side_spellings(self, value):
        assert Layout.parse(value) == Layout.SIDE_BY_SIDE

    @pytest.mark.parametrize("value", ["diagonal", "", None, 42])
    def test_unknown_layout_falls_back_to_sequential(self, value):
        assert Layout.parse(value) == Layout.SEQUENTIAL

    def test_mixed_is_alias_for_shortest(self):
        assert AudioMixPolicy.parse("mixed") == AudioMixPolicy.SHORTEST
        assert AudioMixPolicy.parse("LONGEST") == AudioMixPolicy.LONGEST
        assert AudioMixPolicy.parse(None) == AudioMixPolicy.SHORTEST


class TestBuildGraph:

    def test_deterministic(self):
        settings = {"inputA": {"crop": {"width": 100, "height": 50, "x": 2}, "volume": 0.5}}
        first = build_graph("Stacked", settings, "longest")
        for _ in range(5):
            assert build_graph("Stacked", settings, "longest") == first

    def test_side_by_side(self):
        graph = build_graph("SideBySide", {}, "shortest")
        half = OUTPUT_WIDTH // 2

        assert graph.layout == Layout.SIDE_BY_SIDE
        assert f"[0:v]scale={half}:{OUTPUT_HEIGHT},setsar=1[v0]" in graph.filters
        assert f"[1:v]scale={half}:{OUTPUT_HEIGHT},setsar=1[v1]" in graph.filters
        assert "[v0][v1]hstack=inputs=2[v]" in graph.filters
        assert "[a0][a1]amix=inputs=2:duration=shortest[a]" in graph.filters
        assert half * 2 == graph.width == OUTPUT_WIDTH
        assert graph.height == OUTPUT_HEIGHT
        assert graph.duration_mode == DurationMode.MIN

    def test_stacked_longest(self):
        graph = build_graph("Stacked", None, "longest")
        half = OUTPUT_HEIGHT // 2

        assert f"[0:v]scale={OUTPUT_WIDTH}:{half},setsar=1[v0]" in graph.filters
        assert "[v0][v1]vstack=inputs=2[v]" in graph.filters
        assert "[a0][a1]amix=inputs=2:duration=longest[a]" in graph.filters
        assert graph.duration_mode == DurationMode.MAX

    def test_sequential_concatenates_without_scaling_or_mixing(self):
        graph = build_graph("Sequential", {}, "longest")

        assert graph.filters[-1] == "[v0][a0][v1][a1]concat=n=2:v=1:a=1[v][a]"
        assert not any("scale=" in f for f in graph.filters)
        assert not any("amix" in f for f in graph.filters)
        assert graph.duration_mode == DurationMode.SUM
        assert graph.expected_duration([3.0, 4.5]) == 7.5

    def test_unknown_layout_matches_sequential(self):
        assert build_graph("diagonal", {}, None) == build_graph("Sequential", {}, None)

    def test_single_track_policies(self):
        first = build_graph("SideBySide", {"inputA": {"volume": 2}}, "first")
        second = build_graph("SideBySide", {}, "second")

        assert first.filters[-1] == "[0:a]volume=2[a]"
        assert second.filters[-1] == "[1:a]anull[a]"
        assert not any("amix" in f for f in first.filters)

    def test_crop_applies_before_scale(self):
        graph = build_graph("SideBySide", {"b": {"crop": {"width": 320, "height": 240, "x": 10, "y": 20}}})
        assert graph.filters[1] == f"[1:v]crop=320:240:10:20,scale={OUTPUT_WIDTH // 2}:{OUTPUT_HEIGHT},setsar=1[v1]"

    def test_output_options_are_fixed_policy(self):
        graph = build_graph("Stacked", {}, "shortest")
        assert graph.output_options == OUTPUT_OPTIONS
        assert "+faststart" in graph.output_options
        assert "libx264" in graph.output_options

    def test_filter_complex_joins_chains(self):
        graph = build_graph("Sequential")
        assert graph.filter_complex == ";".join(graph.filters)

    def test_expected_duration_needs_both_inputs(self):
        assert build_graph("Stacked").expected_duration([5.0]) is None


class TestOverrideValidation:

    @pytest.mark.parametrize("settings", [
        {"inputA": {"crop": {"width": -1, "height": 10}}},
        {"inputA": {"crop": {"width": 10, "height": 0}}},
        {"inputB": {"crop": {"width": 10, "height": 10, "x": -5}}},
        {"inputB": {"crop": {"width": "wide", "height": 10}}},
        {"inputA": {"volume": -0.1}},
        {"inputA": {"volume": True}},
        {"inputA": "loud"},
        {"inputA": {"crop": [1, 2]}},
    ])
    def test_invalid_overrides_rejected(self, settings):
        with pytest.raises(ValidationError):
            build_graph("SideBySide", settings, "shortest")

    def test_non_mapping_settings_rejected(self):
        with pytest.raises(ValidationError):
            build_graph("Stacked", ["inputA"], "shortest")

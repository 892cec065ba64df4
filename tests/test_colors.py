"""
Tests for scanner.colors.assign_colors.
"""
import pytest

from scanner.colors import DEFAULT_PALETTE, assign_colors


def _colors(fragments):
    return [f["color"] for f in fragments]


class TestAssignColors:
    """Band-based color assignment."""

    def test_empty_input(self):
        assert assign_colors([]) == []

    def test_same_band_shares_color(self, fragment):
        a = fragment("a", 0.1, 0.5, 0.2, 0.05)
        b = fragment("b", 0.6, 0.505, 0.1, 0.052)

        assert _colors(assign_colors([a, b])) == ["red", "red"]

    def test_min_y_beyond_tolerance_opens_band(self, fragment):
        a = fragment("a", 0.1, 0.5, 0.2, 0.05)
        b = fragment("b", 0.1, 0.52, 0.2, 0.05)

        assert _colors(assign_colors([a, b])) == ["red", "green"]

    def test_height_beyond_tolerance_opens_band(self, fragment):
        a = fragment("a", 0.1, 0.5, 0.2, 0.05)
        b = fragment("b", 0.1, 0.5, 0.2, 0.07)

        assert _colors(assign_colors([a, b])) == ["red", "green"]

    def test_rows_reuse_band_colors(self, receipt_fragments):
        colored = assign_colors(receipt_fragments)

        by_text = {f["text"]: f["color"] for f in colored}
        assert by_text["$4.99"] == by_text["Gadget"]
        assert by_text["Widget"] == by_text["$9.99"]
        assert by_text["Widget"] != by_text["Gadget"]

    def test_palette_wraps_around(self, fragment):
        fragments = [fragment(str(i), 0.1, i * 0.1, 0.1, 0.05) for i in range(len(DEFAULT_PALETTE) + 2)]

        colors = _colors(assign_colors(fragments))

        assert colors[: len(DEFAULT_PALETTE)] == list(DEFAULT_PALETTE)
        assert colors[len(DEFAULT_PALETTE):] == ["red", "green"]

    def test_deterministic_for_same_order(self, receipt_fragments):
        first = assign_colors(receipt_fragments)
        second = assign_colors(receipt_fragments)

        assert first == second

    def test_first_fit_is_order_dependent(self, fragment):
        a = fragment("a", 0.1, 0.500, 0.1, 0.05)
        b = fragment("b", 0.1, 0.508, 0.1, 0.05)
        c = fragment("c", 0.1, 0.516, 0.1, 0.05)

        assert _colors(assign_colors([a, b, c])) == ["red", "red", "green"]
        assert _colors(assign_colors([b, a, c])) == ["red", "red", "red"]

    def test_input_not_mutated(self, receipt_fragments):
        assign_colors(receipt_fragments)

        assert all("color" not in f for f in receipt_fragments)

    def test_custom_palette_and_tolerance(self, fragment):
        a = fragment("a", 0.1, 0.5, 0.1, 0.05)
        b = fragment("b", 0.1, 0.55, 0.1, 0.05)

        colored = assign_colors([a, b], palette=["yellow"], tolerance=0.1)

        assert _colors(colored) == ["yellow", "yellow"]

    def test_empty_palette_rejected(self, fragment):
        with pytest.raises(ValueError):
            assign_colors([fragment("a", 0.1, 0.5, 0.1, 0.05)], palette=[])

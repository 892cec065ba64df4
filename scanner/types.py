"""Typed structures shared by the scanner modules."""

from __future__ import annotations

from typing import List, Tuple, TypedDict

# (min_x, min_y, width, height) in unit-square coordinates, Y increasing upward.
Rect = Tuple[float, float, float, float]
PixelBox = Tuple[float, float, float, float]


class TextFragmentRequired(TypedDict):
    """Fields every recognized fragment exposes."""

    id: str
    text: str
    bounds: Rect


class TextFragment(TextFragmentRequired, total=False):
    """Recognized text span with its optional grouping color."""

    color: str


Row = List[TextFragment]


__all__ = ["Rect", "PixelBox", "TextFragment", "Row"]

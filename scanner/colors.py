"""Assign stable highlight colors to fragments sharing a vertical band."""

from __future__ import annotations

from typing import List, Sequence, Tuple, TypedDict

from .types import TextFragment

DEFAULT_PALETTE: Tuple[str, ...] = ("red", "green", "blue", "orange", "purple", "cyan")
DEFAULT_TOLERANCE = 0.01


class _Band(TypedDict):
    min_y: float
    height: float
    color: str


def assign_colors(
    fragments: Sequence[TextFragment],
    *,
    palette: Sequence[str] = DEFAULT_PALETTE,
    tolerance: float = DEFAULT_TOLERANCE,
) -> List[TextFragment]:
    """Return copies of ``fragments`` tagged with a band color.

    Bands are matched first-fit in arrival order on both ``min_y`` and
    ``height``; unmatched fragments open a new band with the next palette
    color, wrapping around once the palette is exhausted.
    """

    if not palette:
        raise ValueError("palette must contain at least one color")

    bands: List[_Band] = []
    colored: List[TextFragment] = []
    for fragment in fragments:
        _, min_y, _, height = fragment["bounds"]
        match: _Band | None = None
        for band in bands:
            if abs(band["min_y"] - min_y) < tolerance and abs(band["height"] - height) < tolerance:
                match = band
                break
        if match is None:
            match = {
                "min_y": min_y,
                "height": height,
                "color": palette[len(bands) % len(palette)],
            }
            bands.append(match)
        item: TextFragment = {
            "id": fragment["id"],
            "text": fragment["text"],
            "bounds": fragment["bounds"],
            "color": match["color"],
        }
        colored.append(item)
    return colored


__all__ = ["DEFAULT_PALETTE", "DEFAULT_TOLERANCE", "assign_colors"]

"""Reconstruct reading-order rows from recognized text fragments."""

from __future__ import annotations

import logging
import math
import uuid
from typing import Iterable, List, Literal, Sequence

from .types import PixelBox, Rect, Row, TextFragment

logger = logging.getLogger(__name__)

ROW_HEIGHT_FACTOR = 0.5
# Floor for the row continuation threshold so zero-height boxes can still share a row.
MIN_ROW_THRESHOLD = 1e-3

RowAnchor = Literal["last", "first"]


def make_fragment(text: str, bounds: Rect) -> TextFragment:
    """Build a fragment with a fresh identifier."""
    min_x, min_y, width, height = bounds
    return {
        "id": uuid.uuid4().hex,
        "text": text or "",
        "bounds": (float(min_x), float(min_y), float(width), float(height)),
    }


def _max_y(bounds: Rect) -> float:
    return bounds[1] + bounds[3]


def _mid_y(bounds: Rect) -> float:
    return bounds[1] + bounds[3] / 2.0


def _row_threshold(bounds: Rect) -> float:
    return max(bounds[3] * ROW_HEIGHT_FACTOR, MIN_ROW_THRESHOLD)


def _clamp(value: float, lower: float = 0.0, upper: float = 1.0) -> float:
    return min(max(value, lower), upper)


def _sorted_row(row: Iterable[TextFragment]) -> Row:
    return sorted(row, key=lambda fragment: fragment["bounds"][0])


def sanitize_fragments(fragments: Iterable[TextFragment]) -> List[TextFragment]:
    """Drop non-finite fragments and clamp the rest into the unit square.

    Negative extents become zero and rectangles are trimmed so that they end
    inside ``[0, 1]`` on both axes. Order and identifiers are preserved.
    """

    cleaned: List[TextFragment] = []
    dropped = 0
    for fragment in fragments:
        try:
            min_x, min_y, width, height = (float(v) for v in fragment["bounds"])
        except (TypeError, ValueError):
            dropped += 1
            continue
        if not all(math.isfinite(v) for v in (min_x, min_y, width, height)):
            dropped += 1
            continue
        min_x = _clamp(min_x)
        min_y = _clamp(min_y)
        width = _clamp(width, upper=1.0 - min_x)
        height = _clamp(height, upper=1.0 - min_y)
        item: TextFragment = {
            "id": fragment["id"],
            "text": fragment.get("text") or "",
            "bounds": (min_x, min_y, width, height),
        }
        if "color" in fragment:
            item["color"] = fragment["color"]
        cleaned.append(item)
    if dropped:
        logger.debug("Discarded %s fragment(s) with malformed bounds", dropped)
    return cleaned


def organize_into_rows(
    fragments: Sequence[TextFragment],
    *,
    anchor: RowAnchor = "last",
) -> List[Row]:
    """Group fragments into rows ordered top-to-bottom, each left-to-right.

    Fragments are scanned by descending top edge. A fragment continues the
    current row when its vertical center lies within half the reference
    fragment's height of the reference center (strictly). The reference is
    the most recently appended fragment, or the first fragment of the row
    when ``anchor="first"``. Any other anchor raises ``ValueError``.
    """

    if anchor not in ("last", "first"):
        raise ValueError(f"Unknown row anchor: {anchor!r}")
    ordered = sorted(fragments, key=lambda fragment: _max_y(fragment["bounds"]), reverse=True)
    rows: List[Row] = []
    current: Row = []

    for fragment in ordered:
        if not current:
            current.append(fragment)
            continue
        reference = current[-1] if anchor == "last" else current[0]
        distance = abs(_mid_y(fragment["bounds"]) - _mid_y(reference["bounds"]))
        if distance < _row_threshold(reference["bounds"]):
            current.append(fragment)
        else:
            rows.append(_sorted_row(current))
            current = [fragment]

    if current:
        rows.append(_sorted_row(current))
    return rows


def rows_to_text(rows: Iterable[Iterable[TextFragment]]) -> List[List[str]]:
    """Flatten rows into the ``extractedText`` payload shape."""
    return [[fragment["text"] for fragment in row] for row in rows]


def to_pixel_box(bounds: Rect, width: float, height: float) -> PixelBox:
    """Convert normalized Y-up bounds into a Y-down pixel box ``(x0, y0, x1, y1)``."""
    min_x, min_y, box_w, box_h = bounds
    x0 = min_x * width
    x1 = (min_x + box_w) * width
    y0 = (1.0 - (min_y + box_h)) * height
    y1 = (1.0 - min_y) * height
    return (x0, y0, x1, y1)


__all__ = [
    "MIN_ROW_THRESHOLD",
    "make_fragment",
    "organize_into_rows",
    "rows_to_text",
    "sanitize_fragments",
    "to_pixel_box",
]

"""Text recognition adapters producing normalized text fragments."""

from __future__ import annotations

import io
import logging
import os
from typing import Any, Iterable, List, Literal, Protocol, Sequence, Tuple, cast

from PIL import Image, ImageOps, UnidentifiedImageError

from .layout import make_fragment
from .types import Rect, TextFragment

try:  # pragma: no cover - optional dependency
    from google.cloud import vision as _vision  # type: ignore[import]
except ImportError:  # pragma: no cover - optional dependency
    _vision = None

vision = cast(Any | None, _vision)

logger = logging.getLogger(__name__)

LANGUAGE_ENV = "SCANNER_OCR_LANGUAGE"
GRANULARITY_ENV = "SCANNER_OCR_GRANULARITY"
DEFAULT_LANGUAGE = "en"
DEFAULT_GRANULARITY = "line"

EXIF_ORIENTATION_TAG = 0x0112

# Vision TextAnnotation.DetectedBreak.BreakType values that end a printed line.
_LINE_ENDING_BREAKS = {3, 5}

Granularity = Literal["word", "line"]
Vertices = List[Tuple[int, int]]


class RecognitionError(Exception):
    """Raised when an image cannot be decoded or text recognition fails."""


class Recognizer(Protocol):
    def recognize(self, image_bytes: bytes) -> List[TextFragment]:
        ...


def load_upright_image(image_bytes: bytes) -> Tuple[bytes, int, int]:
    """Return image bytes with EXIF orientation applied plus the upright size."""

    try:
        with Image.open(io.BytesIO(image_bytes)) as im:
            orientation = im.getexif().get(EXIF_ORIENTATION_TAG, 1)
            if orientation in (None, 1):
                width, height = im.size
                return image_bytes, width, height
            upright = ImageOps.exif_transpose(im)
            width, height = upright.size
            buffer = io.BytesIO()
            upright.save(buffer, format="PNG")
    except (UnidentifiedImageError, OSError) as exc:
        raise RecognitionError("Image has no decodable pixel data") from exc
    logger.debug("Applied EXIF orientation %s before recognition", orientation)
    return buffer.getvalue(), width, height


def normalize_vertices(vertices: Sequence[Tuple[float, float]], width: int, height: int) -> Rect:
    """Convert pixel vertices (Y down) into a normalized Y-up rectangle."""
    if not vertices or width <= 0 or height <= 0:
        return (0.0, 0.0, 0.0, 0.0)
    xs = [float(v[0]) for v in vertices]
    ys = [float(v[1]) for v in vertices]
    min_x = min(xs) / width
    box_w = (max(xs) - min(xs)) / width
    min_y = 1.0 - max(ys) / height
    box_h = (max(ys) - min(ys)) / height
    return (min_x, min_y, box_w, box_h)


def _word_vertices(word: Any) -> Vertices:
    bounding_box: Any = getattr(word, "bounding_box", None)
    vertices: Iterable[Any] = getattr(bounding_box, "vertices", [])
    return [(int(getattr(vertex, "x", 0)), int(getattr(vertex, "y", 0))) for vertex in vertices]


def _word_text(word: Any) -> Tuple[str, bool]:
    """Return the word text and whether it ends a printed line."""
    symbols: List[Any] = list(getattr(word, "symbols", []))
    text = "".join(str(getattr(symbol, "text", "")) for symbol in symbols)
    ends_line = False
    if symbols:
        prop: Any = getattr(symbols[-1], "property", None)
        detected_break: Any = getattr(prop, "detected_break", None)
        break_type = getattr(detected_break, "type_", getattr(detected_break, "type", 0))
        try:
            ends_line = int(break_type) in _LINE_ENDING_BREAKS
        except (TypeError, ValueError):
            ends_line = False
    return text, ends_line


def fragments_from_annotation(
    annotation: Any,
    width: int,
    height: int,
    granularity: Granularity = "line",
) -> List[TextFragment]:
    """Flatten a Vision ``full_text_annotation`` into fragments."""

    fragments: List[TextFragment] = []
    pages: Iterable[Any] = getattr(annotation, "pages", [])
    for page in pages:
        blocks: Iterable[Any] = getattr(page, "blocks", [])
        for block in blocks:
            paragraphs: Iterable[Any] = getattr(block, "paragraphs", [])
            for paragraph in paragraphs:
                pending_text: List[str] = []
                pending_vertices: Vertices = []
                vision_words: Iterable[Any] = getattr(paragraph, "words", [])
                for word in vision_words:
                    text, ends_line = _word_text(word)
                    vertices = _word_vertices(word)
                    if granularity == "word":
                        fragments.append(make_fragment(text, normalize_vertices(vertices, width, height)))
                        continue
                    pending_text.append(text)
                    pending_vertices.extend(vertices)
                    if ends_line:
                        fragments.append(
                            make_fragment(" ".join(pending_text), normalize_vertices(pending_vertices, width, height))
                        )
                        pending_text = []
                        pending_vertices = []
                if pending_text:
                    fragments.append(
                        make_fragment(" ".join(pending_text), normalize_vertices(pending_vertices, width, height))
                    )
    return fragments


class VisionRecognizer:
    """Google Cloud Vision document text detection."""

    def __init__(self, language_hint: str | None = None, granularity: str | None = None) -> None:
        self._language_hint = language_hint or os.environ.get(LANGUAGE_ENV, DEFAULT_LANGUAGE)
        resolved = (granularity or os.environ.get(GRANULARITY_ENV, DEFAULT_GRANULARITY)).lower().strip()
        if resolved not in ("word", "line"):
            logger.warning("Unknown OCR granularity '%s'; defaulting to %s", resolved, DEFAULT_GRANULARITY)
            resolved = DEFAULT_GRANULARITY
        self._granularity = cast(Granularity, resolved)
        self._client: Any | None = None

    def _get_client(self) -> Any:
        if vision is None:
            raise RecognitionError("google-cloud-vision is not installed")
        if self._client is None:
            self._client = vision.ImageAnnotatorClient()
        return self._client

    def recognize(self, image_bytes: bytes) -> List[TextFragment]:
        content, width, height = load_upright_image(image_bytes)
        client = self._get_client()
        image = vision.Image(content=content)
        image_context: Any | None = None
        if self._language_hint:
            image_context = vision.ImageContext(language_hints=[self._language_hint])

        try:
            response: Any = client.document_text_detection(image=image, image_context=image_context)
        except Exception as exc:
            logger.error("Vision OCR request failed: %s", exc)
            raise RecognitionError(f"Text recognition failed: {exc}") from exc

        error: Any = getattr(response, "error", None)
        message = str(getattr(error, "message", "") or "")
        if message:
            raise RecognitionError(f"Text recognition failed: {message}")

        annotation: Any = getattr(response, "full_text_annotation", None)
        fragments = fragments_from_annotation(annotation, width, height, self._granularity)
        logger.info("Vision OCR returned %s fragment(s) for %sx%s image", len(fragments), width, height)
        return fragments


__all__ = [
    "RecognitionError",
    "Recognizer",
    "VisionRecognizer",
    "fragments_from_annotation",
    "load_upright_image",
    "normalize_vertices",
]

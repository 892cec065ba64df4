"""FastAPI server orchestrating recognition, row reconstruction, and extraction."""

from __future__ import annotations

import base64
import binascii
import logging
import threading
from typing import Any, Dict, List, Optional

import requests
from fastapi import Depends, FastAPI, HTTPException
from pydantic import BaseModel, Field

from .client import ApiClient, ApiClientError, get_default_client
from .colors import assign_colors
from .layout import make_fragment, organize_into_rows, rows_to_text, sanitize_fragments, to_pixel_box
from .ocr import RecognitionError, Recognizer, VisionRecognizer, load_upright_image
from .pipeline import LiveSessionRegistry, ScanPipeline
from .types import Row, TextFragment

logger = logging.getLogger(__name__)

app: FastAPI = FastAPI(title="Receipt Scanner API", version="0.1.0")

_recognizer: Recognizer | None = None
_live_registry: LiveSessionRegistry | None = None
_scan_pipeline: ScanPipeline | None = None
_scan_pipeline_lock = threading.Lock()


def get_recognizer() -> Recognizer:
    global _recognizer
    if _recognizer is None:
        _recognizer = VisionRecognizer()
    return _recognizer


def get_api_client() -> ApiClient:
    return get_default_client()


def get_live_registry() -> LiveSessionRegistry:
    global _live_registry
    if _live_registry is None:
        _live_registry = LiveSessionRegistry(get_recognizer)
    return _live_registry


def get_scan_pipeline(
    recognizer: Recognizer = Depends(get_recognizer),
    client: ApiClient = Depends(get_api_client),
) -> ScanPipeline:
    """Return the shared still-capture pipeline, rebuilt only when its collaborators change."""
    global _scan_pipeline
    with _scan_pipeline_lock:
        current = _scan_pipeline
        if current is None or current.recognizer is not recognizer or current.client is not client:
            current = _scan_pipeline = ScanPipeline(recognizer, client)
    return current


class ImagePayload(BaseModel):
    image_url: Optional[str] = None
    image_b64: Optional[str] = None

    def load_bytes(self) -> bytes:
        if self.image_b64:
            try:
                _, data = self.image_b64.split(",", 1)
            except ValueError:
                data = self.image_b64
            try:
                return base64.b64decode(data)
            except (binascii.Error, ValueError) as exc:
                raise HTTPException(status_code=400, detail="image_b64 is not valid base64") from exc
        if self.image_url:
            logger.info("Fetching image from %s", self.image_url)
            try:
                response = requests.get(self.image_url, timeout=20)
            except requests.RequestException as exc:
                raise HTTPException(status_code=502, detail="Failed to fetch image URL") from exc
            if not response.ok:
                raise HTTPException(status_code=502, detail="Failed to fetch image URL")
            return response.content
        raise HTTPException(status_code=400, detail="Provide image_url or image_b64")


class ScanRequest(ImagePayload):
    file_id: Optional[str] = Field(default=None, description="Key of an already uploaded file")
    upload: bool = Field(default=False, description="Upload the capture before extraction")
    submit: bool = Field(default=True, description="Send recognized rows for invoice extraction")


class BoundsIn(BaseModel):
    min_x: float
    min_y: float
    width: float
    height: float


class FragmentIn(BaseModel):
    id: Optional[str] = None
    text: str = ""
    bounds: BoundsIn


class RowsRequest(BaseModel):
    fragments: List[FragmentIn] = Field(default_factory=list)


def _fragment_json(fragment: TextFragment) -> Dict[str, Any]:
    min_x, min_y, width, height = fragment["bounds"]
    return {
        "id": fragment["id"],
        "text": fragment["text"],
        "color": fragment.get("color"),
        "bounds": {"min_x": min_x, "min_y": min_y, "width": width, "height": height},
    }


def _overlays(rows: List[Row], width: int, height: int) -> List[Dict[str, Any]]:
    overlays: List[Dict[str, Any]] = []
    for row_index, row in enumerate(rows):
        for fragment in row:
            x0, y0, x1, y1 = to_pixel_box(fragment["bounds"], width, height)
            overlays.append(
                {
                    "id": fragment["id"],
                    "text": fragment["text"],
                    "color": fragment.get("color"),
                    "row": row_index,
                    "bbox": {"x0": round(x0), "y0": round(y0), "x1": round(x1), "y1": round(y1)},
                }
            )
    return overlays


@app.post("/scan")
def scan(req: ScanRequest, pipeline: ScanPipeline = Depends(get_scan_pipeline)) -> Dict[str, Any]:
    image_bytes = req.load_bytes()
    try:
        _, width, height = load_upright_image(image_bytes)
        result = pipeline.process(image_bytes, file_id=req.file_id, upload=req.upload, submit=req.submit)
    except RecognitionError as exc:
        logger.warning("Recognition failed: %s", exc)
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    except ApiClientError as exc:
        logger.error("Invoice backend request failed: %s", exc)
        raise HTTPException(status_code=502, detail=str(exc)) from exc

    invoice = result["invoice"]
    return {
        "ocr_image_size": {"w": width, "h": height},
        "rows": result["text"],
        "overlays": _overlays(result["rows"], width, height),
        "file_id": result["file_id"],
        "invoice": invoice.to_wire() if invoice is not None else None,
        "message": result["message"],
    }


@app.post("/rows")
def rows(req: RowsRequest) -> Dict[str, Any]:
    fragments: List[TextFragment] = []
    for entry in req.fragments:
        bounds = (entry.bounds.min_x, entry.bounds.min_y, entry.bounds.width, entry.bounds.height)
        fragment = make_fragment(entry.text, bounds)
        if entry.id:
            fragment["id"] = entry.id
        fragments.append(fragment)
    grouped = organize_into_rows(assign_colors(sanitize_fragments(fragments)))
    return {
        "rows": [[_fragment_json(fragment) for fragment in row] for row in grouped],
        "text": rows_to_text(grouped),
    }


@app.post("/live/sessions")
def open_live_session(registry: LiveSessionRegistry = Depends(get_live_registry)) -> Dict[str, str]:
    session = registry.create()
    return {"session_id": session.id}


@app.post("/live/sessions/{session_id}/frames")
def live_frame(
    session_id: str,
    req: ImagePayload,
    registry: LiveSessionRegistry = Depends(get_live_registry),
) -> Dict[str, Any]:
    session = registry.get(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail="Unknown live session")
    fragments = session.submit_frame(req.load_bytes())
    current = fragments if fragments is not None else session.latest
    return {
        "accepted": fragments is not None,
        "overlays": [_fragment_json(fragment) for fragment in current],
    }


@app.delete("/live/sessions/{session_id}")
def close_live_session(session_id: str, registry: LiveSessionRegistry = Depends(get_live_registry)) -> Dict[str, bool]:
    if not registry.close(session_id):
        raise HTTPException(status_code=404, detail="Unknown live session")
    return {"closed": True}


@app.get("/health")
def health() -> Dict[str, str]:
    return {"status": "ok"}

"""Capture pipelines: single still images and throttled live frames."""

from __future__ import annotations

import io
import logging
import math
import os
import threading
import time
import uuid
from typing import Callable, Dict, List, Optional, TypedDict

from PIL import Image, UnidentifiedImageError

from .client import ApiClient
from .colors import assign_colors
from .extraction import extract_invoice
from .layout import organize_into_rows, rows_to_text, sanitize_fragments
from .models import Invoice
from .ocr import RecognitionError, Recognizer
from .records import upload_image
from .types import Row, TextFragment

logger = logging.getLogger(__name__)

LIVE_MIN_INTERVAL_ENV = "SCANNER_LIVE_MIN_INTERVAL"
DEFAULT_LIVE_MIN_INTERVAL = 0.2
LIVE_MAX_SESSIONS_ENV = "SCANNER_LIVE_MAX_SESSIONS"
DEFAULT_LIVE_MAX_SESSIONS = 64
LIVE_IDLE_TTL_ENV = "SCANNER_LIVE_IDLE_TTL"
DEFAULT_LIVE_IDLE_TTL = 300.0

FrameListener = Callable[[List[TextFragment]], None]


class ScanResult(TypedDict):
    fragments: List[TextFragment]
    rows: List[Row]
    text: List[List[str]]
    file_id: Optional[str]
    invoice: Optional[Invoice]
    message: Optional[str]


def _env_number(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError:
        logger.warning("Invalid %s '%s'; using %s", name, raw, default)
        return default
    return max(value, 0.0)


def live_min_interval() -> float:
    return _env_number(LIVE_MIN_INTERVAL_ENV, DEFAULT_LIVE_MIN_INTERVAL)


def live_max_sessions() -> int:
    return max(int(_env_number(LIVE_MAX_SESSIONS_ENV, DEFAULT_LIVE_MAX_SESSIONS)), 1)


def live_idle_ttl() -> float:
    return _env_number(LIVE_IDLE_TTL_ENV, DEFAULT_LIVE_IDLE_TTL)


def to_jpeg(image_bytes: bytes) -> bytes:
    """Re-encode an image as JPEG for upload."""
    try:
        with Image.open(io.BytesIO(image_bytes)) as im:
            if im.format == "JPEG":
                return image_bytes
            buffer = io.BytesIO()
            im.convert("RGB").save(buffer, format="JPEG", quality=90)
    except (UnidentifiedImageError, OSError) as exc:
        raise RecognitionError("Image has no decodable pixel data") from exc
    return buffer.getvalue()


class ScanPipeline:
    """Runs recognize -> color -> rows -> submit for one capture at a time."""

    def __init__(self, recognizer: Recognizer, client: ApiClient | None = None) -> None:
        self._recognizer = recognizer
        self._client = client
        self._lock = threading.Lock()

    @property
    def recognizer(self) -> Recognizer:
        return self._recognizer

    @property
    def client(self) -> ApiClient | None:
        return self._client

    def process(
        self,
        image_bytes: bytes,
        *,
        file_id: str | None = None,
        upload: bool = False,
        submit: bool = True,
    ) -> ScanResult:
        with self._lock:
            fragments = self._recognizer.recognize(image_bytes)
            colored = assign_colors(sanitize_fragments(fragments))
            rows = organize_into_rows(colored)
            text = rows_to_text(rows)
            logger.info("Recognized %s fragment(s) in %s row(s)", len(colored), len(rows))

            result: ScanResult = {
                "fragments": colored,
                "rows": rows,
                "text": text,
                "file_id": file_id,
                "invoice": None,
                "message": None,
            }
            if not (submit or upload):
                return result
            if self._client is None:
                raise RuntimeError("ScanPipeline has no API client configured")

            if upload and not file_id:
                uploaded = upload_image(self._client, to_jpeg(image_bytes))
                logger.info("Uploaded capture as %s", uploaded.key)
                result["file_id"] = uploaded.key
            if submit:
                response = extract_invoice(self._client, text, file_id=result["file_id"])
                result["invoice"] = response.invoice
                result["message"] = response.message
            return result


class LiveScanSession:
    """Throttled recognition over a continuous frame feed.

    Frames arriving sooner than ``min_interval`` after the last accepted
    frame, or while a recognition is still running, are dropped. Results
    that complete after :meth:`close` are discarded.
    """

    def __init__(
        self,
        recognizer: Recognizer,
        *,
        min_interval: float | None = None,
        listener: FrameListener | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.id = uuid.uuid4().hex
        self._recognizer = recognizer
        self._min_interval = live_min_interval() if min_interval is None else min_interval
        self._listener = listener
        self._clock = clock
        self._state_lock = threading.Lock()
        self._inflight = threading.Lock()
        self._last_accepted = -math.inf
        self._last_activity = clock()
        self._closed = False
        self._latest: List[TextFragment] = []

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def last_activity(self) -> float:
        """Clock reading of the last submitted frame (or of creation)."""
        return self._last_activity

    @property
    def latest(self) -> List[TextFragment]:
        with self._state_lock:
            return list(self._latest)

    def close(self) -> None:
        with self._state_lock:
            self._closed = True

    def submit_frame(self, image_bytes: bytes) -> Optional[List[TextFragment]]:
        """Recognize a frame if throttling allows; return its colored fragments or ``None``."""

        with self._state_lock:
            if self._closed:
                return None
            now = self._clock()
            self._last_activity = now
            if now - self._last_accepted < self._min_interval:
                return None
            if not self._inflight.acquire(blocking=False):
                logger.debug("Dropping frame for session %s; recognition in flight", self.id)
                return None
            self._last_accepted = now

        # The in-flight slot stays taken until the result is published, so
        # overlay updates land in the order recognitions complete.
        try:
            fragments = self._recognizer.recognize(image_bytes)
            colored = assign_colors(sanitize_fragments(fragments))
            with self._state_lock:
                if self._closed:
                    logger.debug("Session %s closed; discarding %s fragment(s)", self.id, len(colored))
                    return None
                self._latest = colored
                if self._listener is not None:
                    self._listener(colored)
            return colored
        except RecognitionError as exc:
            logger.warning("Live frame recognition failed for session %s: %s", self.id, exc)
            return None
        finally:
            self._inflight.release()


class LiveSessionRegistry:
    """In-process store of live sessions, bounded by count and idle time."""

    def __init__(
        self,
        recognizer_factory: Callable[[], Recognizer],
        *,
        max_sessions: int | None = None,
        idle_ttl: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._recognizer_factory = recognizer_factory
        self._max_sessions = live_max_sessions() if max_sessions is None else max(max_sessions, 1)
        self._idle_ttl = live_idle_ttl() if idle_ttl is None else idle_ttl
        self._clock = clock
        self._lock = threading.Lock()
        self._sessions: Dict[str, LiveScanSession] = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def _expire_locked(self, now: float) -> List[LiveScanSession]:
        expired = [s for s in self._sessions.values() if now - s.last_activity > self._idle_ttl]
        for session in expired:
            del self._sessions[session.id]
        return expired

    def _close_evicted(self, evicted: List[LiveScanSession], reason: str) -> None:
        for session in evicted:
            session.close()
            logger.info("Evicted live session %s (%s)", session.id, reason)

    def create(self) -> LiveScanSession:
        session = LiveScanSession(self._recognizer_factory(), clock=self._clock)
        with self._lock:
            expired = self._expire_locked(self._clock())
            overflow: List[LiveScanSession] = []
            while len(self._sessions) >= self._max_sessions:
                oldest = min(self._sessions.values(), key=lambda s: s.last_activity)
                del self._sessions[oldest.id]
                overflow.append(oldest)
            self._sessions[session.id] = session
        self._close_evicted(expired, "idle")
        self._close_evicted(overflow, "session limit")
        logger.info("Opened live session %s", session.id)
        return session

    def get(self, session_id: str) -> Optional[LiveScanSession]:
        with self._lock:
            expired = self._expire_locked(self._clock())
            session = self._sessions.get(session_id)
        self._close_evicted(expired, "idle")
        return session

    def close(self, session_id: str) -> bool:
        with self._lock:
            session = self._sessions.pop(session_id, None)
        if session is None:
            return False
        session.close()
        logger.info("Closed live session %s", session_id)
        return True


__all__ = [
    "LiveScanSession",
    "LiveSessionRegistry",
    "ScanPipeline",
    "ScanResult",
    "live_idle_ttl",
    "live_max_sessions",
    "live_min_interval",
    "to_jpeg",
]

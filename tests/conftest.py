"""
Pytest configuration and shared fixtures.
"""
import base64
import json
from io import BytesIO

import pytest
import requests
from PIL import Image

from scanner.client import ApiClient, StaticTokenAuth
from scanner.layout import make_fragment


class FakeRecognizer:
    """Recognizer returning a fixed fragment list (or raising)."""

    def __init__(self, fragments=None, error=None):
        self.fragments = list(fragments or [])
        self.error = error
        self.calls = 0

    def recognize(self, image_bytes):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return [dict(fragment) for fragment in self.fragments]


class FakeResponse:
    def __init__(self, status_code=200, body=None, raw=None):
        self.status_code = status_code
        if raw is not None:
            self.content = raw
        elif body is not None:
            self.content = json.dumps(body).encode("utf-8")
        else:
            self.content = b""

    @property
    def ok(self):
        return 200 <= self.status_code < 300

    @property
    def text(self):
        return self.content.decode("utf-8")

    def json(self):
        return json.loads(self.content.decode("utf-8"))


class FakeSession:
    """Stands in for requests.Session, replaying queued responses."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls = []

    def queue(self, *responses):
        self.responses.extend(responses)

    def request(self, method, url, **kwargs):
        self.calls.append({"method": method, "url": url, **kwargs})
        if not self.responses:
            raise AssertionError(f"unexpected request {method} {url}")
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


class RefreshingAuth(StaticTokenAuth):
    def __init__(self, token, new_token=None):
        super().__init__(token)
        self.new_token = new_token
        self.refresh_calls = 0
        self.removed = False

    def refresh_access_token(self):
        self.refresh_calls += 1
        if self.new_token is None:
            return False
        self._token = self.new_token
        return True

    def remove_access_token(self):
        self.removed = True
        super().remove_access_token()


@pytest.fixture
def fragment():
    """Factory for fragments from (text, min_x, min_y, width, height)."""
    def _make(text, min_x, min_y, width, height):
        return make_fragment(text, (min_x, min_y, width, height))
    return _make


@pytest.fixture
def receipt_fragments(fragment):
    """Two-row receipt, presented out of reading order."""
    return [
        fragment("$4.99", 0.6, 0.5, 0.15, 0.05),
        fragment("Widget", 0.1, 0.8, 0.3, 0.05),
        fragment("Gadget", 0.1, 0.5, 0.3, 0.05),
        fragment("$9.99", 0.6, 0.8, 0.15, 0.05),
    ]


@pytest.fixture
def fake_session():
    return FakeSession()


@pytest.fixture
def api_client(fake_session):
    return ApiClient("https://api.example.test", StaticTokenAuth("token-1"), session=fake_session)


@pytest.fixture
def png_bytes():
    img = Image.new("RGB", (200, 100), color="white")
    buf = BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


@pytest.fixture
def png_b64(png_bytes):
    return base64.b64encode(png_bytes).decode()


@pytest.fixture
def invoice_body():
    return {
        "_id": "inv-1",
        "name": "Hardware run",
        "vendor": "Corner Store",
        "file": "file-key",
        "files": ["file-key"],
        "items": [
            {
                "_id": "item-1",
                "name": "Widget",
                "price": 9.99,
                "quantity": 2,
                "description": "",
                "categories": [],
                "files": [],
                "date": "2026-01-10T00:00:00.000Z",
                "creation_date": "2026-01-10T12:00:00.000Z",
                "creator": "user-1",
                "archived": False,
            }
        ],
        "totalAmount": 21.48,
        "taxes": [{"taxName": "GST", "amount": 1.5}],
        "date": "2026-01-10T00:00:00.000Z",
        "creation_date": "2026-01-10T12:00:00Z",
        "creator": "user-1",
        "archived": False,
    }


@pytest.fixture
def fake_request_error():
    return requests.ConnectionError("connection refused")


@pytest.fixture
def make_response():
    return FakeResponse


@pytest.fixture
def make_recognizer():
    return FakeRecognizer


@pytest.fixture
def make_auth():
    return RefreshingAuth


@pytest.fixture
def make_session():
    return FakeSession

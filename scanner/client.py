"""Authenticated HTTP client for the invoice backend."""

from __future__ import annotations

import json
import logging
import os
import threading
from typing import Any, Dict, Mapping, Optional, Protocol, Tuple

import requests

logger = logging.getLogger(__name__)

API_HOST_ENV = "SCANNER_API_HOST"
API_TOKEN_ENV = "SCANNER_API_TOKEN"
HTTP_TIMEOUT_ENV = "SCANNER_HTTP_TIMEOUT"
DEFAULT_API_HOST = "http://localhost:3000"
DEFAULT_HTTP_TIMEOUT = 30.0


class ApiClientError(Exception):
    """Base class for backend request failures."""


class UnauthorizedError(ApiClientError):
    def __init__(self) -> None:
        super().__init__("Unauthorized (401)")


class ServerError(ApiClientError):
    def __init__(self, status_code: int, message: str | None) -> None:
        self.status_code = status_code
        self.message = message
        super().__init__(f"Server error ({status_code}): {message or 'no message'}")


class DecodingError(ApiClientError):
    def __init__(self, message: str | None) -> None:
        self.message = message
        super().__init__(f"Decoding error: {message or 'no message'}")


class AuthProvider(Protocol):
    @property
    def access_token(self) -> str | None:
        ...

    def refresh_access_token(self) -> bool:
        ...

    def remove_access_token(self) -> None:
        ...


class StaticTokenAuth:
    """Bearer token from configuration; it cannot be refreshed."""

    def __init__(self, token: str | None = None) -> None:
        self._token = token or None

    @property
    def access_token(self) -> str | None:
        return self._token

    def refresh_access_token(self) -> bool:
        return False

    def remove_access_token(self) -> None:
        self._token = None


def _body_text(response: requests.Response) -> str | None:
    try:
        return response.text
    except (UnicodeDecodeError, AttributeError):
        return None


class ApiClient:
    def __init__(
        self,
        base_url: str,
        auth: AuthProvider | None = None,
        *,
        session: requests.Session | None = None,
        timeout: float = DEFAULT_HTTP_TIMEOUT,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._auth: AuthProvider = auth or StaticTokenAuth()
        self._session = session or requests.Session()
        self._timeout = timeout

    @property
    def base_url(self) -> str:
        return self._base_url

    def url_for(self, path: str) -> str:
        return f"{self._base_url}/{path.lstrip('/')}"

    def _auth_headers(self) -> Dict[str, str]:
        token = self._auth.access_token
        return {"Authorization": f"Bearer {token}"} if token else {}

    def _send(self, method: str, url: str, headers: Dict[str, str], **kwargs: Any) -> requests.Response:
        return self._session.request(
            method,
            url,
            headers={**headers, **self._auth_headers()},
            timeout=self._timeout,
            **kwargs,
        )

    def _send_with_refresh(self, method: str, url: str, headers: Dict[str, str], **kwargs: Any) -> requests.Response:
        response = self._send(method, url, headers, **kwargs)
        if response.status_code != 401:
            return response

        logger.info("Access token unauthorized for %s %s; attempting refresh", method, url)
        if not self._auth.refresh_access_token() or not self._auth.access_token:
            self._auth.remove_access_token()
            logger.warning("Access token refresh failed; clearing credentials")
            raise UnauthorizedError()
        return self._send(method, url, headers, **kwargs)

    def request(
        self,
        method: str,
        path: str,
        *,
        json_body: Any = None,
        params: Mapping[str, str] | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> Any:
        """Send a JSON request and return the decoded JSON body."""

        url = self.url_for(path)
        all_headers = {"Content-Type": "application/json", **(headers or {})}
        kwargs: Dict[str, Any] = {}
        if json_body is not None:
            kwargs["data"] = json.dumps(json_body, ensure_ascii=False).encode("utf-8")
        if params:
            kwargs["params"] = dict(params)

        try:
            response = self._send_with_refresh(method, url, all_headers, **kwargs)
        except requests.RequestException as exc:
            logger.error("%s %s failed: %s", method, url, exc)
            raise ApiClientError(f"Request failed: {exc}") from exc

        if not 200 <= response.status_code < 300:
            raise ServerError(response.status_code, _body_text(response))
        if response.status_code == 204 or not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise DecodingError(_body_text(response)) from exc

    def upload_multipart(
        self,
        path: str,
        data: bytes,
        *,
        filename: str,
        mime_type: str,
        field_name: str = "file",
        fields: Mapping[str, str] | None = None,
    ) -> Tuple[int, bytes]:
        """Upload a single file as multipart/form-data.

        Returns the status code and raw body so callers can decide how to
        decode it.
        """

        url = self.url_for(path)
        files = {field_name: (filename, data, mime_type)}
        try:
            response = self._send_with_refresh(
                "POST",
                url,
                {},
                files=files,
                data=dict(fields or {}),
            )
        except requests.RequestException as exc:
            logger.error("Upload to %s failed: %s", url, exc)
            raise ApiClientError(f"Upload failed: {exc}") from exc
        return response.status_code, response.content


_default_client: ApiClient | None = None
_default_client_lock = threading.Lock()


def get_default_client() -> ApiClient:
    """Return the process-wide client configured from the environment."""
    global _default_client
    with _default_client_lock:
        if _default_client is not None:
            return _default_client
        base_url = os.environ.get(API_HOST_ENV, DEFAULT_API_HOST)
        timeout_raw = os.environ.get(HTTP_TIMEOUT_ENV)
        try:
            timeout = float(timeout_raw) if timeout_raw else DEFAULT_HTTP_TIMEOUT
        except ValueError:
            logger.warning("Invalid %s '%s'; using %.0fs", HTTP_TIMEOUT_ENV, timeout_raw, DEFAULT_HTTP_TIMEOUT)
            timeout = DEFAULT_HTTP_TIMEOUT
        token: Optional[str] = os.environ.get(API_TOKEN_ENV)
        if not token:
            logger.warning("%s not set; backend requests will be unauthenticated", API_TOKEN_ENV)
        _default_client = ApiClient(base_url, StaticTokenAuth(token), timeout=timeout)
        return _default_client


__all__ = [
    "ApiClient",
    "ApiClientError",
    "AuthProvider",
    "DecodingError",
    "ServerError",
    "StaticTokenAuth",
    "UnauthorizedError",
    "get_default_client",
]

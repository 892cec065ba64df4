"""Invoice, item and file services backed by the REST API."""

from __future__ import annotations

import logging
import uuid
from typing import Any, List, Type, TypeVar

from pydantic import BaseModel, ValidationError

from .client import ApiClient, DecodingError, ServerError
from .models import Invoice, Item, UploadedImage

logger = logging.getLogger(__name__)

INVOICES_PATH = "/api/invoices"
ITEMS_PATH = "/api/items"
FILES_PATH = "/api/files"

_ModelT = TypeVar("_ModelT", bound=BaseModel)


def _parse(model: Type[_ModelT], body: Any) -> _ModelT:
    try:
        return model.model_validate(body)
    except ValidationError as exc:
        raise DecodingError(str(body)) from exc


def _parse_list(model: Type[_ModelT], body: Any) -> List[_ModelT]:
    if not isinstance(body, list):
        raise DecodingError(str(body))
    return [_parse(model, entry) for entry in body]


def _unwrap_invoice(body: Any) -> Invoice:
    # Update responses wrap the record as {"invoice": ..., "message": ...}.
    if isinstance(body, dict) and isinstance(body.get("invoice"), dict):
        return _parse(Invoice, body["invoice"])
    return _parse(Invoice, body)


class InvoiceService:
    def __init__(self, client: ApiClient) -> None:
        self._client = client

    def list(self, project_id: str | None = None) -> List[Invoice]:
        params = {"projectId": project_id} if project_id else None
        logger.info("Fetching invoices%s", f" for project {project_id}" if project_id else "")
        return _parse_list(Invoice, self._client.request("GET", INVOICES_PATH, params=params))

    def get(self, invoice_id: str) -> Invoice:
        return _parse(Invoice, self._client.request("GET", f"{INVOICES_PATH}/{invoice_id}"))

    def create(self, invoice: Invoice) -> Invoice:
        body = self._client.request("POST", INVOICES_PATH, json_body=invoice.to_wire())
        return _unwrap_invoice(body)

    def update(self, invoice: Invoice) -> Invoice:
        if not invoice.mongo_id:
            raise ValueError("Invoice has no mongo id; cannot update")
        logger.info("Updating invoice %s", invoice.mongo_id)
        body = self._client.request("PUT", f"{INVOICES_PATH}/{invoice.mongo_id}", json_body=invoice.to_wire())
        return _unwrap_invoice(body)


class ItemService:
    def __init__(self, client: ApiClient) -> None:
        self._client = client

    def for_invoice(self, invoice_id: str) -> List[Item]:
        return _parse_list(Item, self._client.request("GET", f"{ITEMS_PATH}/invoice/{invoice_id}"))

    def for_project(self, project_id: str) -> List[Item]:
        return _parse_list(Item, self._client.request("GET", f"{ITEMS_PATH}/project/{project_id}"))

    def get(self, item_id: str) -> Item:
        return _parse(Item, self._client.request("GET", f"{ITEMS_PATH}/{item_id}"))

    def create(self, item: Item) -> Item:
        return _parse(Item, self._client.request("POST", ITEMS_PATH, json_body=item.to_wire()))

    def update(self, item: Item) -> Item:
        if not item.mongo_id:
            raise ValueError("Item has no mongo id; cannot update")
        return _parse(Item, self._client.request("PUT", f"{ITEMS_PATH}/{item.mongo_id}", json_body=item.to_wire()))

    def delete(self, item_id: str) -> None:
        self._client.request("DELETE", f"{ITEMS_PATH}/{item_id}")
        logger.info("Deleted item %s", item_id)


def upload_image(client: ApiClient, image_bytes: bytes) -> UploadedImage:
    """Upload a JPEG capture; the returned ``key`` identifies it for text extraction."""

    filename = f"{uuid.uuid4()}.jpeg"
    status_code, body = client.upload_multipart(
        FILES_PATH,
        image_bytes,
        filename=filename,
        mime_type="image/jpeg",
    )
    if status_code != 200:
        raise ServerError(status_code, body.decode("utf-8", errors="replace") or None)
    try:
        return UploadedImage.model_validate_json(body)
    except ValidationError as exc:
        raise DecodingError(body.decode("utf-8", errors="replace")) from exc


__all__ = ["InvoiceService", "ItemService", "upload_image"]

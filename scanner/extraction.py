"""Submit reconstructed rows to the invoice extraction backend."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Sequence

from pydantic import ValidationError

from .client import ApiClient, DecodingError
from .models import Invoice, TextExtractResponse

logger = logging.getLogger(__name__)

TEXT_EXTRACT_PATH = "/api/files/process/text-extract"


def build_payload(rows: Sequence[Sequence[str]]) -> Dict[str, List[List[str]]]:
    return {"extractedText": [[str(cell) for cell in row] for row in rows]}


def extract_invoice(
    client: ApiClient,
    rows: Sequence[Sequence[str]],
    file_id: str | None = None,
) -> TextExtractResponse:
    """Post rows to the file-scoped endpoint when ``file_id`` is given, else the fileless one."""

    path = f"{TEXT_EXTRACT_PATH}/{file_id}" if file_id else TEXT_EXTRACT_PATH
    logger.debug("Submitting %s row(s) to %s", len(rows), path)
    body: Any = client.request("POST", path, json_body=build_payload(rows))
    try:
        return TextExtractResponse.model_validate(body)
    except ValidationError as exc:
        raise DecodingError(str(body)) from exc


def process_text_into_invoice(client: ApiClient, file_id: str, rows: Sequence[Sequence[str]]) -> Invoice:
    response = extract_invoice(client, rows, file_id=file_id)
    logger.info("Text extraction for file %s: %s", file_id, response.message or "ok")
    return response.invoice


def create_invoice_from_raw_text(client: ApiClient, rows: Sequence[Sequence[str]]) -> Invoice:
    response = extract_invoice(client, rows)
    logger.info("Fileless text extraction: %s", response.message or "ok")
    return response.invoice


__all__ = [
    "TEXT_EXTRACT_PATH",
    "build_payload",
    "create_invoice_from_raw_text",
    "extract_invoice",
    "process_text_into_invoice",
]

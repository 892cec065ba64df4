"""Invoice records exchanged with the backend."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

_ISO_FORMATS = ("%Y-%m-%dT%H:%M:%S.%f%z", "%Y-%m-%dT%H:%M:%S%z")


def parse_iso_datetime(value: str | None) -> Optional[datetime]:
    """Parse backend ISO-8601 timestamps with or without fractional seconds."""
    if not value:
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    for fmt in _ISO_FORMATS:
        try:
            return datetime.strptime(text, fmt)
        except ValueError:
            continue
    return None


class _Record(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)


class Tax(_Record):
    tax_name: str = Field(..., alias="taxName")
    amount: float = 0.0


class Item(_Record):
    mongo_id: Optional[str] = Field(default=None, alias="_id")
    name: str
    price: float = 0.0
    quantity: Optional[float] = None
    description: str = ""
    categories: List[str] = Field(default_factory=list)
    project: Optional[str] = None
    files: List[str] = Field(default_factory=list)
    date: str = ""
    creation_date: str = ""
    creator: str = ""
    archived: bool = False

    @property
    def line_total(self) -> float:
        quantity = self.quantity if self.quantity is not None else 1.0
        return quantity * self.price


class Invoice(_Record):
    mongo_id: Optional[str] = Field(default=None, alias="_id")
    name: Optional[str] = None
    vendor: Optional[str] = None
    file: str = ""
    files: List[str] = Field(default_factory=list)
    items: List[Item] = Field(default_factory=list)
    total_amount: float = Field(default=0.0, alias="totalAmount")
    taxes: List[Tax] = Field(default_factory=list)
    project: Optional[str] = None
    date: str = ""
    creation_date: str = ""
    creator: str = ""
    archived: bool = False

    @property
    def calculated_subtotal(self) -> float:
        return sum(item.line_total for item in self.items)

    @property
    def calculated_taxes(self) -> float:
        return sum(tax.amount for tax in self.taxes)

    @property
    def calculated_total(self) -> float:
        return self.calculated_subtotal + self.calculated_taxes

    @property
    def date_object(self) -> Optional[datetime]:
        return parse_iso_datetime(self.date)

    @property
    def creation_date_object(self) -> Optional[datetime]:
        return parse_iso_datetime(self.creation_date)

    @property
    def display_date(self) -> str:
        """Medium-style date such as ``Jan 10, 2026``."""
        parsed = self.date_object
        if parsed is None:
            return "N/A"
        return f"{parsed:%b} {parsed.day}, {parsed.year}"


class UploadedImage(_Record):
    mongo_id: str = Field(..., alias="_id")
    name: str
    type: str
    key: str
    url: Optional[str] = None


class TextExtractResponse(BaseModel):
    invoice: Invoice
    message: str = ""


__all__ = [
    "Invoice",
    "Item",
    "Tax",
    "TextExtractResponse",
    "UploadedImage",
    "parse_iso_datetime",
]

"""
Tests for scanner.models records.
"""
from datetime import timezone

from scanner.models import Invoice, Item, Tax, UploadedImage, parse_iso_datetime


class TestInvoice:
    def test_parses_wire_names(self, invoice_body):
        invoice = Invoice.model_validate(invoice_body)

        assert invoice.mongo_id == "inv-1"
        assert invoice.total_amount == 21.48
        assert invoice.taxes[0].tax_name == "GST"
        assert invoice.items[0].mongo_id == "item-1"

    def test_to_wire_uses_aliases(self, invoice_body):
        wire = Invoice.model_validate(invoice_body).to_wire()

        assert wire["_id"] == "inv-1"
        assert wire["totalAmount"] == 21.48
        assert wire["taxes"] == [{"taxName": "GST", "amount": 1.5}]
        assert "mongo_id" not in wire

    def test_calculated_totals(self):
        invoice = Invoice(
            items=[Item(name="a", price=2.5, quantity=2), Item(name="b", price=1.0)],
            taxes=[Tax(tax_name="GST", amount=0.5)],
        )

        assert invoice.calculated_subtotal == 6.0
        assert invoice.calculated_taxes == 0.5
        assert invoice.calculated_total == 6.5

    def test_display_date(self, invoice_body):
        assert Invoice.model_validate(invoice_body).display_date == "Jan 10, 2026"

    def test_display_date_missing(self):
        assert Invoice(date="soon").display_date == "N/A"

    def test_creation_date_without_fraction(self, invoice_body):
        created = Invoice.model_validate(invoice_body).creation_date_object

        assert created is not None
        assert created.hour == 12
        assert created.tzinfo is not None


class TestParseIsoDatetime:
    def test_fractional_seconds(self):
        parsed = parse_iso_datetime("2026-02-02T08:30:00.250Z")

        assert parsed.utcoffset() == timezone.utc.utcoffset(None)
        assert parsed.microsecond == 250000

    def test_empty(self):
        assert parse_iso_datetime("") is None
        assert parse_iso_datetime(None) is None


class TestUploadedImage:
    def test_from_json(self):
        uploaded = UploadedImage.model_validate_json(
            '{"_id": "f1", "name": "x.jpeg", "type": "image/jpeg", "key": "k1"}'
        )

        assert uploaded.mongo_id == "f1"
        assert uploaded.key == "k1"
        assert uploaded.url is None

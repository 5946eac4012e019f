"""Tests for CSV/JSON order exports and the HTML invoice."""

import csv
import io
import json

import pytest

from storefront.core.config import AppConfig
from storefront.services.orders.exporter import ExportOptions, export_filename, export_order, export_orders
from storefront.services.orders.invoice import InvoiceOptions, generate_invoice_html


def _rows(text):
    return list(csv.reader(io.StringIO(text)))


class TestExportOptions:
    def test_from_query_ignores_unknown_and_none(self):
        options = ExportOptions.from_query({"format": "json", "include_items": False, "page": 2, "date_format": None})

        assert options.format == "json"
        assert options.include_items is False
        assert options.date_format == "%Y-%m-%d %H:%M:%S"

    def test_unsupported_format(self, order_factory):
        with pytest.raises(ValueError):
            export_orders([order_factory()], ExportOptions(format="xlsx"))


class TestExportOrders:
    def test_one_row_per_item(self, order_factory):
        order = order_factory()
        order["items"].append(dict(order["items"][0], id="second", sku="LOCK-002"))

        rows = _rows(export_orders([order, order_factory(items=[])]))

        assert rows[0][:2] == ["Order ID", "Order Number"]
        assert len(rows) == 1 + 2 + 1
        assert rows[1][rows[0].index("Total")] == "32.39"
        assert rows[1][rows[0].index("Shipping Name")] == "Alice Example"
        assert rows[2][rows[0].index("SKU")] == "LOCK-002"
        assert rows[3][rows[0].index("SKU")] == ""

    def test_without_items_one_row_per_order(self, order_factory):
        options = ExportOptions(include_items=False, include_addresses=False, include_payment_info=False)
        rows = _rows(export_orders([order_factory(), order_factory()], options))

        assert len(rows) == 3
        assert "SKU" not in rows[0]
        assert rows[1][rows[0].index("Created Date")] == "2026-01-15 10:30:00"

    def test_payment_columns(self, order_factory):
        rows = _rows(export_orders([order_factory()], ExportOptions(include_items=False)))

        assert rows[1][rows[0].index("Payment Method ID")] == "pm_456"

    def test_json(self, order_factory):
        options = ExportOptions(format="json", include_addresses=False, include_status_history=True)
        data = json.loads(export_orders([order_factory()], options))

        assert data[0]["order_number"] == "NO-20260115-AB12"
        assert "shipping_address" not in data[0]
        assert data[0]["payment_info"]["payment_intent_id"] == "pi_123"
        assert data[0]["status_history"][0]["status"] == "pending"


class TestExportSingleOrder:
    def test_sectioned_csv(self, order_factory):
        text = export_order(order_factory(), ExportOptions(include_status_history=True))
        first_cells = [row[0] for row in _rows(text) if row]

        for section in ("SHIPPING ADDRESS", "BILLING ADDRESS", "PAYMENT INFORMATION", "ORDER ITEMS", "STATUS HISTORY"):
            assert section in first_cells

    def test_missing_billing_address(self, order_factory):
        text = export_order(order_factory(billing_address=None))
        assert "No billing address provided" in text

    def test_filename(self):
        assert export_filename(ExportOptions(format="json"), "NO-20260115-AB12") == "order-NO-20260115-AB12.json"
        assert export_filename(ExportOptions()).startswith("orders-")


class TestInvoice:
    def setup_method(self):
        self.company = AppConfig(company_name="Notalock", company_email="orders@notalock.com",
                                 company_tax_id="TAX-99")

    def test_renders_order(self, order_factory):
        html = generate_invoice_html(order_factory(), self.company)

        assert "NO-20260115-AB12" in html
        assert "Single Cylinder Deadbolt" in html
        assert "$32.39" in html
        assert "January 15, 2026" in html
        assert "TAX-99" in html

    def test_dates_in_store_timezone(self, order_factory):
        order = order_factory(created_at="2026-01-15T02:00:00+00:00", updated_at="2026-01-15T02:00:00+00:00")

        assert "January 15, 2026" in generate_invoice_html(order, self.company)
        html = generate_invoice_html(order, self.company, timezone_name="US/Eastern")
        assert "January 14, 2026" in html
        assert "January 15, 2026" not in html

    def test_escapes_customer_text(self, order_factory):
        html = generate_invoice_html(order_factory(notes="<script>alert(1)</script>"), self.company)

        assert "<script>" not in html
        assert "&lt;script&gt;" in html

    def test_options_hide_sections(self, order_factory):
        options = InvoiceOptions(include_tax_id=False, include_order_notes=False)
        html = generate_invoice_html(order_factory(notes="fragile"), self.company, options)

        assert "TAX-99" not in html
        assert "fragile" not in html

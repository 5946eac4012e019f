import csv
import io
import json
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from storefront.utils.date_utils import DateUtils
from storefront.utils.formatting import FormattingUtils

EXPORT_FORMATS = ("csv", "json")

ORDER_COLUMNS = [
    "Order ID", "Order Number", "Customer Email", "Status", "Payment Status",
    "Subtotal", "Shipping", "Tax", "Total", "Created Date",
]
ADDRESS_COLUMNS = ["Name", "Address", "City", "State", "Postal Code", "Country"]
PAYMENT_COLUMNS = ["Payment Intent ID", "Payment Method ID", "Payment Provider"]
ITEM_COLUMNS = ["Item ID", "Product ID", "SKU", "Name", "Quantity", "Unit Price", "Total Price"]


@dataclass
class ExportOptions:
    format: str = "csv"
    include_items: bool = True
    include_addresses: bool = True
    include_payment_info: bool = True
    include_status_history: bool = False
    date_format: str = "%Y-%m-%d %H:%M:%S"

    @classmethod
    def from_query(cls, query: Dict[str, Any]) -> "ExportOptions":
        known = {k: query[k] for k in cls.__dataclass_fields__ if k in query and query[k] is not None}
        return cls(**known)


def _money(cents: Optional[int]) -> str:
    return str(FormattingUtils.cents_to_decimal(cents or 0))


def _date(value: Optional[str], date_format: str) -> str:
    if not value:
        return ""
    return DateUtils.parse(value).strftime(date_format)


def _payment_method_id(order: Dict[str, Any]) -> Optional[str]:
    return (order.get("metadata") or {}).get("payment_method_id")


def _address_cells(address: Optional[Dict[str, Any]]) -> List[str]:
    if not address:
        return [""] * len(ADDRESS_COLUMNS)
    street = address.get("address1") or ""
    if address.get("address2"):
        street = f"{street}, {address['address2']}"
    return [
        FormattingUtils.format_name(address.get("first_name"), address.get("last_name")),
        street,
        address.get("city") or "",
        address.get("state") or "",
        address.get("postal_code") or "",
        address.get("country") or "",
    ]


def _order_cells(order: Dict[str, Any], options: ExportOptions) -> List[Any]:
    return [
        order["id"],
        order["order_number"],
        order["email"],
        order["status"],
        order["payment_status"],
        _money(order.get("subtotal_cents")),
        _money(order.get("shipping_cents")),
        _money(order.get("tax_cents")),
        _money(order.get("total_cents")),
        _date(order.get("created_at"), options.date_format),
    ]


def _item_cells(item: Dict[str, Any]) -> List[Any]:
    return [
        item["id"],
        item["product_id"],
        item.get("sku") or "",
        item.get("name") or "",
        item["quantity"],
        _money(item.get("unit_price_cents")),
        _money(item.get("total_price_cents")),
    ]


# ---------------------------------------------------------------------- #
# JSON                                                                     #
# ---------------------------------------------------------------------- #

def _order_json(order: Dict[str, Any], options: ExportOptions) -> Dict[str, Any]:
    data = {
        "id": order["id"],
        "order_number": order["order_number"],
        "email": order["email"],
        "user_id": order.get("user_id"),
        "status": order["status"],
        "payment_status": order["payment_status"],
        "shipping_method": order.get("shipping_method"),
        "payment_method": order.get("payment_method"),
        "subtotal_cents": order.get("subtotal_cents"),
        "shipping_cents": order.get("shipping_cents"),
        "tax_cents": order.get("tax_cents"),
        "total_cents": order.get("total_cents"),
        "currency": order.get("currency"),
        "created_at": order.get("created_at"),
        "updated_at": order.get("updated_at"),
    }
    if options.include_items:
        data["items"] = order.get("items") or []
    if options.include_addresses:
        data["shipping_address"] = order.get("shipping_address")
        data["billing_address"] = order.get("billing_address")
    if options.include_payment_info:
        data["payment_info"] = {
            "payment_intent_id": order.get("payment_intent_id"),
            "payment_method_id": _payment_method_id(order),
            "payment_provider": order.get("payment_provider"),
        }
    if options.include_status_history:
        data["status_history"] = order.get("status_history") or []
    return data


# ---------------------------------------------------------------------- #
# CSV                                                                      #
# ---------------------------------------------------------------------- #

def _single_order_csv(order: Dict[str, Any], options: ExportOptions) -> str:
    """One order as a sectioned sheet: summary row, then labelled blocks."""
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(ORDER_COLUMNS)
    writer.writerow(_order_cells(order, options))
    writer.writerow([])

    if options.include_addresses:
        for title, key in (("SHIPPING ADDRESS", "shipping_address"), ("BILLING ADDRESS", "billing_address")):
            writer.writerow([title])
            address = order.get(key)
            if not address:
                writer.writerow([f"No {title.lower()} provided"])
            else:
                writer.writerow(["Name", FormattingUtils.format_name(address.get("first_name"), address.get("last_name"))])
                writer.writerow(["Address", address.get("address1") or ""])
                if address.get("address2"):
                    writer.writerow(["Address 2", address["address2"]])
                writer.writerow(["City", address.get("city") or ""])
                writer.writerow(["State", address.get("state") or ""])
                writer.writerow(["Postal Code", address.get("postal_code") or ""])
                writer.writerow(["Country", address.get("country") or ""])
                if address.get("phone"):
                    writer.writerow(["Phone", address["phone"]])
            writer.writerow([])

    method_id = _payment_method_id(order)
    if options.include_payment_info and (order.get("payment_intent_id") or method_id):
        writer.writerow(["PAYMENT INFORMATION"])
        if order.get("payment_intent_id"):
            writer.writerow(["Payment Intent ID", order["payment_intent_id"]])
        if method_id:
            writer.writerow(["Payment Method ID", method_id])
        if order.get("payment_provider"):
            writer.writerow(["Payment Provider", order["payment_provider"]])
        writer.writerow([])

    if options.include_items and order.get("items"):
        writer.writerow(["ORDER ITEMS"])
        writer.writerow(ITEM_COLUMNS)
        for item in order["items"]:
            writer.writerow(_item_cells(item))
        writer.writerow([])

    if options.include_status_history and order.get("status_history"):
        writer.writerow(["STATUS HISTORY"])
        writer.writerow(["Date", "Status", "Notes"])
        for entry in order["status_history"]:
            writer.writerow([
                _date(entry.get("created_at"), options.date_format),
                entry["status"],
                entry.get("notes") or "",
            ])

    return buffer.getvalue()


def _orders_csv(orders: List[Dict[str, Any]], options: ExportOptions) -> str:
    """
    Flat table for many orders: one row per line item when items are
    included (order columns repeated), otherwise one row per order.
    """
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")

    header = list(ORDER_COLUMNS)
    if options.include_addresses:
        header += [f"Shipping {c}" for c in ADDRESS_COLUMNS]
        header += [f"Billing {c}" for c in ADDRESS_COLUMNS]
    if options.include_payment_info:
        header += PAYMENT_COLUMNS
    if options.include_items:
        header += ITEM_COLUMNS
    writer.writerow(header)

    for order in orders:
        row = _order_cells(order, options)
        if options.include_addresses:
            row += _address_cells(order.get("shipping_address"))
            row += _address_cells(order.get("billing_address"))
        if options.include_payment_info:
            row += [
                order.get("payment_intent_id") or "",
                _payment_method_id(order) or "",
                order.get("payment_provider") or "",
            ]

        items = order.get("items") or []
        if not options.include_items:
            writer.writerow(row)
        elif not items:
            writer.writerow(row + [""] * len(ITEM_COLUMNS))
        else:
            for item in items:
                writer.writerow(row + _item_cells(item))

    return buffer.getvalue()


# ---------------------------------------------------------------------- #
# Public API                                                               #
# ---------------------------------------------------------------------- #

def _check_format(options: ExportOptions) -> None:
    if options.format not in EXPORT_FORMATS:
        raise ValueError(f"Unsupported export format: {options.format}")


def export_order(order: Dict[str, Any], options: Optional[ExportOptions] = None) -> str:
    options = options or ExportOptions()
    _check_format(options)
    if options.format == "json":
        return json.dumps(_order_json(order, options), indent=2, default=str)
    return _single_order_csv(order, options)


def export_orders(orders: List[Dict[str, Any]], options: Optional[ExportOptions] = None) -> str:
    options = options or ExportOptions()
    _check_format(options)
    if options.format == "json":
        return json.dumps([_order_json(o, options) for o in orders], indent=2, default=str)
    return _orders_csv(orders, options)


def export_filename(options: ExportOptions, order_number: Optional[str] = None) -> str:
    stamp = DateUtils.now_utc().strftime("%Y%m%d")
    base = f"order-{order_number}" if order_number else f"orders-{stamp}"
    return f"{base}.{options.format}"

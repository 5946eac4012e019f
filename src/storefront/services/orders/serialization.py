from typing import Any, Dict

from storefront.models import Order, OrderItem, OrderStatusHistory
from storefront.utils.date_utils import DateUtils


def order_item_to_dict(item: OrderItem) -> Dict[str, Any]:
    return {
        "id": str(item.id),
        "product_id": str(item.product_id),
        "variant_id": str(item.variant_id) if item.variant_id else None,
        "name": item.name,
        "sku": item.sku,
        "quantity": item.quantity,
        "unit_price_cents": item.unit_price_cents,
        "total_price_cents": item.total_price_cents,
        "image_url": item.image_url,
        "options": item.options,
    }


def status_history_to_dict(entry: OrderStatusHistory) -> Dict[str, Any]:
    return {
        "status": entry.status,
        "notes": entry.notes,
        "created_by": str(entry.created_by) if entry.created_by else None,
        "created_at": DateUtils.to_iso_string(entry.created_at),
    }


def order_to_dict(order: Order, include_history: bool = True) -> Dict[str, Any]:
    """
    Plain-data view of an order.

    Search, reports, exports, permissions filtering and notifications all
    work on this shape rather than on ORM rows.
    """
    data = {
        "id": str(order.id),
        "order_number": order.order_number,
        "user_id": str(order.user_id) if order.user_id else None,
        "email": order.email,
        "status": order.status,
        "payment_status": order.payment_status,
        "shipping_address": order.shipping_address,
        "billing_address": order.billing_address,
        "shipping_method": order.shipping_method,
        "payment_method": order.payment_method,
        "payment_provider": order.payment_provider,
        "payment_intent_id": order.payment_intent_id,
        "subtotal_cents": order.subtotal_cents,
        "shipping_cents": order.shipping_cents,
        "tax_cents": order.tax_cents,
        "total_cents": order.total_cents,
        "currency": order.currency,
        "notes": order.notes,
        "metadata": order.metadata_ or {},
        "created_at": DateUtils.to_iso_string(order.created_at),
        "updated_at": DateUtils.to_iso_string(order.updated_at),
        "items": [order_item_to_dict(item) for item in order.items],
    }
    if include_history:
        data["status_history"] = [status_history_to_dict(h) for h in order.status_history]
    return data

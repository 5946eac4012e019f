import logging
from typing import Any, Dict, List, Optional

from storefront.core.exceptions import ValidationError
from storefront.models.order import ORDER_STATUSES, PAYMENT_STATUSES
from storefront.utils.validators import ValidationUtils

logger = logging.getLogger(__name__)

# current status -> statuses it may move to (including staying put)
ORDER_STATUS_TRANSITIONS: Dict[str, List[str]] = {
    "pending": ["pending", "processing", "paid", "cancelled", "failed"],
    "processing": ["processing", "paid", "completed", "cancelled", "failed", "pending"],
    "paid": ["paid", "processing", "completed", "refunded"],
    "completed": ["completed", "refunded", "processing"],
    "cancelled": ["cancelled", "pending"],
    "refunded": ["refunded"],
    "failed": ["failed", "pending", "processing"],
}

PAYMENT_STATUS_TRANSITIONS: Dict[str, List[str]] = {
    "pending": ["processing", "paid", "failed", "cancelled"],
    "processing": ["paid", "failed", "cancelled"],
    "paid": ["refunded"],
    "failed": ["pending", "processing"],
    "refunded": [],
    "cancelled": ["pending"],
}

# Totals may disagree by at most one cent from rounding
TOTAL_TOLERANCE_CENTS = 1


def is_valid_status_transition(current: str, new: str) -> bool:
    return new in ORDER_STATUS_TRANSITIONS.get(current, [])


def is_valid_payment_status_transition(current: str, new: str) -> bool:
    if current == new:
        return True
    return new in PAYMENT_STATUS_TRANSITIONS.get(current, [])


def collect_order_creation_errors(data: Dict[str, Any]) -> Dict[str, List[str]]:
    """Every problem with an order-creation payload, keyed by field."""
    errors: Dict[str, List[str]] = {}

    def add(field: str, message: str) -> None:
        errors.setdefault(field, []).append(message)

    if not data.get("email"):
        add("email", "Email is required")
    elif not ValidationUtils.validate_email(data["email"]):
        add("email", "Email is invalid")

    items = data.get("items") or []
    if not items:
        add("items", "Order must contain at least one item")

    for index, item in enumerate(items):
        field = f"items[{index}]"
        if not item.get("product_id"):
            add(field, "Product is required")
        if (item.get("quantity") or 0) <= 0:
            add(field, "Quantity must be greater than 0")
        if item.get("unit_price_cents") is None or item["unit_price_cents"] < 0:
            add(field, "Price must be greater than or equal to 0")

    for field in ("subtotal_cents", "shipping_cents", "tax_cents", "total_cents"):
        value = data.get(field)
        if value is None:
            add(field, f"{field} is required")
        elif value < 0:
            add(field, f"{field} cannot be negative")

    if not errors:
        expected = data["subtotal_cents"] + data["shipping_cents"] + data["tax_cents"]
        if abs(expected - data["total_cents"]) > TOTAL_TOLERANCE_CENTS:
            add("total_cents", "Total does not equal subtotal + shipping + tax")

    return errors


def validate_order_creation(data: Dict[str, Any]) -> None:
    errors = collect_order_creation_errors(data)
    if errors:
        logger.warning(f"rejected order creation: {errors}")
        raise ValidationError("Invalid order data", errors)


def validate_order_update(
    current_status: str,
    current_payment_status: str,
    status: Optional[str] = None,
    payment_status: Optional[str] = None,
) -> None:
    """
    Reject disallowed status changes.

    Order status and payment status are never changed in one update; the
    webhook path (update_order_from_payment) is the only place both move.
    """
    if status is not None and payment_status is not None:
        raise ValidationError(
            "Cannot update order status and payment status at the same time",
            {"status": ["Update status and payment status separately"]},
        )

    if status is not None:
        if status not in ORDER_STATUSES:
            raise ValidationError(f"Unknown order status: {status}", {"status": ["Invalid choice"]})
        if not is_valid_status_transition(current_status, status):
            raise ValidationError(
                f"Cannot change order status from {current_status} to {status}",
                {"status": [f"Invalid transition from {current_status}"]},
            )

    if payment_status is not None:
        if payment_status not in PAYMENT_STATUSES:
            raise ValidationError(
                f"Unknown payment status: {payment_status}", {"payment_status": ["Invalid choice"]}
            )
        if not is_valid_payment_status_transition(current_payment_status, payment_status):
            raise ValidationError(
                f"Cannot change payment status from {current_payment_status} to {payment_status}",
                {"payment_status": [f"Invalid transition from {current_payment_status}"]},
            )

import copy
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

ORDER_ACTIONS = (
    "view",
    "create",
    "update",
    "delete",
    "updateStatus",
    "updatePayment",
    "export",
    "cancel",
    "refund",
)

CANCELLABLE_STATUSES = ("pending", "processing")
REFUNDABLE_STATUSES = ("paid", "completed")
MASK = "***"


@dataclass
class Guest:
    """A visitor without an account who proved an email (order lookup)."""
    email: str
    id: Optional[str] = None
    role: str = "guest"


def _same_email(a: Optional[str], b: Optional[str]) -> bool:
    return bool(a) and bool(b) and a.strip().lower() == b.strip().lower()


def _owns(user, order: Dict[str, Any]) -> bool:
    return user.id is not None and order.get("user_id") is not None and str(order["user_id"]) == str(user.id)


def can_perform_order_action(user, action: str, order: Optional[Dict[str, Any]] = None) -> bool:
    """
    Whether `user` (CurrentUser, Guest or None) may perform `action` on `order`.

    admin: everything. staff: operational work but no create/delete, no edits
    to closed orders. customer: their own orders only. guest: orders placed
    with their email.
    """
    if user is None:
        return False

    status = (order or {}).get("status")

    if user.role == "admin":
        return True

    if user.role == "staff":
        if action in ("view", "updateStatus", "export"):
            return True
        if action in ("update", "updatePayment"):
            return status not in ("completed", "refunded")
        if action == "cancel":
            return status in CANCELLABLE_STATUSES
        if action == "refund":
            return status in REFUNDABLE_STATUSES
        return False

    if user.role == "customer":
        if user.id is None:
            return False
        if action == "create":
            return order is None or _owns(user, order)
        if order is None or not _owns(user, order):
            return False
        if action == "view":
            return True
        if action == "cancel":
            return status in CANCELLABLE_STATUSES
        return False

    if user.role == "guest":
        if action == "create":
            return True
        if order is None or not _same_email(order.get("email"), user.email):
            return False
        if action == "view":
            return True
        if action == "cancel":
            return status in CANCELLABLE_STATUSES
        return False

    return False


def can_view_order_sensitive_data(user, order: Dict[str, Any]) -> bool:
    if user is None:
        return False
    if user.role in ("admin", "staff"):
        return True
    if user.role == "customer":
        return _owns(user, order)
    if user.role == "guest":
        return _same_email(order.get("email"), user.email)
    return False


def filter_order_sensitive_data(user, order: Dict[str, Any]) -> Dict[str, Any]:
    """
    Copy of `order` safe to show `user`.

    Without access to sensitive data: payment ids and the billing address are
    dropped, and the shipping phone, street line and postal code are masked.
    """
    if can_view_order_sensitive_data(user, order):
        return order

    filtered = copy.deepcopy(order)
    filtered.pop("payment_intent_id", None)
    filtered.pop("billing_address", None)
    metadata = filtered.get("metadata") or {}
    metadata.pop("payment_method_id", None)
    metadata.pop("payment_result", None)

    address = filtered.get("shipping_address")
    if address:
        address["phone"] = MASK
        address["address1"] = MASK
        address["postal_code"] = MASK
        address.pop("address2", None)
    return filtered


def get_accessible_order_actions(user, order: Dict[str, Any]) -> List[str]:
    return [action for action in ORDER_ACTIONS if can_perform_order_action(user, action, order)]

import logging
import secrets
import string
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session, selectinload

from storefront.core.exceptions import ConflictError, ForbiddenError, InsufficientStockError, NotFoundError
from storefront.models import Order, OrderItem, OrderStatusHistory, Product, ProductVariant
from storefront.models.common import utcnow
from storefront.schemas.values import PaymentResult
from storefront.services.orders.notifications import LoggingNotifier, handle_status_change_notifications
from storefront.services.orders.permissions import can_perform_order_action
from storefront.services.orders.serialization import order_to_dict
from storefront.services.orders.validator import (
    is_valid_payment_status_transition,
    is_valid_status_transition,
    validate_order_creation,
    validate_order_update,
)
from storefront.utils.validators import ValidationUtils

logger = logging.getLogger(__name__)

ORDER_NUMBER_ALPHABET = string.ascii_uppercase + string.digits
ORDER_NUMBER_ATTEMPTS = 5

# provider result status -> (order status, payment status)
PAYMENT_RESULT_MAPPING: Dict[str, Tuple[str, str]] = {
    "completed": ("paid", "paid"),
    "paid": ("paid", "paid"),
    "pending": ("processing", "pending"),
    "failed": ("failed", "failed"),
    "refunded": ("refunded", "refunded"),
    "cancelled": ("cancelled", "failed"),
}


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class OrderService:
    """
    Order persistence and lifecycle.

    Business Rules:
    - Orders are validated before they are written and numbered
      NO-YYYYMMDD-XXXX
    - Status and payment status follow fixed transition tables
    - Every order status change is appended to the status history and
      triggers customer notifications; notification failures never block it
    """

    def __init__(self, session: Session, notifier=None):
        self.session = session
        self.notifier = notifier or LoggingNotifier()

    # ------------------------------------------------------------------ #
    # Creation                                                             #
    # ------------------------------------------------------------------ #

    def generate_order_number(self, now: Optional[datetime] = None) -> str:
        """NO-<date>-<4 random [A-Z0-9]>, retried on the (rare) collision."""
        date_part = (now or utcnow()).strftime("%Y%m%d")
        for _ in range(ORDER_NUMBER_ATTEMPTS):
            suffix = "".join(secrets.choice(ORDER_NUMBER_ALPHABET) for _ in range(4))
            candidate = f"NO-{date_part}-{suffix}"
            exists = self.session.scalars(
                select(Order.id).where(Order.order_number == candidate)
            ).first()
            if exists is None:
                return candidate
            logger.warning(f"order number collision on {candidate}, retrying")
        raise ConflictError("Could not allocate a unique order number", conflict_field="order_number")

    def create_order(self, data: Dict[str, Any], created_by: Optional[uuid.UUID] = None) -> Order:
        """
        Validate and persist an order with its line items.

        data carries the customer (email, user_id), addresses, methods,
        amounts in cents and `items` (product_id, variant_id, name, sku,
        quantity, unit_price_cents, image_url, options).
        """
        validate_order_creation(data)

        order = Order(
            order_number=self.generate_order_number(),
            checkout_session_id=data.get("checkout_session_id"),
            cart_id=data.get("cart_id"),
            user_id=data.get("user_id"),
            email=ValidationUtils.normalize_email(data["email"]),
            status="pending",
            payment_status="pending",
            shipping_address=data.get("shipping_address"),
            billing_address=data.get("billing_address"),
            shipping_method=data.get("shipping_method"),
            payment_method=data.get("payment_method"),
            payment_provider=data.get("payment_provider"),
            payment_intent_id=data.get("payment_intent_id"),
            subtotal_cents=data["subtotal_cents"],
            shipping_cents=data["shipping_cents"],
            tax_cents=data["tax_cents"],
            total_cents=data["total_cents"],
            currency=data.get("currency") or "USD",
            notes=data.get("notes"),
            metadata_=data.get("metadata") or {},
        )
        for item in data["items"]:
            order.items.append(OrderItem(
                product_id=ValidationUtils.parse_uuid(item["product_id"]),
                variant_id=ValidationUtils.parse_uuid(item.get("variant_id")),
                name=item.get("name") or "",
                sku=item.get("sku"),
                quantity=item["quantity"],
                unit_price_cents=item["unit_price_cents"],
                total_price_cents=item["unit_price_cents"] * item["quantity"],
                image_url=item.get("image_url"),
                options=item.get("options"),
            ))
        order.status_history.append(
            OrderStatusHistory(status="pending", notes="Order created", created_by=created_by)
        )

        self.session.add(order)
        self.session.flush()
        logger.info(f"created order {order.order_number} ({order.total_cents} cents) for {order.email}")

        handle_status_change_notifications(order_to_dict(order), "pending", None, self.notifier)
        return order

    # ------------------------------------------------------------------ #
    # Queries                                                              #
    # ------------------------------------------------------------------ #

    def _query(self):
        return select(Order).options(selectinload(Order.items), selectinload(Order.status_history))

    def get_order(self, order_id: uuid.UUID) -> Order:
        order = self.session.get(Order, order_id)
        if order is None:
            raise NotFoundError("Order", str(order_id))
        return order

    def get_order_by_number(self, order_number: str) -> Order:
        order = self.session.scalars(
            self._query().where(Order.order_number == order_number.strip().upper())
        ).first()
        if order is None:
            raise NotFoundError("Order", order_number)
        return order

    def get_order_by_payment_intent(self, payment_intent_id: str) -> Optional[Order]:
        return self.session.scalars(
            self._query().where(Order.payment_intent_id == payment_intent_id)
        ).first()

    def find_order_by_reference(self, reference: str) -> Optional[Order]:
        """An order id or an order number, whichever `reference` turns out to be."""
        order_id = ValidationUtils.parse_uuid(reference)
        if order_id is not None:
            return self.session.get(Order, order_id)
        return self.session.scalars(
            self._query().where(Order.order_number == reference.strip().upper())
        ).first()

    def get_user_orders(self, user_id: uuid.UUID) -> List[Order]:
        return list(self.session.scalars(
            self._query().where(Order.user_id == user_id).order_by(Order.created_at.desc())
        ))

    def lookup_guest_order(self, email: str, order_number: str) -> Order:
        """
        Guest order lookup. A wrong email and a wrong number are
        indistinguishable to the caller.
        """
        try:
            order = self.get_order_by_number(order_number)
        except NotFoundError:
            raise NotFoundError("Order", order_number)
        if order.email.lower() != email.strip().lower():
            raise NotFoundError("Order", order_number)
        return order

    def get_orders_between(self, start: datetime, end: datetime) -> List[Order]:
        """Every order created inside [start, end], oldest first. Feeds the reports."""
        return list(self.session.scalars(
            self._query()
            .where(Order.created_at >= start, Order.created_at <= end)
            .order_by(Order.created_at.asc())
        ))

    def list_orders(self, filters: Dict[str, Any]) -> Tuple[List[Order], int]:
        """
        Filtered, sorted page of orders plus the total match count.

        filters: status, payment_status, email, user_id, q (order number or
        email), date_from, date_to, min_total_cents, max_total_cents, sort,
        page, page_size.
        """
        stmt = self._query()

        if filters.get("status"):
            stmt = stmt.where(Order.status == filters["status"])
        if filters.get("payment_status"):
            stmt = stmt.where(Order.payment_status == filters["payment_status"])
        if filters.get("email"):
            stmt = stmt.where(func.lower(Order.email) == filters["email"].strip().lower())
        if filters.get("user_id"):
            stmt = stmt.where(Order.user_id == filters["user_id"])
        if filters.get("q"):
            pattern = f"%{_escape_like(filters['q'].strip())}%"
            stmt = stmt.where(or_(
                Order.order_number.ilike(pattern, escape="\\"),
                Order.email.ilike(pattern, escape="\\"),
            ))
        if filters.get("date_from"):
            stmt = stmt.where(Order.created_at >= filters["date_from"])
        if filters.get("date_to"):
            stmt = stmt.where(Order.created_at <= filters["date_to"])
        if filters.get("min_total_cents") is not None:
            stmt = stmt.where(Order.total_cents >= filters["min_total_cents"])
        if filters.get("max_total_cents") is not None:
            stmt = stmt.where(Order.total_cents <= filters["max_total_cents"])

        total = self.session.scalar(select(func.count()).select_from(stmt.subquery()))

        order_by = {
            "newest": Order.created_at.desc(),
            "oldest": Order.created_at.asc(),
            "total_desc": Order.total_cents.desc(),
            "total_asc": Order.total_cents.asc(),
        }[filters.get("sort") or "newest"]

        page = filters.get("page", 1)
        page_size = filters.get("page_size", 20)
        orders = list(self.session.scalars(
            stmt.order_by(order_by, Order.order_number).offset((page - 1) * page_size).limit(page_size)
        ))
        return orders, total or 0

    # ------------------------------------------------------------------ #
    # Updates                                                              #
    # ------------------------------------------------------------------ #

    def _record_status_change(self, order: Order, old_status: str, notes: Optional[str],
                              updated_by: Optional[uuid.UUID]) -> None:
        # Stock is held by every order that isn't cancelled
        if order.status == "cancelled":
            self._release_stock(order)
        elif old_status == "cancelled":
            self._reserve_stock(order)

        order.status_history.append(
            OrderStatusHistory(status=order.status, notes=notes, created_by=updated_by)
        )
        self.session.flush()
        logger.info(f"order {order.order_number}: {old_status} -> {order.status}")
        handle_status_change_notifications(order_to_dict(order), order.status, old_status, self.notifier)

    def update_order(self, order_id: uuid.UUID, update: Dict[str, Any],
                     updated_by: Optional[uuid.UUID] = None) -> Order:
        """
        Apply an admin/staff update: status or payment_status (not both),
        plus notes, payment_intent_id and metadata.
        """
        order = self.get_order(order_id)
        status = update.get("status")
        payment_status = update.get("payment_status")
        validate_order_update(order.status, order.payment_status, status, payment_status)

        old_status = order.status
        if "notes" in update and update["notes"] is not None and status is None:
            order.notes = update["notes"]
        if update.get("payment_intent_id"):
            order.payment_intent_id = update["payment_intent_id"]
        if update.get("metadata"):
            extra = {k: v for k, v in update["metadata"].items() if k != "stock_released"}
            order.metadata_ = {**(order.metadata_ or {}), **extra}

        if payment_status is not None and payment_status != order.payment_status:
            logger.info(f"order {order.order_number}: payment {order.payment_status} -> {payment_status}")
            order.payment_status = payment_status

        order.updated_at = utcnow()
        if status is not None and status != old_status:
            order.status = status
            self._record_status_change(order, old_status, update.get("notes"), updated_by)
        else:
            self.session.flush()
        return order

    def update_order_status(self, order_id: uuid.UUID, status: str, notes: Optional[str] = None,
                            updated_by: Optional[uuid.UUID] = None) -> Order:
        return self.update_order(order_id, {"status": status, "notes": notes}, updated_by)

    def update_payment_status(self, order_id: uuid.UUID, payment_status: str,
                              notes: Optional[str] = None,
                              updated_by: Optional[uuid.UUID] = None) -> Order:
        return self.update_order(order_id, {"payment_status": payment_status, "notes": notes}, updated_by)

    def update_order_from_payment(self, order_id: uuid.UUID, result: PaymentResult) -> Order:
        """
        Apply a payment provider result to an order.

        The provider status maps to an (order status, payment status) pair.
        A pair the transition tables don't allow from the current state is
        logged and only recorded in metadata; replays of the same result are
        no-ops.
        """
        order = self.get_order(order_id)
        new_status, new_payment_status = PAYMENT_RESULT_MAPPING[result.status]

        if result.transaction_id and not order.payment_intent_id:
            order.payment_intent_id = result.transaction_id

        order.metadata_ = {
            **(order.metadata_ or {}),
            "payment_result": {
                "status": result.status,
                "transaction_id": result.transaction_id,
                "provider": result.provider,
                "amount_cents": result.amount_cents,
                "error_code": result.error_code,
                "error_message": result.error_message,
                "received_at": utcnow().isoformat(),
                **result.metadata,
            },
        }
        order.payment_provider = result.provider
        order.updated_at = utcnow()

        allowed = (
            is_valid_status_transition(order.status, new_status)
            and is_valid_payment_status_transition(order.payment_status, new_payment_status)
        )
        if not allowed:
            logger.warning(
                f"order {order.order_number}: ignoring payment result {result.status} "
                f"in state {order.status}/{order.payment_status}"
            )
            self.session.flush()
            return order

        old_status = order.status
        order.payment_status = new_payment_status
        if new_status != old_status:
            order.status = new_status
            note = f"Payment {result.status} via {result.provider}"
            if result.error_message:
                note += f": {result.error_message}"
            self._record_status_change(order, old_status, note, None)
        else:
            self.session.flush()
        return order

    def _stock_rows(self, order: Order):
        """(item, product or variant row) per line item, locked in a stable order."""
        for item in sorted(order.items, key=lambda i: (str(i.product_id), str(i.variant_id or ""))):
            if item.variant_id:
                stmt = select(ProductVariant).where(ProductVariant.id == item.variant_id)
            else:
                stmt = select(Product).where(Product.id == item.product_id)
            row = self.session.scalars(stmt.with_for_update()).first()
            if row is not None:
                yield item, row

    def _release_stock(self, order: Order) -> None:
        if (order.metadata_ or {}).get("stock_released"):
            return
        for item, row in self._stock_rows(order):
            row.stock += item.quantity
        order.metadata_ = {**(order.metadata_ or {}), "stock_released": True}
        logger.info(f"order {order.order_number}: stock released")

    def _reserve_stock(self, order: Order) -> None:
        if not (order.metadata_ or {}).get("stock_released"):
            return
        for item, row in self._stock_rows(order):
            if row.stock < item.quantity:
                raise InsufficientStockError(
                    f"Cannot reopen order: only {row.stock} of {item.name} left in stock",
                    available=row.stock,
                    requested=item.quantity,
                )
            row.stock -= item.quantity
        order.metadata_ = {**(order.metadata_ or {}), "stock_released": False}
        logger.info(f"order {order.order_number}: stock taken again")

    def cancel_order(self, order_id: uuid.UUID, user, reason: Optional[str] = None) -> Order:
        """
        Cancel on behalf of `user` (a CurrentUser, or a Guest carrying the
        email the order was placed with). Stock goes back on the shelf.
        """
        order = self.get_order(order_id)
        if not can_perform_order_action(user, "cancel", order_to_dict(order, include_history=False)):
            raise ForbiddenError("You cannot cancel this order")

        updated_by = getattr(user, "id", None)
        return self.update_order_status(order.id, "cancelled", reason or "Cancelled by customer", updated_by)

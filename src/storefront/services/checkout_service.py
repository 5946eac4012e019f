import logging
import uuid
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.orm import Session

from storefront.core.config import Config
from storefront.core.exceptions import BusinessLogicError, InsufficientStockError, NotFoundError, ValidationError
from storefront.models import Cart, CheckoutSession, Order, Product, ProductVariant
from storefront.models.checkout import CHECKOUT_STEPS
from storefront.models.common import utcnow
from storefront.schemas.values import Address, PaymentInfo, ShippingOption
from storefront.services.cart_service import CartLine, cart_line_from_row, validate_cart_for_checkout
from storefront.services.orders.service import OrderService
from storefront.utils.date_utils import DateUtils
from storefront.utils.validators import ValidationUtils

logger = logging.getLogger(__name__)

SHIPPING_OPTIONS: Dict[str, ShippingOption] = {
    "standard": ShippingOption(
        id="shipping-standard",
        method="standard",
        name="Standard Shipping",
        description="Delivery in 5-7 business days",
        price_cents=999,
        estimated_days="5-7 business days",
    ),
    "express": ShippingOption(
        id="shipping-express",
        method="express",
        name="Express Shipping",
        description="Delivery in 2-3 business days",
        price_cents=1999,
        estimated_days="2-3 business days",
    ),
    "overnight": ShippingOption(
        id="shipping-overnight",
        method="overnight",
        name="Overnight Shipping",
        description="Next business day delivery",
        price_cents=2999,
        estimated_days="Next business day",
    ),
}


def calculate_totals(subtotal_cents: int, shipping_cents: int, tax_rate: Decimal) -> Tuple[int, int]:
    """
    Tax and grand total in cents.

    Tax applies to subtotal plus shipping and is rounded half up to the cent.
    """
    taxable = Decimal(subtotal_cents + shipping_cents)
    tax_cents = int((taxable * tax_rate).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    return tax_cents, subtotal_cents + shipping_cents + tax_cents


def step_index(step: str) -> int:
    return CHECKOUT_STEPS.index(step)


def session_to_dict(cs: CheckoutSession) -> Dict[str, Any]:
    return {
        "id": str(cs.id),
        "cart_id": str(cs.cart_id),
        "user_id": str(cs.user_id) if cs.user_id else None,
        "guest_email": cs.guest_email,
        "current_step": cs.current_step,
        "shipping_address": cs.shipping_address,
        "billing_address": cs.billing_address,
        "shipping_method": cs.shipping_method,
        "shipping_option": cs.shipping_option,
        "payment_method": cs.payment_method,
        "payment_info": cs.payment_info,
        "subtotal_cents": cs.subtotal_cents,
        "shipping_cents": cs.shipping_cents,
        "tax_cents": cs.tax_cents,
        "total_cents": cs.total_cents,
        "updated_at": DateUtils.to_iso_string(cs.updated_at),
    }


class CheckoutService:
    """
    Multi-step checkout: information -> shipping -> payment -> review ->
    confirmation.

    Business Rules:
    - One open session per cart; re-entering checkout resumes it
    - Each step requires the data of the previous one
    - Totals are recomputed from the cart and the chosen shipping option,
      never accepted from the client
    - Placing an order is a single transaction: stock is locked and
      decremented, the order is written and the cart is closed together
    """

    def __init__(self, session: Session, config: Config):
        self.session = session
        self.config = config
        self.tax_rate = config.checkout.tax_rate

    def _cart_lines(self, cart: Cart) -> List[CartLine]:
        return validate_cart_for_checkout([cart_line_from_row(item) for item in cart.items])

    def _get_cart(self, cart_id: uuid.UUID) -> Cart:
        cart = self.session.get(Cart, cart_id)
        if cart is None:
            raise NotFoundError("Cart", str(cart_id))
        return cart

    def _recalculate(self, cs: CheckoutSession, subtotal_cents: Optional[int] = None) -> None:
        if subtotal_cents is not None:
            cs.subtotal_cents = subtotal_cents
        if cs.shipping_method:
            cs.shipping_cents = SHIPPING_OPTIONS[cs.shipping_method].price_cents
            cs.tax_cents, cs.total_cents = calculate_totals(
                cs.subtotal_cents, cs.shipping_cents, self.tax_rate
            )
        else:
            cs.shipping_cents = 0
            cs.tax_cents = 0
            cs.total_cents = cs.subtotal_cents

    def get_shipping_options(self) -> List[ShippingOption]:
        return list(SHIPPING_OPTIONS.values())

    def get_or_create_session(self, cart_id: uuid.UUID, user_id: Optional[uuid.UUID] = None) -> CheckoutSession:
        """
        Resume the newest open session for the cart or start a new one.

        Resuming resynchronises the subtotal with the cart, since items may
        have changed since the session was last touched.
        """
        cart = self._get_cart(cart_id)
        lines = self._cart_lines(cart)
        if not lines:
            raise BusinessLogicError("Your cart is empty", rule="cart_not_empty")
        subtotal = sum(line.subtotal_cents for line in lines)
        # Any later cart read reactivates it with the same id
        if cart.status == "active":
            cart.status = "checkout"
            cart.updated_at = utcnow()

        cs = self.session.scalars(
            select(CheckoutSession)
            .where(CheckoutSession.cart_id == cart.id, CheckoutSession.current_step != "confirmation")
            .order_by(CheckoutSession.updated_at.desc())
            .limit(1)
        ).first()

        if cs is not None:
            if cs.subtotal_cents != subtotal:
                logger.info(f"checkout {cs.id}: subtotal resynced {cs.subtotal_cents} -> {subtotal}")
            self._recalculate(cs, subtotal)
            if user_id and cs.user_id is None:
                cs.user_id = user_id
            cs.updated_at = utcnow()
            self.session.flush()
            return cs

        cs = CheckoutSession(cart_id=cart.id, user_id=user_id, current_step="information")
        self._recalculate(cs, subtotal)
        self.session.add(cs)
        self.session.flush()
        logger.info(f"started checkout {cs.id} for cart {cart.id}")
        return cs

    def get_session(self, session_id: uuid.UUID) -> CheckoutSession:
        cs = self.session.get(CheckoutSession, session_id)
        if cs is None:
            raise NotFoundError("Checkout session", str(session_id))
        return cs

    def get_session_for(self, session_id: uuid.UUID, cart_id: Optional[uuid.UUID],
                        user_id: Optional[uuid.UUID] = None) -> CheckoutSession:
        """get_session() restricted to the caller's cart or user; others look missing."""
        cs = self.get_session(session_id)
        owns = (cart_id is not None and cs.cart_id == cart_id) or (
            user_id is not None and cs.user_id == user_id
        )
        if not owns:
            raise NotFoundError("Checkout session", str(session_id))
        return cs

    def _open_session(self, session_id: uuid.UUID) -> CheckoutSession:
        cs = self.get_session(session_id)
        if cs.current_step == "confirmation":
            raise BusinessLogicError("This checkout is already complete", rule="checkout_complete")
        return cs

    def update_shipping_address(
        self,
        session_id: uuid.UUID,
        address: Address,
        email: Optional[str] = None,
    ) -> CheckoutSession:
        """
        Store the shipping address and move to the shipping step.

        Guests must supply a valid email (directly or on the address); it is
        where the confirmation goes and how they look the order up later.
        """
        cs = self._open_session(session_id)

        contact = email or address.email
        if cs.user_id is None:
            if not ValidationUtils.validate_email(contact):
                raise ValidationError("A valid email is required for guest checkout",
                                      {"email": ["Invalid email address"]})
            cs.guest_email = ValidationUtils.normalize_email(contact)
        elif contact:
            cs.guest_email = ValidationUtils.normalize_email(contact)

        cs.shipping_address = address.model_dump()
        cs.current_step = "shipping"
        cs.updated_at = utcnow()
        self.session.flush()
        return cs

    def update_shipping_method(self, session_id: uuid.UUID, method: str) -> CheckoutSession:
        cs = self._open_session(session_id)
        if not cs.shipping_address:
            raise BusinessLogicError("Enter a shipping address first", rule="shipping_address_required")

        option = SHIPPING_OPTIONS.get(method)
        if option is None:
            raise ValidationError(f"Unknown shipping method: {method}", {"method": ["Invalid choice"]})

        cs.shipping_method = option.method
        cs.shipping_option = option.model_dump()
        self._recalculate(cs)
        cs.current_step = "payment"
        cs.updated_at = utcnow()
        self.session.flush()
        return cs

    def update_payment_info(self, session_id: uuid.UUID, payment_info: PaymentInfo) -> CheckoutSession:
        """
        Store the payment summary and move to review.

        With billing_same_as_shipping the billing address is a copy of the
        shipping address.
        """
        cs = self._open_session(session_id)
        if not cs.shipping_method:
            raise BusinessLogicError("Choose a shipping method first", rule="shipping_method_required")

        if payment_info.billing_same_as_shipping:
            cs.billing_address = dict(cs.shipping_address)
        else:
            cs.billing_address = payment_info.billing_address.model_dump()

        cs.payment_method = payment_info.type
        cs.payment_info = payment_info.model_dump(exclude={"billing_address"})
        cs.current_step = "review"
        cs.updated_at = utcnow()
        self.session.flush()
        return cs

    def go_to_step(self, session_id: uuid.UUID, step: str) -> CheckoutSession:
        """Navigate back to a step already reached. Forward jumps are rejected."""
        cs = self._open_session(session_id)
        if step not in CHECKOUT_STEPS or step == "confirmation":
            raise ValidationError(f"Invalid step: {step}", {"step": ["Invalid choice"]})
        if step_index(step) > step_index(cs.current_step):
            raise BusinessLogicError(
                f"Complete the {cs.current_step} step first", rule="step_order"
            )
        cs.current_step = step
        cs.updated_at = utcnow()
        self.session.flush()
        return cs

    def _lock_and_decrement_stock(self, lines: List[CartLine]) -> None:
        """
        Lock each product/variant row, check stock, decrement it.

        Rows are locked in a stable order so concurrent checkouts can't
        deadlock on each other.
        """
        for line in sorted(lines, key=lambda l: (l.product_id, l.variant_id or "")):
            if line.variant_id:
                row = self.session.scalars(
                    select(ProductVariant)
                    .where(ProductVariant.id == uuid.UUID(line.variant_id))
                    .with_for_update()
                ).first()
            else:
                row = self.session.scalars(
                    select(Product).where(Product.id == uuid.UUID(line.product_id)).with_for_update()
                ).first()

            if row is None or not row.is_active:
                raise BusinessLogicError(f"{line.name} is no longer available", rule="product_unavailable")
            if row.stock < line.quantity:
                raise InsufficientStockError(
                    f"Insufficient stock for {line.name}. Available: {row.stock}, requested: {line.quantity}.",
                    available=row.stock,
                    requested=line.quantity,
                )
            row.stock -= line.quantity

    def place_order(self, session_id: uuid.UUID, user_email: Optional[str] = None,
                    order_service: Optional[OrderService] = None) -> Order:
        """
        Turn a reviewed checkout into an order.

        Business Rules:
        - The session must be at the review step
        - Totals are recomputed from the cart at this moment
        - Stock is checked and decremented under row locks
        - On success the session moves to confirmation, the cart is marked
          completed and emptied
        """
        cs = self._open_session(session_id)
        if cs.current_step != "review":
            raise BusinessLogicError("Review your order before placing it", rule="review_required")

        cart = self._get_cart(cs.cart_id)
        lines = self._cart_lines(cart)
        if not lines:
            raise BusinessLogicError("Your cart is empty", rule="cart_not_empty")

        self._lock_and_decrement_stock(lines)
        self._recalculate(cs, sum(line.subtotal_cents for line in lines))

        email = cs.guest_email or user_email or (cs.shipping_address or {}).get("email")
        order_service = order_service or OrderService(self.session)
        order = order_service.create_order({
            "email": email,
            "user_id": cs.user_id,
            "cart_id": cart.id,
            "checkout_session_id": cs.id,
            "shipping_address": cs.shipping_address,
            "billing_address": cs.billing_address,
            "shipping_method": cs.shipping_method,
            "payment_method": cs.payment_method,
            "payment_provider": self.config.payment.provider,
            "payment_intent_id": None,
            "subtotal_cents": cs.subtotal_cents,
            "shipping_cents": cs.shipping_cents,
            "tax_cents": cs.tax_cents,
            "total_cents": cs.total_cents,
            "currency": self.config.checkout.currency,
            "metadata": {"payment_method_id": (cs.payment_info or {}).get("payment_method_id")},
            "items": [
                {
                    "product_id": line.product_id,
                    "variant_id": line.variant_id,
                    "name": line.name,
                    "sku": line.sku,
                    "quantity": line.quantity,
                    "unit_price_cents": line.price_cents,
                    "image_url": line.image_url,
                }
                for line in lines
            ],
        })

        cs.current_step = "confirmation"
        cs.updated_at = utcnow()
        cart.status = "completed"
        cart.items.clear()
        self.session.flush()
        logger.info(f"checkout {cs.id} placed order {order.order_number}")
        return order

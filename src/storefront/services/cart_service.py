import logging
import uuid
from dataclasses import dataclass, field, replace
from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from storefront.core.exceptions import BusinessLogicError, InsufficientStockError, NotFoundError, ValidationError
from storefront.models import Cart, CartItem, Product, ProductVariant
from storefront.models.common import utcnow

logger = logging.getLogger(__name__)

REACTIVATABLE_STATUSES = ("abandoned", "checkout")
MERGEABLE_STATUSES = ("active", "checkout")


@dataclass
class CartLine:
    """One cart row joined with the catalog data needed to display and price it"""
    id: Optional[str]
    product_id: str
    variant_id: Optional[str]
    quantity: int
    price_cents: int
    name: str = ""
    sku: Optional[str] = None
    image_url: Optional[str] = None
    available_stock: Optional[int] = None
    is_available: bool = True

    @property
    def subtotal_cents(self) -> int:
        return self.price_cents * self.quantity

    @property
    def price_dollars(self) -> Decimal:
        return Decimal(self.price_cents) / 100

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "variant_id": self.variant_id,
            "name": self.name,
            "sku": self.sku,
            "image_url": self.image_url,
            "quantity": self.quantity,
            "price_cents": self.price_cents,
            "price_dollars": str(self.price_dollars),
            "subtotal_cents": self.subtotal_cents,
            "available_stock": self.available_stock,
            "is_available": self.is_available,
        }


@dataclass
class CartView:
    """Read model for a cart; what the cart endpoints return"""
    id: Optional[str]
    status: str = "active"
    items: List[CartLine] = field(default_factory=list)

    @classmethod
    def empty(cls) -> "CartView":
        return cls(id=None)

    @property
    def item_count(self) -> int:
        return len(self.items)

    @property
    def total_quantity(self) -> int:
        return sum(item.quantity for item in self.items)

    @property
    def subtotal_cents(self) -> int:
        return sum(item.subtotal_cents for item in self.items)

    @property
    def is_empty(self) -> bool:
        return not self.items

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "status": self.status,
            "item_count": self.item_count,
            "total_quantity": self.total_quantity,
            "subtotal_cents": self.subtotal_cents,
            "subtotal_dollars": str(Decimal(self.subtotal_cents) / 100),
            "is_empty": self.is_empty,
            "items": [item.to_dict() for item in self.items],
        }


def consolidate_cart_items(items: Sequence[CartLine]) -> List[CartLine]:
    """
    Merge lines that share a product and variant, summing quantities.

    The first line of each group keeps its id and price; order of first
    appearance is preserved.
    """
    merged: Dict[tuple, CartLine] = {}
    for item in items:
        key = (item.product_id, item.variant_id)
        if key in merged:
            merged[key] = replace(merged[key], quantity=merged[key].quantity + item.quantity)
        else:
            merged[key] = replace(item)
    return list(merged.values())


def validate_cart_for_checkout(items: Sequence[CartLine]) -> List[CartLine]:
    """Drop lines with no product or a non-positive quantity, then consolidate."""
    valid = [item for item in items if item.product_id and item.quantity > 0]
    dropped = len(items) - len(valid)
    if dropped:
        logger.warning(f"dropped {dropped} invalid cart line(s) before checkout")
    return consolidate_cart_items(valid)


def cart_line_from_row(item: CartItem) -> CartLine:
    product = item.product
    variant = item.variant
    if variant is not None:
        stock = variant.stock
        available = product.is_active and variant.is_active
        name = f"{product.name} - {variant.name}" if variant.name else product.name
        sku = variant.sku
    else:
        stock = product.stock
        available = product.is_active
        name = product.name
        sku = product.sku
    return CartLine(
        id=str(item.id),
        product_id=str(item.product_id),
        variant_id=str(item.variant_id) if item.variant_id else None,
        quantity=item.quantity,
        price_cents=item.price_cents,
        name=name,
        sku=sku,
        image_url=product.image_url,
        available_stock=stock,
        is_available=available and stock >= item.quantity,
    )


class CartService:
    """
    Shopping cart business logic.

    A service instance is bound to one owner: a signed-in user (user_id) or an
    anonymous visitor (anonymous_id from the cart cookie).

    Business Rules:
    - One active cart per owner; an abandoned cart is reactivated before a new
      one is created
    - Unit prices always come from the catalog, never from the client
    - A line holds at most max_quantity_per_item units and never more than
      the stock on hand
    - Lines for the same product and variant are merged
    """

    max_items_per_cart = 50

    def __init__(
        self,
        session: Session,
        user_id: Optional[uuid.UUID] = None,
        anonymous_id: Optional[str] = None,
        max_quantity_per_item: int = 99,
    ):
        if (user_id is None) == (anonymous_id is None):
            raise ValueError("CartService needs exactly one of user_id or anonymous_id")
        self.session = session
        self.user_id = user_id
        self.anonymous_id = anonymous_id
        self.max_quantity_per_item = max_quantity_per_item
        self._cart: Optional[Cart] = None

    @property
    def owner(self) -> str:
        return f"user {self.user_id}" if self.user_id else f"anonymous {self.anonymous_id}"

    def _owner_filter(self):
        if self.user_id is not None:
            return Cart.user_id == self.user_id
        return Cart.anonymous_id == self.anonymous_id

    def find_active_cart(self) -> Optional[Cart]:
        return self.session.scalars(
            select(Cart)
            .where(self._owner_filter(), Cart.status == "active")
            .order_by(Cart.updated_at.desc())
            .limit(1)
        ).first()

    def get_or_create_cart(self) -> Cart:
        """
        Return the owner's active cart, creating one if needed.

        Business Rules:
        - An existing active cart always wins
        - Otherwise the most recently touched abandoned/checkout cart is
          reactivated so its items come back
        - Completed and merged carts are never reused
        """
        if self._cart is not None:
            return self._cart

        cart = self.find_active_cart()
        if cart is None:
            cart = self.session.scalars(
                select(Cart)
                .where(self._owner_filter(), Cart.status.in_(REACTIVATABLE_STATUSES))
                .order_by(Cart.updated_at.desc())
                .limit(1)
            ).first()
            if cart is not None:
                logger.info(f"reactivating cart {cart.id} ({cart.status}) for {self.owner}")
                cart.status = "active"
                cart.updated_at = utcnow()

        if cart is None:
            cart = Cart(user_id=self.user_id, anonymous_id=self.anonymous_id, status="active")
            self.session.add(cart)
            self.session.flush()
            logger.info(f"created cart {cart.id} for {self.owner}")

        self._cart = cart
        return cart

    def get_cart(self) -> CartView:
        cart = self.get_or_create_cart()
        return CartView(
            id=str(cart.id),
            status=cart.status,
            items=[cart_line_from_row(item) for item in cart.items],
        )

    def get_cart_or_empty(self) -> CartView:
        """
        get_cart(), degrading to an empty cart on database errors so the page
        can still render.
        """
        try:
            return self.get_cart()
        except SQLAlchemyError as e:
            logger.error(f"failed to load cart for {self.owner}: {e}")
            self.session.rollback()
            self._cart = None
            return CartView.empty()

    def _resolve_purchasable(self, product_id: uuid.UUID, variant_id: Optional[uuid.UUID]):
        product = self.session.get(Product, product_id)
        if product is None or not product.is_active:
            raise NotFoundError("Product", str(product_id))

        variant = None
        if variant_id is not None:
            variant = self.session.get(ProductVariant, variant_id)
            if variant is None or variant.product_id != product.id or not variant.is_active:
                raise NotFoundError("Product variant", str(variant_id))

        price_cents = variant.effective_price_cents if variant else product.retail_price_cents
        stock = variant.stock if variant else product.stock
        return product, variant, price_cents, stock

    def _check_quantity(self, quantity: int, stock: int) -> None:
        if quantity > self.max_quantity_per_item:
            raise BusinessLogicError(
                f"Maximum quantity per item is {self.max_quantity_per_item}",
                rule="max_quantity_per_item",
            )
        if quantity > stock:
            raise InsufficientStockError(f"Only {stock} left in stock", available=stock, requested=quantity)

    def _find_line(self, cart: Cart, product_id, variant_id) -> Optional[CartItem]:
        return next(
            (
                item for item in cart.items
                if item.product_id == product_id and item.variant_id == variant_id
            ),
            None,
        )

    def add_item(
        self,
        product_id: uuid.UUID,
        quantity: int = 1,
        variant_id: Optional[uuid.UUID] = None,
    ) -> CartItem:
        """
        Add a product (or variant) to the cart.

        Business Rules:
        - Product and variant must exist and be active
        - Adding an existing product/variant increases that line's quantity
        - The stored price is refreshed from the catalog on every add
        """
        if quantity < 1:
            raise ValidationError("Quantity must be at least 1")

        product, variant, price_cents, stock = self._resolve_purchasable(product_id, variant_id)
        cart = self.get_or_create_cart()

        line = self._find_line(cart, product.id, variant.id if variant else None)
        new_quantity = quantity + (line.quantity if line else 0)
        self._check_quantity(new_quantity, stock)

        if line is None:
            if len(cart.items) >= self.max_items_per_cart:
                raise BusinessLogicError(
                    f"A cart can hold at most {self.max_items_per_cart} different items",
                    rule="max_items_per_cart",
                )
            line = CartItem(
                product_id=product.id,
                variant_id=variant.id if variant else None,
                quantity=new_quantity,
                price_cents=price_cents,
            )
            cart.items.append(line)
        else:
            line.quantity = new_quantity
            line.price_cents = price_cents

        cart.updated_at = utcnow()
        self.session.flush()
        logger.info(f"cart {cart.id}: {product.sku} x{new_quantity} for {self.owner}")
        return line

    def _get_line(self, item_id: uuid.UUID) -> CartItem:
        cart = self.get_or_create_cart()
        line = next((item for item in cart.items if item.id == item_id), None)
        if line is None:
            raise NotFoundError("Cart item", str(item_id))
        return line

    def update_item_quantity(self, item_id: uuid.UUID, quantity: int) -> Optional[CartItem]:
        """
        Set a line's quantity. Zero removes the line and returns None.
        """
        if quantity < 0:
            raise ValidationError("Quantity cannot be negative")

        line = self._get_line(item_id)
        if quantity == 0:
            self.remove_item(item_id)
            return None

        stock = line.variant.stock if line.variant is not None else line.product.stock
        self._check_quantity(quantity, stock)
        line.quantity = quantity
        line.cart.updated_at = utcnow()
        self.session.flush()
        return line

    def remove_item(self, item_id: uuid.UUID) -> bool:
        """Remove a line from the caller's cart. Removing a missing line is not an error."""
        cart = self.get_or_create_cart()
        line = next((item for item in cart.items if item.id == item_id), None)
        if line is None:
            return False
        cart.items.remove(line)
        cart.updated_at = utcnow()
        self.session.flush()
        return True

    def clear_cart(self) -> int:
        cart = self.get_or_create_cart()
        removed = len(cart.items)
        cart.items.clear()
        cart.updated_at = utcnow()
        self.session.flush()
        logger.info(f"cleared {removed} line(s) from cart {cart.id}")
        return removed

    def merge_anonymous_cart(self, anonymous_id: str) -> int:
        """
        Fold an anonymous visitor's open cart (active, or part way through
        checkout) into this user's cart.

        Business Rules:
        - Quantities for the same product/variant are summed, capped at the
          per-line maximum and the stock on hand
        - Lines whose product is gone or inactive are dropped
        - The anonymous cart is marked merged and emptied so it can't be
          merged twice

        Returns the number of lines merged.
        """
        if self.user_id is None:
            raise ValueError("merge_anonymous_cart requires a signed-in user")

        source = self.session.scalars(
            select(Cart)
            .where(Cart.anonymous_id == anonymous_id, Cart.status.in_(MERGEABLE_STATUSES))
            .order_by(Cart.updated_at.desc())
            .limit(1)
        ).first()
        if source is None:
            return 0

        target = self.get_or_create_cart()
        merged = 0
        for item in list(source.items):
            product = item.product
            variant = item.variant
            if product is None or not product.is_active or (variant is not None and not variant.is_active):
                continue
            stock = variant.stock if variant is not None else product.stock
            price_cents = variant.effective_price_cents if variant is not None else product.retail_price_cents

            line = self._find_line(target, item.product_id, item.variant_id)
            quantity = min(
                item.quantity + (line.quantity if line else 0),
                self.max_quantity_per_item,
                stock,
            )
            if quantity <= 0:
                continue
            if line is None:
                target.items.append(CartItem(
                    product_id=item.product_id,
                    variant_id=item.variant_id,
                    quantity=quantity,
                    price_cents=price_cents,
                ))
            else:
                line.quantity = quantity
                line.price_cents = price_cents
            merged += 1

        source.items.clear()
        source.status = "merged"
        target.updated_at = utcnow()
        self.session.flush()
        logger.info(f"merged {merged} line(s) from anonymous cart {source.id} into cart {target.id}")
        return merged

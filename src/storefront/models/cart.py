from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Text,
    Uuid,
)
from sqlalchemy.orm import relationship

from storefront.db import Base
from storefront.models.common import new_id, one_of, utcnow

CART_STATUSES = ("active", "checkout", "completed", "abandoned", "merged")


class Cart(Base):
    """
    A shopping cart owned by exactly one of: a signed-in user or an anonymous
    visitor (identified by the cart cookie).

    Only one cart per owner is `active` at a time. Completed carts keep their
    row for order history but lose their items.
    """

    __tablename__ = "carts"

    id = Column(Uuid, primary_key=True, default=new_id)
    user_id = Column(Uuid, nullable=True)  # auth user id; profile row may not exist yet
    anonymous_id = Column(Text, nullable=True)
    status = Column(Text, nullable=False, default="active")
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        CheckConstraint(
            "(user_id IS NULL AND anonymous_id IS NOT NULL) OR "
            "(user_id IS NOT NULL AND anonymous_id IS NULL)",
            name="ck_cart_owner",
        ),
        CheckConstraint(
            one_of("status", CART_STATUSES),
            name="ck_cart_status",
        ),
        Index("ix_carts_anonymous_id", "anonymous_id"),
        Index("ix_carts_user_id", "user_id"),
    )

    items = relationship(
        "CartItem", back_populates="cart", cascade="all, delete-orphan",
        order_by="CartItem.created_at",
    )

    def __repr__(self) -> str:
        owner = f"user_id={self.user_id}" if self.user_id else f"anonymous_id={self.anonymous_id}"
        return f"<Cart id={self.id} {owner} status={self.status!r}>"


class CartItem(Base):
    """
    A product (optionally a specific variant) and quantity inside a cart.

    price_cents is the unit price when the line was last written; the checkout
    uses it as the charged price. Removing an item deletes the row.
    """

    __tablename__ = "cart_items"

    id = Column(Uuid, primary_key=True, default=new_id)
    cart_id = Column(Uuid, ForeignKey("carts.id", ondelete="CASCADE"), nullable=False)
    product_id = Column(Uuid, ForeignKey("products.id", ondelete="CASCADE"), nullable=False)
    variant_id = Column(Uuid, ForeignKey("product_variants.id", ondelete="CASCADE"), nullable=True)
    quantity = Column(Integer, nullable=False)
    price_cents = Column(BigInteger, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_cart_item_quantity"),
        CheckConstraint("price_cents >= 0", name="ck_cart_item_price"),
    )

    cart = relationship("Cart", back_populates="items")
    product = relationship("Product")
    variant = relationship("ProductVariant")

    def __repr__(self) -> str:
        return f"<CartItem id={self.id} product_id={self.product_id} qty={self.quantity}>"

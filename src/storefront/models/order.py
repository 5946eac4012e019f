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
from storefront.models.common import JSONType, new_id, one_of, utcnow

ORDER_STATUSES = ("pending", "processing", "paid", "completed", "cancelled", "refunded", "failed")
PAYMENT_STATUSES = ("pending", "processing", "paid", "failed", "refunded", "cancelled")


class Order(Base):
    """
    A placed order.

    status and payment_status are constrained with CHECK constraints rather
    than Postgres ENUM types so adding a value is a plain ALTER TABLE.

    Totals are stored alongside the line items so the charged amount survives
    later catalog price changes. metadata_ maps to the 'metadata' column and
    holds the last payment provider result and anything else free-form.
    """

    __tablename__ = "orders"

    id = Column(Uuid, primary_key=True, default=new_id)
    order_number = Column(Text, nullable=False, unique=True)
    checkout_session_id = Column(Uuid, ForeignKey("checkout_sessions.id", ondelete="SET NULL"), nullable=True)
    cart_id = Column(Uuid, ForeignKey("carts.id", ondelete="SET NULL"), nullable=True)
    user_id = Column(Uuid, nullable=True)
    email = Column(Text, nullable=False)
    status = Column(Text, nullable=False, default="pending")
    payment_status = Column(Text, nullable=False, default="pending")
    shipping_address = Column(JSONType, nullable=True)
    billing_address = Column(JSONType, nullable=True)
    shipping_method = Column(Text, nullable=True)
    payment_method = Column(Text, nullable=True)
    payment_provider = Column(Text, nullable=True)
    payment_intent_id = Column(Text, nullable=True)
    subtotal_cents = Column(BigInteger, nullable=False, default=0)
    shipping_cents = Column(BigInteger, nullable=False, default=0)
    tax_cents = Column(BigInteger, nullable=False, default=0)
    total_cents = Column(BigInteger, nullable=False, default=0)
    currency = Column(Text, nullable=False, default="USD")
    notes = Column(Text, nullable=True)
    metadata_ = Column("metadata", JSONType, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        CheckConstraint(
            one_of("status", ORDER_STATUSES),
            name="ck_order_status",
        ),
        CheckConstraint(
            one_of("payment_status", PAYMENT_STATUSES),
            name="ck_order_payment_status",
        ),
        CheckConstraint("total_cents >= 0", name="ck_order_total"),
        Index("ix_orders_email", "email"),
        Index("ix_orders_user_id", "user_id"),
        Index("ix_orders_payment_intent_id", "payment_intent_id"),
    )

    items = relationship(
        "OrderItem", back_populates="order", cascade="all, delete-orphan",
        order_by="OrderItem.name",
    )
    status_history = relationship(
        "OrderStatusHistory", back_populates="order", cascade="all, delete-orphan",
        order_by="OrderStatusHistory.created_at",
    )

    def __repr__(self) -> str:
        return (
            f"<Order number={self.order_number!r} status={self.status!r} "
            f"total_cents={self.total_cents}>"
        )


class OrderItem(Base):
    """
    A line item snapshotted from the cart when the order was placed.

    name, sku and unit_price_cents are copies, not references, so the order
    reads the same after the product is renamed, repriced or deleted.
    """

    __tablename__ = "order_items"

    id = Column(Uuid, primary_key=True, default=new_id)
    order_id = Column(Uuid, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False)
    product_id = Column(Uuid, nullable=False)
    variant_id = Column(Uuid, nullable=True)
    name = Column(Text, nullable=False)
    sku = Column(Text, nullable=True)
    quantity = Column(Integer, nullable=False)
    unit_price_cents = Column(BigInteger, nullable=False)
    total_price_cents = Column(BigInteger, nullable=False)
    image_url = Column(Text, nullable=True)
    options = Column(JSONType, nullable=True)

    __table_args__ = (
        CheckConstraint("unit_price_cents >= 0", name="ck_item_unit_price"),
        CheckConstraint("quantity > 0", name="ck_item_quantity"),
        CheckConstraint("total_price_cents >= 0", name="ck_item_total"),
    )

    order = relationship("Order", back_populates="items")

    def __repr__(self) -> str:
        return f"<OrderItem id={self.id} sku={self.sku!r} qty={self.quantity}>"


class OrderStatusHistory(Base):
    """Append-only log of order status changes."""

    __tablename__ = "order_status_history"

    id = Column(Uuid, primary_key=True, default=new_id)
    order_id = Column(Uuid, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False)
    status = Column(Text, nullable=False)
    notes = Column(Text, nullable=True)
    created_by = Column(Uuid, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    order = relationship("Order", back_populates="status_history")

    def __repr__(self) -> str:
        return f"<OrderStatusHistory order_id={self.order_id} status={self.status!r}>"

from sqlalchemy import BigInteger, CheckConstraint, Column, DateTime, ForeignKey, Text, Uuid

from storefront.db import Base
from storefront.models.common import JSONType, new_id, one_of, utcnow

CHECKOUT_STEPS = ("information", "shipping", "payment", "review", "confirmation")


class CheckoutSession(Base):
    """
    The in-progress state of one checkout for one cart.

    Addresses, the chosen shipping option and the payment summary are JSON
    blobs validated by the pydantic value models before they are written.
    Card numbers are never stored; payment_info only carries the method type,
    cardholder name and the provider's payment method id.

    Amounts are cents and are recomputed every time the shipping method or the
    cart subtotal changes.
    """

    __tablename__ = "checkout_sessions"

    id = Column(Uuid, primary_key=True, default=new_id)
    cart_id = Column(Uuid, ForeignKey("carts.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(Uuid, nullable=True)
    guest_email = Column(Text, nullable=True)
    shipping_address = Column(JSONType, nullable=True)
    billing_address = Column(JSONType, nullable=True)
    shipping_method = Column(Text, nullable=True)
    shipping_option = Column(JSONType, nullable=True)
    payment_method = Column(Text, nullable=True)
    payment_info = Column(JSONType, nullable=True)
    current_step = Column(Text, nullable=False, default="information")
    subtotal_cents = Column(BigInteger, nullable=False, default=0)
    shipping_cents = Column(BigInteger, nullable=False, default=0)
    tax_cents = Column(BigInteger, nullable=False, default=0)
    total_cents = Column(BigInteger, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        CheckConstraint(
            one_of("current_step", CHECKOUT_STEPS),
            name="ck_checkout_step",
        ),
    )

    def __repr__(self) -> str:
        return f"<CheckoutSession id={self.id} step={self.current_step!r}>"

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    Table,
    Text,
    Uuid,
)
from sqlalchemy.orm import relationship

from storefront.db import Base
from storefront.models.common import JSONType, new_id, utcnow


# Association table only; no extra columns so no mapped class
category_products = Table(
    "category_products",
    Base.metadata,
    Column("category_id", Uuid, ForeignKey("categories.id", ondelete="CASCADE"), primary_key=True),
    Column("product_id", Uuid, ForeignKey("products.id", ondelete="CASCADE"), primary_key=True),
)


class Category(Base):
    """
    A node in the category tree.

    parent_id is self-referential; a NULL parent is a root. Deleting a parent
    does not cascade: the service re-parents children before deleting.
    """

    __tablename__ = "categories"

    id = Column(Uuid, primary_key=True, default=new_id)
    name = Column(Text, nullable=False)
    slug = Column(Text, nullable=False, unique=True)
    description = Column(Text, nullable=True)
    parent_id = Column(Uuid, ForeignKey("categories.id", ondelete="SET NULL"), nullable=True)
    sort_order = Column(Integer, nullable=False, default=0)
    is_visible = Column(Boolean, nullable=False, default=True)
    is_highlighted = Column(Boolean, nullable=False, default=False)
    highlight_priority = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    products = relationship("Product", secondary=category_products, back_populates="categories")

    def __repr__(self) -> str:
        return f"<Category id={self.id} slug={self.slug!r}>"


class Product(Base):
    """
    A sellable product.

    Prices are integer cents. business_price_cents is the trade price shown to
    business accounts; the storefront charges retail_price_cents. stock is the
    on-hand count and is decremented when an order is placed.
    """

    __tablename__ = "products"

    id = Column(Uuid, primary_key=True, default=new_id)
    name = Column(Text, nullable=False)
    slug = Column(Text, nullable=False, unique=True)
    sku = Column(Text, nullable=False, unique=True)
    description = Column(Text, nullable=True)
    retail_price_cents = Column(BigInteger, nullable=False, default=0)
    business_price_cents = Column(BigInteger, nullable=True)
    stock = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)
    is_featured = Column(Boolean, nullable=False, default=False)
    image_url = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        CheckConstraint("retail_price_cents >= 0", name="ck_product_retail_price"),
        CheckConstraint("business_price_cents IS NULL OR business_price_cents >= 0", name="ck_product_business_price"),
        CheckConstraint("stock >= 0", name="ck_product_stock"),
    )

    categories = relationship("Category", secondary=category_products, back_populates="products")
    variants = relationship(
        "ProductVariant", back_populates="product", cascade="all, delete-orphan",
        order_by="ProductVariant.sku",
    )

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku!r}>"


class ProductVariant(Base):
    """
    A purchasable variation of a product (size, finish, ...).

    retail_price_cents NULL means "same price as the product".
    """

    __tablename__ = "product_variants"

    id = Column(Uuid, primary_key=True, default=new_id)
    product_id = Column(Uuid, ForeignKey("products.id", ondelete="CASCADE"), nullable=False)
    sku = Column(Text, nullable=False, unique=True)
    name = Column(Text, nullable=True)
    options = Column(JSONType, nullable=False, default=dict)
    retail_price_cents = Column(BigInteger, nullable=True)
    stock = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (
        CheckConstraint("retail_price_cents IS NULL OR retail_price_cents >= 0", name="ck_variant_price"),
        CheckConstraint("stock >= 0", name="ck_variant_stock"),
    )

    product = relationship("Product", back_populates="variants")

    @property
    def effective_price_cents(self) -> int:
        if self.retail_price_cents is not None:
            return self.retail_price_cents
        return self.product.retail_price_cents

    def __repr__(self) -> str:
        return f"<ProductVariant id={self.id} sku={self.sku!r}>"

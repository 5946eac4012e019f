"""
Seed data for local development.

Run with:
    flask --app storefront.app seed

Idempotent: categories, products, variants, banners and profiles are looked
up by slug/sku/title/email before inserting. The sample order is only
created once, for the seeded customer.
"""

import logging
import uuid

from sqlalchemy import select
from sqlalchemy.orm import Session

from storefront.models import Category, HeroBanner, Order, Product, ProductVariant, Profile
from storefront.services.orders import OrderService
from storefront.utils.formatting import FormattingUtils

logger = logging.getLogger(__name__)

ADMIN_ID = uuid.UUID("00000000-0000-4000-8000-000000000001")
CUSTOMER_ID = uuid.UUID("00000000-0000-4000-8000-000000000002")

CATEGORIES = [
    {"name": "Door Hardware", "slug": "door-hardware", "is_highlighted": True, "highlight_priority": 10},
    {"name": "Locks", "slug": "locks", "parent": "door-hardware", "is_highlighted": True, "highlight_priority": 5},
    {"name": "Handles", "slug": "handles", "parent": "door-hardware"},
    {"name": "Hinges", "slug": "hinges"},
]

PRODUCTS = [
    {
        "sku": "LOCK-DEADBOLT-001",
        "name": "Single Cylinder Deadbolt",
        "description": "Grade 1 deadbolt with reinforced strike plate.",
        "retail_price_cents": 4999,
        "business_price_cents": 3999,
        "stock": 120,
        "is_featured": True,
        "categories": ["locks"],
        "variants": [
            {"sku": "LOCK-DEADBOLT-001-SN", "name": "Satin Nickel", "options": {"finish": "satin nickel"}, "stock": 60},
            {"sku": "LOCK-DEADBOLT-001-BR", "name": "Bronze", "options": {"finish": "bronze"},
             "retail_price_cents": 5499, "stock": 40},
        ],
    },
    {
        "sku": "LOCK-SMART-002",
        "name": "Keypad Smart Lock",
        "description": "Keyless entry with 30 user codes and auto-lock.",
        "retail_price_cents": 18999,
        "business_price_cents": 15999,
        "stock": 35,
        "is_featured": True,
        "categories": ["locks"],
        "variants": [],
    },
    {
        "sku": "HNDL-LEVER-001",
        "name": "Passage Lever Handle",
        "description": "Reversible lever for hallways and closets.",
        "retail_price_cents": 2499,
        "business_price_cents": 1899,
        "stock": 200,
        "categories": ["handles"],
        "variants": [
            {"sku": "HNDL-LEVER-001-BLK", "name": "Matte Black", "options": {"finish": "matte black"}, "stock": 90},
        ],
    },
    {
        "sku": "HNG-SOFT-001",
        "name": "Soft-Close Cabinet Hinge (pair)",
        "description": "Concealed 110 degree hinge with integrated damper.",
        "retail_price_cents": 1299,
        "business_price_cents": 999,
        "stock": 500,
        "categories": ["hinges"],
        "variants": [],
    },
]

BANNERS = [
    {
        "title": "Secure every door",
        "subtitle": "Grade 1 deadbolts and smart locks",
        "image_url": "/images/hero/locks.jpg",
        "cta_text": "Shop locks",
        "cta_link": "/categories/locks",
        "position": 0,
    },
    {
        "title": "Hardware for trade customers",
        "subtitle": "Business pricing on every order",
        "image_url": "/images/hero/trade.jpg",
        "cta_text": "Learn more",
        "cta_link": "/about",
        "position": 1,
    },
]


def _seed_categories(session: Session) -> dict:
    by_slug = {}
    for data in CATEGORIES:
        category = session.scalars(select(Category).where(Category.slug == data["slug"])).first()
        if category is None:
            category = Category(
                name=data["name"],
                slug=data["slug"],
                parent_id=by_slug[data["parent"]].id if data.get("parent") else None,
                is_highlighted=data.get("is_highlighted", False),
                highlight_priority=data.get("highlight_priority", 0),
            )
            session.add(category)
            session.flush()
        by_slug[data["slug"]] = category
    logger.info(f"seeded {len(by_slug)} categories")
    return by_slug


def _seed_products(session: Session, categories: dict) -> dict:
    by_sku = {}
    for data in PRODUCTS:
        product = session.scalars(select(Product).where(Product.sku == data["sku"])).first()
        if product is None:
            fields = {k: v for k, v in data.items() if k not in ("categories", "variants")}
            product = Product(slug=FormattingUtils.slugify(data["name"]), **fields)
            product.categories = [categories[slug] for slug in data["categories"]]
            session.add(product)
            session.flush()

        for variant_data in data["variants"]:
            exists = session.scalars(
                select(ProductVariant).where(ProductVariant.sku == variant_data["sku"])
            ).first()
            if exists is None:
                product.variants.append(ProductVariant(**variant_data))
        by_sku[data["sku"]] = product
        logger.info(f"seeded product {data['name']}")
    session.flush()
    return by_sku


def _seed_banners(session: Session) -> None:
    for data in BANNERS:
        exists = session.scalars(select(HeroBanner).where(HeroBanner.title == data["title"])).first()
        if exists is None:
            session.add(HeroBanner(created_by=ADMIN_ID, **data))
    session.flush()


def _seed_profiles(session: Session) -> None:
    for user_id, email, name, role in (
        (ADMIN_ID, "admin@example.com", "Store Admin", "admin"),
        (CUSTOMER_ID, "alice@example.com", "Alice Example", "customer"),
    ):
        if session.get(Profile, user_id) is None:
            session.add(Profile(id=user_id, email=email, full_name=name, role=role))
    session.flush()


def _seed_order(session: Session, products: dict) -> None:
    if session.scalars(select(Order.id).where(Order.user_id == CUSTOMER_ID)).first() is not None:
        return

    deadbolt = products["LOCK-DEADBOLT-001"]
    hinge = products["HNG-SOFT-001"]
    subtotal = deadbolt.retail_price_cents + hinge.retail_price_cents * 2
    shipping = 999
    tax = round((subtotal + shipping) * 0.08)
    address = {
        "first_name": "Alice", "last_name": "Example", "phone": "555-0100",
        "address1": "1 Main Street", "address2": None, "city": "Springfield",
        "state": "IL", "postal_code": "62701", "country": "US",
    }

    order = OrderService(session).create_order({
        "email": "alice@example.com",
        "user_id": CUSTOMER_ID,
        "shipping_address": address,
        "billing_address": address,
        "shipping_method": "standard",
        "payment_method": "credit_card",
        "payment_provider": "stripe",
        "subtotal_cents": subtotal,
        "shipping_cents": shipping,
        "tax_cents": tax,
        "total_cents": subtotal + shipping + tax,
        "items": [
            {"product_id": str(deadbolt.id), "name": deadbolt.name, "sku": deadbolt.sku,
             "quantity": 1, "unit_price_cents": deadbolt.retail_price_cents},
            {"product_id": str(hinge.id), "name": hinge.name, "sku": hinge.sku,
             "quantity": 2, "unit_price_cents": hinge.retail_price_cents},
        ],
    })
    logger.info(f"seeded order {order.order_number} for alice")


def seed(session: Session) -> None:
    categories = _seed_categories(session)
    products = _seed_products(session, categories)
    _seed_banners(session)
    _seed_profiles(session)
    _seed_order(session, products)

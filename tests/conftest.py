"""Shared fixtures: an app on in-memory SQLite, catalog factories and tokens."""

import itertools
import time
import uuid

import pytest
from jose import jwt

from storefront import db
from storefront.app import create_app
from storefront.core.config import load_config
from storefront.models import Product, ProductVariant, Profile

JWT_SECRET = "test-jwt-secret-that-is-long-enough-for-hs256"
WEBHOOK_SECRET = "whsec_test_secret"

ADDRESS = {
    "first_name": "Alice",
    "last_name": "Example",
    "phone": "555-0100",
    "address1": "1 Main Street",
    "address2": None,
    "city": "Springfield",
    "state": "IL",
    "postal_code": "62701",
    "country": "US",
}


@pytest.fixture
def config():
    return load_config({
        "database.url": "sqlite://",
        "app.environment": "test",
        "app.log_level": "WARNING",
        "supabase.jwt_secret": JWT_SECRET,
        "payment.stripe_webhook_secret": WEBHOOK_SECRET,
    })


@pytest.fixture
def app(config):
    app = create_app(config)
    app.config["TESTING"] = True
    db.create_all()
    yield app
    db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def session(app):
    """A bare session for service-level tests; nothing is committed for you."""
    s = db.SessionLocal()
    try:
        yield s
    finally:
        s.rollback()
        s.close()


@pytest.fixture
def make_product(app):
    """Create and commit a product. Returns the (detached, fully loaded) row."""
    counter = itertools.count(1)

    def _make(**overrides):
        n = next(counter)
        values = {
            "name": f"Product {n}",
            "slug": f"product-{n}",
            "sku": f"SKU-{n:04d}",
            "retail_price_cents": 1000,
            "stock": 10,
        }
        values.update(overrides)
        with db.get_session() as s:
            product = Product(**values)
            s.add(product)
        return product

    return _make


@pytest.fixture
def make_variant(app):
    counter = itertools.count(1)

    def _make(product, **overrides):
        n = next(counter)
        values = {"product_id": product.id, "sku": f"{product.sku}-V{n}", "name": f"Variant {n}", "stock": 5}
        values.update(overrides)
        with db.get_session() as s:
            variant = ProductVariant(**values)
            s.add(variant)
        return variant

    return _make


@pytest.fixture
def make_profile(app):
    def _make(role="customer", email=None):
        user_id = uuid.uuid4()
        with db.get_session() as s:
            s.add(Profile(id=user_id, email=email or f"{role}-{user_id.hex[:6]}@example.com", role=role))
        return user_id

    return _make


def make_token(user_id, email=None, secret=JWT_SECRET, expires_in=3600, **claims):
    payload = {
        "sub": str(user_id),
        "aud": "authenticated",
        "exp": int(time.time()) + expires_in,
        "email": email,
        **claims,
    }
    return jwt.encode(payload, secret, algorithm="HS256")


@pytest.fixture
def auth_headers(make_profile):
    """Authorization headers for a freshly created profile with `role`."""
    def _headers(role="customer", email=None):
        user_id = make_profile(role=role, email=email)
        return {"Authorization": f"Bearer {make_token(user_id, email=email)}"}, user_id

    return _headers


def make_order_dict(**overrides):
    """An order as order_to_dict() shapes it, for the pure order helpers."""
    order_id = str(uuid.uuid4())
    product_id = overrides.pop("product_id", str(uuid.uuid4()))
    order = {
        "id": order_id,
        "order_number": "NO-20260115-AB12",
        "user_id": None,
        "email": "alice@example.com",
        "status": "pending",
        "payment_status": "pending",
        "shipping_address": dict(ADDRESS),
        "billing_address": dict(ADDRESS),
        "shipping_method": "standard",
        "payment_method": "credit_card",
        "payment_provider": "stripe",
        "payment_intent_id": "pi_123",
        "subtotal_cents": 2000,
        "shipping_cents": 999,
        "tax_cents": 240,
        "total_cents": 3239,
        "currency": "USD",
        "notes": None,
        "metadata": {"payment_method_id": "pm_456"},
        "created_at": "2026-01-15T10:30:00+00:00",
        "updated_at": "2026-01-15T10:30:00+00:00",
        "items": [
            {
                "id": str(uuid.uuid4()),
                "product_id": product_id,
                "variant_id": None,
                "name": "Single Cylinder Deadbolt",
                "sku": "LOCK-001",
                "quantity": 2,
                "unit_price_cents": 1000,
                "total_price_cents": 2000,
                "image_url": None,
                "options": None,
            }
        ],
        "status_history": [
            {"status": "pending", "notes": "Order created", "created_by": None,
             "created_at": "2026-01-15T10:30:00+00:00"},
        ],
    }
    order.update(overrides)
    return order


@pytest.fixture
def order_factory():
    return make_order_dict

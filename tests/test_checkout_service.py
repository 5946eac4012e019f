"""Tests for the multi-step checkout and order placement."""

from decimal import Decimal

import pytest
from conftest import ADDRESS

from storefront.core.exceptions import BusinessLogicError, ValidationError
from storefront.models import Product
from storefront.schemas.values import Address, PaymentInfo
from storefront.services.cart_service import CartService
from storefront.services.checkout_service import CheckoutService, calculate_totals


@pytest.fixture
def guest_cart(session, make_product):
    """A guest cart holding two units of a $20.00 product with 10 in stock."""
    product = make_product(retail_price_cents=2000, stock=10)
    cart_service = CartService(session, anonymous_id="anon-checkout")
    cart_service.add_item(product.id, 2)
    return cart_service.get_or_create_cart(), product


def _to_review(service, cart, email="alice@example.com"):
    cs = service.get_or_create_session(cart.id)
    service.update_shipping_address(cs.id, Address(**ADDRESS), email)
    service.update_shipping_method(cs.id, "standard")
    service.update_payment_info(cs.id, PaymentInfo(type="credit_card", cardholder_name="Alice Example",
                                                   payment_method_id="pm_card_visa"))
    return cs


class TestCalculateTotals:
    def test_tax_applies_to_subtotal_and_shipping(self):
        tax, total = calculate_totals(1000, 999, Decimal("0.08"))
        assert tax == 160
        assert total == 2159

    def test_tax_rounds_half_up(self):
        # 6.25 cents of tax rounds to 6
        assert calculate_totals(125, 0, Decimal("0.05")) == (6, 131)
        # 12.5 cents rounds up to 13
        assert calculate_totals(250, 0, Decimal("0.05")) == (13, 263)


class TestCheckoutSteps:
    """Each step requires the one before it."""

    def test_session_starts_at_information(self, session, config, guest_cart):
        cart, _ = guest_cart
        cs = CheckoutService(session, config).get_or_create_session(cart.id)

        assert cs.current_step == "information"
        assert cs.subtotal_cents == 4000
        assert cs.total_cents == 4000

    def test_starting_checkout_marks_cart(self, session, config, guest_cart):
        cart, _ = guest_cart
        CheckoutService(session, config).get_or_create_session(cart.id)
        assert cart.status == "checkout"

        # Coming back to the cart page brings the same cart back
        reopened = CartService(session, anonymous_id="anon-checkout").get_or_create_cart()
        assert reopened.id == cart.id
        assert reopened.status == "active"
        assert reopened.items[0].quantity == 2

    def test_empty_cart_cannot_start_checkout(self, session, config):
        cart = CartService(session, anonymous_id="anon-empty").get_or_create_cart()

        with pytest.raises(BusinessLogicError):
            CheckoutService(session, config).get_or_create_session(cart.id)

    def test_reentering_checkout_resumes_session(self, session, config, guest_cart):
        cart, _ = guest_cart
        service = CheckoutService(session, config)

        first = service.get_or_create_session(cart.id)
        assert service.get_or_create_session(cart.id).id == first.id

    def test_guest_must_give_valid_email(self, session, config, guest_cart):
        cart, _ = guest_cart
        service = CheckoutService(session, config)
        cs = service.get_or_create_session(cart.id)

        with pytest.raises(ValidationError):
            service.update_shipping_address(cs.id, Address(**ADDRESS), "not-an-email")

    def test_shipping_method_sets_totals(self, session, config, guest_cart):
        cart, _ = guest_cart
        service = CheckoutService(session, config)
        cs = service.get_or_create_session(cart.id)
        service.update_shipping_address(cs.id, Address(**ADDRESS), "Alice@Example.com")

        cs = service.update_shipping_method(cs.id, "express")

        assert cs.guest_email == "alice@example.com"
        assert cs.current_step == "payment"
        assert cs.shipping_cents == 1999
        assert cs.tax_cents == 480
        assert cs.total_cents == 4000 + 1999 + 480

    def test_shipping_method_requires_address(self, session, config, guest_cart):
        cart, _ = guest_cart
        service = CheckoutService(session, config)
        cs = service.get_or_create_session(cart.id)

        with pytest.raises(BusinessLogicError):
            service.update_shipping_method(cs.id, "standard")

    def test_billing_copies_shipping_by_default(self, session, config, guest_cart):
        cart, _ = guest_cart
        cs = _to_review(CheckoutService(session, config), cart)

        assert cs.current_step == "review"
        assert cs.billing_address == cs.shipping_address
        assert cs.payment_info["payment_method_id"] == "pm_card_visa"

    def test_can_go_back_but_not_forward(self, session, config, guest_cart):
        cart, _ = guest_cart
        service = CheckoutService(session, config)
        cs = service.get_or_create_session(cart.id)
        service.update_shipping_address(cs.id, Address(**ADDRESS), "alice@example.com")

        with pytest.raises(BusinessLogicError):
            service.go_to_step(cs.id, "review")
        assert service.go_to_step(cs.id, "information").current_step == "information"


class TestPlaceOrder:
    def test_places_order_and_closes_cart(self, session, config, guest_cart):
        cart, product = guest_cart
        service = CheckoutService(session, config)
        cs = _to_review(service, cart)

        order = service.place_order(cs.id)

        assert order.order_number.startswith("NO-")
        assert order.email == "alice@example.com"
        assert order.subtotal_cents == 4000
        assert order.total_cents == 4000 + 999 + 400
        assert order.metadata_["payment_method_id"] == "pm_card_visa"
        assert [(i.quantity, i.unit_price_cents) for i in order.items] == [(2, 2000)]
        assert cs.current_step == "confirmation"
        assert cart.status == "completed"
        assert cart.items == []
        assert session.get(Product, product.id).stock == 8

    def test_requires_review_step(self, session, config, guest_cart):
        cart, _ = guest_cart
        service = CheckoutService(session, config)
        cs = service.get_or_create_session(cart.id)

        with pytest.raises(BusinessLogicError):
            service.place_order(cs.id)

    def test_insufficient_stock_blocks_order(self, session, config, guest_cart):
        cart, product = guest_cart
        service = CheckoutService(session, config)
        cs = _to_review(service, cart)
        session.get(Product, product.id).stock = 1

        with pytest.raises(BusinessLogicError) as exc_info:
            service.place_order(cs.id)

        assert exc_info.value.details["violated_rule"] == "insufficient_stock"

    def test_completed_checkout_cannot_be_reused(self, session, config, guest_cart):
        cart, _ = guest_cart
        service = CheckoutService(session, config)
        cs = _to_review(service, cart)
        service.place_order(cs.id)

        with pytest.raises(BusinessLogicError):
            service.place_order(cs.id)

"""Tests for order creation validation and the status transition tables."""

import pytest

from storefront.core.exceptions import ValidationError
from storefront.services.orders.validator import (
    collect_order_creation_errors,
    is_valid_payment_status_transition,
    is_valid_status_transition,
    validate_order_creation,
    validate_order_update,
)


def _payload(**overrides):
    data = {
        "email": "alice@example.com",
        "items": [{"product_id": "p1", "quantity": 1, "unit_price_cents": 1000}],
        "subtotal_cents": 1000,
        "shipping_cents": 999,
        "tax_cents": 160,
        "total_cents": 2159,
    }
    data.update(overrides)
    return data


class TestStatusTransitions:
    @pytest.mark.parametrize(
        "current,new",
        [("pending", "processing"), ("pending", "paid"), ("processing", "completed"),
         ("paid", "refunded"), ("cancelled", "pending"), ("failed", "processing"), ("pending", "pending")],
    )
    def test_allowed(self, current, new):
        assert is_valid_status_transition(current, new)

    @pytest.mark.parametrize(
        "current,new",
        [("refunded", "pending"), ("completed", "cancelled"), ("paid", "cancelled"), ("cancelled", "paid")],
    )
    def test_rejected(self, current, new):
        assert not is_valid_status_transition(current, new)

    def test_unknown_status_has_no_transitions(self):
        assert not is_valid_status_transition("shipped", "pending")


class TestPaymentStatusTransitions:
    def test_same_status_is_always_allowed(self):
        assert is_valid_payment_status_transition("refunded", "refunded")

    def test_paid_can_only_be_refunded(self):
        assert is_valid_payment_status_transition("paid", "refunded")
        assert not is_valid_payment_status_transition("paid", "pending")

    def test_refunded_is_terminal(self):
        assert not is_valid_payment_status_transition("refunded", "paid")


class TestOrderCreation:
    def test_valid_payload(self):
        assert collect_order_creation_errors(_payload()) == {}

    def test_one_cent_rounding_is_tolerated(self):
        assert collect_order_creation_errors(_payload(total_cents=2160)) == {}

    def test_total_mismatch(self):
        errors = collect_order_creation_errors(_payload(total_cents=2000))
        assert "total_cents" in errors

    def test_collects_every_problem(self):
        errors = collect_order_creation_errors(_payload(
            email="nope",
            items=[{"product_id": None, "quantity": 0, "unit_price_cents": -1}],
            tax_cents=-5,
        ))

        assert errors["email"] == ["Email is invalid"]
        assert len(errors["items[0]"]) == 3
        assert errors["tax_cents"] == ["tax_cents cannot be negative"]

    def test_missing_items(self):
        errors = collect_order_creation_errors(_payload(items=[]))
        assert errors["items"] == ["Order must contain at least one item"]

    def test_validate_raises_with_field_errors(self):
        with pytest.raises(ValidationError) as exc_info:
            validate_order_creation(_payload(email=None))

        assert "email" in exc_info.value.details["field_errors"]


class TestOrderUpdate:
    def test_status_and_payment_status_together_is_rejected(self):
        with pytest.raises(ValidationError):
            validate_order_update("pending", "pending", status="processing", payment_status="paid")

    def test_invalid_status_transition(self):
        with pytest.raises(ValidationError):
            validate_order_update("refunded", "refunded", status="pending")

    def test_unknown_payment_status(self):
        with pytest.raises(ValidationError):
            validate_order_update("pending", "pending", payment_status="settled")

    def test_valid_update_passes(self):
        validate_order_update("pending", "pending", status="processing")
        validate_order_update("pending", "pending", payment_status="paid")

"""Tests for role-based order access and sensitive data filtering."""

import uuid

import pytest

from storefront.core.auth import CurrentUser
from storefront.services.orders.permissions import (
    MASK,
    Guest,
    can_perform_order_action,
    filter_order_sensitive_data,
    get_accessible_order_actions,
)

CUSTOMER_ID = uuid.uuid4()


@pytest.fixture
def order(order_factory):
    return order_factory(user_id=str(CUSTOMER_ID))


def _user(role, user_id=None):
    return CurrentUser(id=user_id or uuid.uuid4(), email=f"{role}@example.com", role=role)


class TestCanPerformOrderAction:
    def test_nobody_can_do_nothing(self, order):
        assert not can_perform_order_action(None, "view", order)

    def test_admin_can_do_everything(self, order):
        admin = _user("admin")
        assert all(can_perform_order_action(admin, a, order) for a in ("delete", "create", "refund"))

    def test_staff_limits(self, order):
        staff = _user("staff")

        assert can_perform_order_action(staff, "view", order)
        assert can_perform_order_action(staff, "export")
        assert not can_perform_order_action(staff, "delete", order)
        assert not can_perform_order_action(staff, "refund", order)  # still pending

    def test_staff_cannot_edit_closed_orders(self, order):
        staff = _user("staff")
        order["status"] = "completed"

        assert not can_perform_order_action(staff, "update", order)
        assert can_perform_order_action(staff, "refund", order)

    def test_customer_sees_only_own_orders(self, order):
        owner = _user("customer", CUSTOMER_ID)
        stranger = _user("customer")

        assert can_perform_order_action(owner, "view", order)
        assert not can_perform_order_action(stranger, "view", order)
        assert not can_perform_order_action(owner, "updateStatus", order)

    def test_customer_cancel_depends_on_status(self, order):
        owner = _user("customer", CUSTOMER_ID)
        assert can_perform_order_action(owner, "cancel", order)

        order["status"] = "paid"
        assert not can_perform_order_action(owner, "cancel", order)

    def test_guest_matches_email_case_insensitively(self, order):
        assert can_perform_order_action(Guest(email="ALICE@example.com"), "view", order)
        assert not can_perform_order_action(Guest(email="mallory@example.com"), "view", order)

    def test_accessible_actions_for_guest(self, order):
        assert get_accessible_order_actions(Guest(email="alice@example.com"), order) == ["view", "create", "cancel"]


class TestFilterSensitiveData:
    def test_owner_sees_everything(self, order):
        owner = _user("customer", CUSTOMER_ID)
        assert filter_order_sensitive_data(owner, order) is order

    def test_others_get_masked_copy(self, order):
        filtered = filter_order_sensitive_data(_user("customer"), order)

        assert "payment_intent_id" not in filtered
        assert "billing_address" not in filtered
        assert "payment_method_id" not in filtered["metadata"]
        assert filtered["shipping_address"]["phone"] == MASK
        assert filtered["shipping_address"]["city"] == "Springfield"
        # the original is untouched
        assert order["shipping_address"]["phone"] == "555-0100"

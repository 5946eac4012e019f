"""Tests for OrderService persistence, lifecycle and notifications."""

import uuid

import pytest
from conftest import ADDRESS

from storefront.core.auth import CurrentUser
from storefront.core.exceptions import ForbiddenError, InsufficientStockError, NotFoundError, ValidationError
from storefront.models import Product
from storefront.schemas.values import PaymentResult
from storefront.services.orders import OrderService
from storefront.services.orders.notifications import (
    EmailMessage,
    LoggingNotifier,
    SmsMessage,
    build_status_email,
    build_status_sms,
    handle_status_change_notifications,
)
from storefront.services.orders.permissions import Guest
from storefront.utils.validators import ValidationUtils


class FailingNotifier:
    def send_email(self, message):
        raise RuntimeError("smtp down")

    def send_sms(self, message):
        raise RuntimeError("sms down")


@pytest.fixture
def notifier():
    return LoggingNotifier()


@pytest.fixture
def service(session, notifier):
    return OrderService(session, notifier=notifier)


@pytest.fixture
def order_data(make_product):
    def _data(product=None, quantity=2, **overrides):
        product = product or make_product(retail_price_cents=1000, stock=10)
        data = {
            "email": "Alice@Example.com",
            "user_id": None,
            "shipping_address": dict(ADDRESS),
            "billing_address": dict(ADDRESS),
            "shipping_method": "standard",
            "payment_method": "credit_card",
            "subtotal_cents": 1000 * quantity,
            "shipping_cents": 999,
            "tax_cents": 0,
            "total_cents": 1000 * quantity + 999,
            "items": [{"product_id": str(product.id), "name": product.name, "sku": product.sku,
                       "quantity": quantity, "unit_price_cents": 1000}],
        }
        data.update(overrides)
        return data

    return _data


class TestCreateOrder:
    def test_numbers_and_history(self, service, order_data, notifier):
        order = service.create_order(order_data())

        assert ValidationUtils.validate_order_number(order.order_number)
        assert order.email == "alice@example.com"
        assert order.status == "pending"
        assert order.payment_status == "pending"
        assert order.items[0].total_price_cents == 2000
        assert [h.status for h in order.status_history] == ["pending"]
        assert isinstance(notifier.sent[0], EmailMessage)

    def test_rejects_invalid_payload(self, service, order_data):
        with pytest.raises(ValidationError):
            service.create_order(order_data(total_cents=1))


class TestQueries:
    def test_guest_lookup_requires_matching_email(self, service, order_data):
        order = service.create_order(order_data())

        found = service.lookup_guest_order("ALICE@example.com", order.order_number.lower())
        assert found.id == order.id
        with pytest.raises(NotFoundError):
            service.lookup_guest_order("mallory@example.com", order.order_number)

    def test_find_by_reference_accepts_id_or_number(self, service, order_data):
        order = service.create_order(order_data())

        assert service.find_order_by_reference(str(order.id)).id == order.id
        assert service.find_order_by_reference(order.order_number).id == order.id
        assert service.find_order_by_reference("NO-19990101-ZZZZ") is None

    def test_list_orders_filters_and_counts(self, service, order_data):
        service.create_order(order_data())
        second = service.create_order(order_data(email="bob@example.com"))
        service.update_order_status(second.id, "processing")

        orders, total = service.list_orders({"status": "processing", "page": 1, "page_size": 10})
        assert total == 1
        assert orders[0].email == "bob@example.com"

        _, total = service.list_orders({"q": "example.com", "page": 1, "page_size": 1})
        assert total == 2

    def test_user_orders(self, service, order_data):
        user_id = uuid.uuid4()
        service.create_order(order_data(user_id=user_id))
        service.create_order(order_data())

        assert len(service.get_user_orders(user_id)) == 1


class TestStatusUpdates:
    def test_status_change_is_recorded_and_notified(self, service, order_data, notifier):
        order = service.create_order(order_data())
        staff_id = uuid.uuid4()

        order = service.update_order_status(order.id, "processing", "Picked", updated_by=staff_id)

        assert order.status == "processing"
        assert [h.status for h in order.status_history] == ["pending", "processing"]
        assert order.status_history[-1].created_by == staff_id
        assert any(isinstance(m, SmsMessage) for m in notifier.sent)

    def test_invalid_transition_is_rejected(self, service, order_data):
        order = service.create_order(order_data())
        service.update_order_status(order.id, "cancelled")

        with pytest.raises(ValidationError):
            service.update_order_status(order.id, "completed")

    def test_notification_failure_does_not_block_update(self, session, order_data):
        service = OrderService(session, notifier=FailingNotifier())
        order = service.create_order(order_data())

        assert service.update_order_status(order.id, "processing").status == "processing"


class TestPaymentResults:
    def test_successful_payment_marks_paid(self, service, order_data):
        order = service.create_order(order_data())
        result = PaymentResult(success=True, status="paid", transaction_id="pi_1", amount_cents=2999)

        order = service.update_order_from_payment(order.id, result)

        assert order.status == "paid"
        assert order.payment_status == "paid"
        assert order.payment_intent_id == "pi_1"
        assert order.metadata_["payment_result"]["amount_cents"] == 2999

    def test_disallowed_result_is_only_recorded(self, service, order_data):
        order = service.create_order(order_data())
        service.update_order_from_payment(order.id, PaymentResult(success=True, status="paid"))

        order = service.update_order_from_payment(order.id, PaymentResult(success=False, status="failed"))

        assert order.status == "paid"
        assert order.payment_status == "paid"
        assert order.metadata_["payment_result"]["status"] == "failed"

    def test_replayed_result_is_a_no_op(self, service, order_data):
        order = service.create_order(order_data())
        result = PaymentResult(success=True, status="paid", transaction_id="pi_1")
        service.update_order_from_payment(order.id, result)

        order = service.update_order_from_payment(order.id, result)

        assert [h.status for h in order.status_history] == ["pending", "paid"]


class TestCancelOrder:
    def test_guest_cancel_restocks(self, session, service, order_data, make_product):
        product = make_product(stock=7)
        order = service.create_order(order_data(product=product, quantity=3))

        order = service.cancel_order(order.id, Guest(email="alice@example.com"), "Changed my mind")

        assert order.status == "cancelled"
        assert order.status_history[-1].notes == "Changed my mind"
        assert session.get(Product, product.id).stock == 10

    def test_staff_status_cancel_restocks(self, session, service, order_data, make_product):
        product = make_product(stock=7)
        order = service.create_order(order_data(product=product, quantity=3))

        service.update_order_status(order.id, "cancelled", "Out of area")

        assert session.get(Product, product.id).stock == 10

    def test_cancelled_payment_result_restocks(self, session, service, order_data, make_product):
        product = make_product(stock=7)
        order = service.create_order(order_data(product=product, quantity=3))

        service.update_order_from_payment(order.id, PaymentResult(success=False, status="cancelled"))

        assert session.get(Product, product.id).stock == 10

    def test_reopen_takes_stock_again(self, session, service, order_data, make_product):
        product = make_product(stock=7)
        order = service.create_order(order_data(product=product, quantity=3))
        guest = Guest(email="alice@example.com")

        service.cancel_order(order.id, guest)
        order = service.update_order_status(order.id, "pending", "Customer called back")
        assert session.get(Product, product.id).stock == 7
        assert order.metadata_["stock_released"] is False

        service.cancel_order(order.id, guest)
        assert session.get(Product, product.id).stock == 10

    def test_reopen_needs_stock_on_hand(self, session, service, order_data, make_product):
        product = make_product(stock=7)
        order = service.create_order(order_data(product=product, quantity=3))
        service.update_order_status(order.id, "cancelled")
        session.get(Product, product.id).stock = 1

        with pytest.raises(InsufficientStockError) as exc:
            service.update_order_status(order.id, "pending")

        assert exc.value.details["available"] == 1
        assert exc.value.details["requested"] == 3

    def test_metadata_update_cannot_fake_released_stock(self, session, service, order_data, make_product):
        product = make_product(stock=7)
        order = service.create_order(order_data(product=product, quantity=3))

        service.update_order(order.id, {"metadata": {"stock_released": True, "source": "phone"}})
        service.update_order_status(order.id, "cancelled")

        assert session.get(Product, product.id).stock == 10
        assert service.get_order(order.id).metadata_["source"] == "phone"

    def test_stranger_cannot_cancel(self, service, order_data):
        order = service.create_order(order_data())
        stranger = CurrentUser(id=uuid.uuid4(), email="x@example.com", role="customer")

        with pytest.raises(ForbiddenError):
            service.cancel_order(order.id, stranger)

    def test_paid_order_cannot_be_cancelled_by_customer(self, service, order_data):
        user_id = uuid.uuid4()
        order = service.create_order(order_data(user_id=user_id))
        service.update_order_status(order.id, "paid")

        with pytest.raises(ForbiddenError):
            service.cancel_order(order.id, CurrentUser(id=user_id, email=None, role="customer"))


class TestNotifications:
    def test_email_subject_and_total(self, order_factory):
        message = build_status_email(order_factory(), "paid", "pending")

        assert message.subject == "Payment Received for Order NO-20260115-AB12"
        assert message.customer_name == "Alice Example"
        assert message.data["total"] == "$32.39"
        assert message.data["item_count"] == 2

    def test_sms_only_for_selected_statuses(self, order_factory):
        assert build_status_sms(order_factory(), "pending") is None
        assert build_status_sms(order_factory(shipping_address={"phone": None}), "paid") is None
        assert build_status_sms(order_factory(), "cancelled").template == "order_canceled"

    def test_failures_are_swallowed(self, order_factory):
        handle_status_change_notifications(order_factory(), "paid", "pending", FailingNotifier())

import logging
from typing import Any, Dict, Type

from flask import Blueprint
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from storefront.core.auth import resolve_current_user
from storefront.core.exceptions import ValidationError
from storefront.db import get_session
from storefront.routes.cart import cart_service_for_request, write_cart_cookies
from storefront.routes.utils import get_config, json_body, load_or_400, parse_uuid_or_404, success_response
from storefront.schemas.requests import (
    CheckoutStepSchema,
    PaymentInfoSchema,
    ShippingInformationSchema,
    ShippingMethodSchema,
)
from storefront.schemas.values import Address, PaymentInfo
from storefront.services.cart_identity import set_clear_signal
from storefront.services.checkout_service import CheckoutService, session_to_dict
from storefront.services.orders import order_to_dict

logger = logging.getLogger(__name__)

checkout_bp = Blueprint("checkout", __name__)
checkout_bp.after_request(write_cart_cookies)

_information_schema = ShippingInformationSchema()
_shipping_schema = ShippingMethodSchema()
_payment_schema = PaymentInfoSchema()
_step_schema = CheckoutStepSchema()


def _to_value(model: Type[BaseModel], data: Dict[str, Any]):
    try:
        return model.model_validate(data)
    except PydanticValidationError as e:
        field_errors: Dict[str, list] = {}
        for err in e.errors():
            key = ".".join(str(p) for p in err["loc"]) or "_schema"
            field_errors.setdefault(key, []).append(err["msg"])
        raise ValidationError("Invalid request data", field_errors)


def _owned_session(session, service: CheckoutService, session_id: str):
    """Load a checkout session that belongs to the caller's cart or account."""
    sid = parse_uuid_or_404(session_id, "Checkout session")
    cart_service = cart_service_for_request(session)
    cart = cart_service.get_or_create_cart()
    return service.get_session_for(sid, cart.id, cart_service.user_id)


@checkout_bp.route("/shipping-options", methods=["GET"])
def shipping_options():
    with get_session() as session:
        options = CheckoutService(session, get_config()).get_shipping_options()
    return success_response([o.model_dump() for o in options])


@checkout_bp.route("/session", methods=["POST"])
def start_checkout():
    """Start checkout for the caller's cart, or resume the open session."""
    with get_session() as session:
        cart_service = cart_service_for_request(session)
        cart = cart_service.get_or_create_cart()
        cs = CheckoutService(session, get_config()).get_or_create_session(cart.id, cart_service.user_id)
        return success_response(session_to_dict(cs), status=201)


@checkout_bp.route("/session/<session_id>", methods=["GET"])
def get_checkout(session_id: str):
    with get_session() as session:
        service = CheckoutService(session, get_config())
        cs = _owned_session(session, service, session_id)
        return success_response(session_to_dict(cs))


@checkout_bp.route("/session/<session_id>/information", methods=["PUT"])
def update_information(session_id: str):
    data = load_or_400(_information_schema, json_body())
    address = _to_value(Address, data["shipping_address"])

    with get_session() as session:
        service = CheckoutService(session, get_config())
        cs = _owned_session(session, service, session_id)
        cs = service.update_shipping_address(cs.id, address, data.get("email"))
        return success_response(session_to_dict(cs))


@checkout_bp.route("/session/<session_id>/shipping", methods=["PUT"])
def update_shipping(session_id: str):
    data = load_or_400(_shipping_schema, json_body())

    with get_session() as session:
        service = CheckoutService(session, get_config())
        cs = _owned_session(session, service, session_id)
        cs = service.update_shipping_method(cs.id, data["method"])
        return success_response(session_to_dict(cs))


@checkout_bp.route("/session/<session_id>/payment", methods=["PUT"])
def update_payment(session_id: str):
    """Store the payment summary. Raw card numbers are never accepted here."""
    data = load_or_400(_payment_schema, json_body())
    payment_info = _to_value(PaymentInfo, data)

    with get_session() as session:
        service = CheckoutService(session, get_config())
        cs = _owned_session(session, service, session_id)
        cs = service.update_payment_info(cs.id, payment_info)
        return success_response(session_to_dict(cs))


@checkout_bp.route("/session/<session_id>/step", methods=["POST"])
def go_to_step(session_id: str):
    data = load_or_400(_step_schema, json_body())

    with get_session() as session:
        service = CheckoutService(session, get_config())
        cs = _owned_session(session, service, session_id)
        cs = service.go_to_step(cs.id, data["step"])
        return success_response(session_to_dict(cs))


@checkout_bp.route("/session/<session_id>/place-order", methods=["POST"])
def place_order(session_id: str):
    """
    Place the order for a reviewed checkout.

    The response carries the cart-clear signal cookie so browser code drops
    whatever cart state it cached.
    """
    config = get_config()
    with get_session() as session:
        service = CheckoutService(session, config)
        cs = _owned_session(session, service, session_id)
        user = resolve_current_user()
        order = service.place_order(cs.id, user_email=user.email if user else None)
        payload = {"order": order_to_dict(order), "checkout": session_to_dict(cs)}

    response, status = success_response(payload, "Order placed.", 201)
    set_clear_signal(response, config.cart)
    return response, status

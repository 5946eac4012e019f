import logging
from typing import Optional

from flask import Blueprint, Response, request

from storefront.core.auth import require_auth, resolve_current_user
from storefront.core.exceptions import NotFoundError, UnauthorizedError
from storefront.db import get_session
from storefront.routes.utils import get_config, json_body, load_or_400, parse_uuid_or_404, success_response
from storefront.schemas.requests import CancelOrderSchema, GuestOrderLookupSchema
from storefront.services.orders import OrderService, order_to_dict
from storefront.services.orders.invoice import generate_invoice_html
from storefront.services.orders.permissions import (
    Guest,
    can_perform_order_action,
    filter_order_sensitive_data,
    get_accessible_order_actions,
)

logger = logging.getLogger(__name__)

orders_bp = Blueprint("orders", __name__)

_lookup_schema = GuestOrderLookupSchema()
_cancel_schema = CancelOrderSchema()


def _caller(email: Optional[str] = None):
    """The signed-in user, else a Guest for the supplied email, else None."""
    user = resolve_current_user()
    if user is not None:
        return user
    if email:
        return Guest(email=email)
    return None


def _viewable(order, caller) -> dict:
    """
    The order as `caller` may see it, plus the actions open to them.

    Orders the caller can't view are reported as missing rather than
    forbidden, so order ids can't be probed.
    """
    data = order_to_dict(order)
    if not can_perform_order_action(caller, "view", data):
        raise NotFoundError("Order", str(order.id))
    view = filter_order_sensitive_data(caller, data)
    view["available_actions"] = get_accessible_order_actions(caller, data)
    return view


@orders_bp.route("", methods=["GET"])
@require_auth
def list_my_orders():
    """The signed-in customer's orders, newest first."""
    user = resolve_current_user()
    with get_session() as session:
        orders = OrderService(session).get_user_orders(user.id)
        return success_response([order_to_dict(o, include_history=False) for o in orders])


@orders_bp.route("/lookup", methods=["POST"])
def lookup_order():
    """Guest order lookup by email and order number."""
    data = load_or_400(_lookup_schema, json_body())
    with get_session() as session:
        order = OrderService(session).lookup_guest_order(data["email"], data["order_number"])
        return success_response(_viewable(order, Guest(email=data["email"])))


@orders_bp.route("/<order_id>", methods=["GET"])
def get_order(order_id: str):
    oid = parse_uuid_or_404(order_id, "Order")
    caller = _caller(request.args.get("email"))
    if caller is None:
        raise UnauthorizedError()

    with get_session() as session:
        order = OrderService(session).get_order(oid)
        return success_response(_viewable(order, caller))


@orders_bp.route("/<order_id>/cancel", methods=["POST"])
def cancel_order(order_id: str):
    oid = parse_uuid_or_404(order_id, "Order")
    data = load_or_400(_cancel_schema, json_body())
    caller = _caller(data.get("email"))
    if caller is None:
        raise UnauthorizedError()

    with get_session() as session:
        service = OrderService(session)
        _viewable(service.get_order(oid), caller)
        order = service.cancel_order(oid, caller, data.get("reason"))
        return success_response(_viewable(order, caller), "Order cancelled.")


@orders_bp.route("/<order_id>/invoice", methods=["GET"])
def order_invoice(order_id: str):
    """Printable HTML invoice."""
    oid = parse_uuid_or_404(order_id, "Order")
    caller = _caller(request.args.get("email"))
    if caller is None:
        raise UnauthorizedError()

    with get_session() as session:
        order = OrderService(session).get_order(oid)
        view = _viewable(order, caller)

    config = get_config()
    html = generate_invoice_html(view, config.app, timezone_name=config.checkout.store_timezone)
    return Response(html, mimetype="text/html")

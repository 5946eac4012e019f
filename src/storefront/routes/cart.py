import logging

from flask import Blueprint, g, request
from sqlalchemy.orm import Session

from storefront.core.auth import resolve_current_user
from storefront.db import get_session
from storefront.routes.utils import get_config, json_body, load_or_400, parse_uuid_or_404, success_response
from storefront.schemas.requests import AddCartItemSchema, UpdateCartItemSchema
from storefront.services.cart_identity import (
    clear_clear_signal,
    delete_legacy_cookie,
    has_clear_signal,
    resolve_anonymous_cart_id,
    set_cart_cookie,
)
from storefront.services.cart_service import CartService

logger = logging.getLogger(__name__)

cart_bp = Blueprint("cart", __name__)

_add_schema = AddCartItemSchema()
_update_schema = UpdateCartItemSchema()


def cart_service_for_request(session: Session) -> CartService:
    """
    The CartService for whoever is calling.

    Signed-in callers get their own cart; an anonymous cart named by their
    cookie is folded into it the first time they show up with it. Guests are
    identified by the anonymous cart cookie alone.
    """
    config = get_config()
    user = resolve_current_user()
    anonymous = resolve_anonymous_cart_id(request.cookies, config.cart)
    g.anonymous_cart = anonymous
    g.cart_user = user

    if user is not None:
        service = CartService(
            session, user_id=user.id, max_quantity_per_item=config.cart.max_quantity_per_item
        )
        if not anonymous.is_new:
            merged = service.merge_anonymous_cart(anonymous.value)
            if merged:
                logger.info(f"merged {merged} line(s) from anonymous cart into user {user.id}")
        return service

    return CartService(
        session, anonymous_id=anonymous.value, max_quantity_per_item=config.cart.max_quantity_per_item
    )


def write_cart_cookies(response):
    """after_request hook: persist the anonymous cart id for guests."""
    anonymous = g.get("anonymous_cart")
    if anonymous is None or g.get("cart_user") is not None:
        return response

    config = get_config()
    if anonymous.needs_refresh:
        set_cart_cookie(response, anonymous.value, config.cart)
    if anonymous.source == "legacy_cookie":
        delete_legacy_cookie(response, config.cart)
    return response


cart_bp.after_request(write_cart_cookies)


def _cart_payload(service: CartService):
    return service.get_cart().to_dict()


@cart_bp.route("", methods=["GET"])
def get_cart():
    """Return the caller's cart, creating it if it doesn't exist."""
    with get_session() as session:
        service = cart_service_for_request(session)
        return success_response(service.get_cart_or_empty().to_dict())


@cart_bp.route("/items", methods=["POST"])
def add_cart_item():
    """Add a product or variant, or increment its quantity if already present."""
    data = load_or_400(_add_schema, json_body())

    with get_session() as session:
        service = cart_service_for_request(session)
        service.add_item(data["product_id"], data["quantity"], data["variant_id"])
        payload = _cart_payload(service)

    response, status = success_response(payload, "Item added to cart.", 201)
    # A new add means any pending "order placed" signal is stale
    if has_clear_signal(request.cookies, get_config().cart):
        clear_clear_signal(response, get_config().cart)
    return response, status


@cart_bp.route("/items/<item_id>", methods=["PATCH"])
def update_cart_item(item_id: str):
    """Set a line's quantity; zero removes it."""
    line_id = parse_uuid_or_404(item_id, "Cart item")
    data = load_or_400(_update_schema, json_body())

    with get_session() as session:
        service = cart_service_for_request(session)
        line = service.update_item_quantity(line_id, data["quantity"])
        message = "Item removed from cart." if line is None else "Cart updated."
        return success_response(_cart_payload(service), message)


@cart_bp.route("/items/<item_id>", methods=["DELETE"])
def remove_cart_item(item_id: str):
    line_id = parse_uuid_or_404(item_id, "Cart item")
    with get_session() as session:
        service = cart_service_for_request(session)
        removed = service.remove_item(line_id)
        message = "Item removed from cart." if removed else "Item was not in the cart."
        return success_response(_cart_payload(service), message)


@cart_bp.route("", methods=["DELETE"])
def clear_cart():
    with get_session() as session:
        service = cart_service_for_request(session)
        removed = service.clear_cart()
        return success_response(_cart_payload(service), f"Removed {removed} item(s).")

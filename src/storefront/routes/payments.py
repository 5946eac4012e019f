import json
import logging

from flask import Blueprint, request

from storefront.core.exceptions import ValidationError
from storefront.db import get_session
from storefront.routes.utils import get_config, success_response
from storefront.services.orders import OrderService
from storefront.services.payments import apply_payment_result, payment_result_from_event, verify_stripe_signature

logger = logging.getLogger(__name__)

payments_bp = Blueprint("payments", __name__)


@payments_bp.route("/webhook", methods=["POST"])
def stripe_webhook():
    """
    Payment provider webhook.

    The signature is checked against the raw body before anything is parsed.
    Events we don't handle, and events for orders we don't know, are still
    acknowledged with 200 so the provider stops retrying them.
    """
    config = get_config().payment
    payload = request.get_data()
    verify_stripe_signature(
        payload,
        request.headers.get("Stripe-Signature"),
        config.stripe_webhook_secret,
        config.stripe_webhook_tolerance,
    )

    try:
        event = json.loads(payload)
    except ValueError:
        raise ValidationError("Webhook payload is not valid JSON")
    if not isinstance(event, dict):
        raise ValidationError("Webhook payload must be a JSON object")

    result = payment_result_from_event(event)
    if result is None:
        logger.info(f"ignoring webhook event {event.get('type')}")
        return success_response({"received": True, "handled": False})

    with get_session() as session:
        order = apply_payment_result(OrderService(session), result)
        data = {
            "received": True,
            "handled": order is not None,
            "order_number": order.order_number if order is not None else None,
        }
    return success_response(data)

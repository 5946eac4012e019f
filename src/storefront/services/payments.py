import hashlib
import hmac
import logging
import time
from typing import Any, Dict, Optional

from storefront.core.exceptions import WebhookSignatureError
from storefront.models import Order
from storefront.schemas.values import PaymentResult

logger = logging.getLogger(__name__)

SIGNATURE_SCHEME = "v1"

# event type -> (result status, success)
EVENT_STATUS = {
    "payment_intent.succeeded": ("paid", True),
    "payment_intent.payment_failed": ("failed", False),
    "payment_intent.canceled": ("cancelled", False),
    "charge.refunded": ("refunded", True),
}


def _parse_signature_header(header: str) -> Dict[str, list]:
    parts: Dict[str, list] = {}
    for item in header.split(","):
        key, sep, value = item.strip().partition("=")
        if sep:
            parts.setdefault(key, []).append(value)
    return parts


def verify_stripe_signature(
    payload: bytes,
    header: Optional[str],
    secret: str,
    tolerance: int = 300,
    now: Optional[int] = None,
) -> None:
    """
    Check a Stripe-Signature header against the raw request body.

    The signed content is "<timestamp>.<payload>" under HMAC-SHA256; any one
    of the v1 signatures may match. Raises WebhookSignatureError otherwise.
    """
    if not secret:
        raise WebhookSignatureError("Webhook secret is not configured")
    if not header:
        raise WebhookSignatureError("Missing signature header")

    parts = _parse_signature_header(header)
    try:
        timestamp = int(parts["t"][0])
    except (KeyError, ValueError):
        raise WebhookSignatureError("Unable to extract timestamp from signature header")

    signatures = parts.get(SIGNATURE_SCHEME) or []
    if not signatures:
        raise WebhookSignatureError("No v1 signature found in header")

    signed = f"{timestamp}.".encode() + payload
    expected = hmac.new(secret.encode(), signed, hashlib.sha256).hexdigest()
    if not any(hmac.compare_digest(expected, sig) for sig in signatures):
        raise WebhookSignatureError("Signature does not match payload")

    current = int(time.time()) if now is None else now
    if tolerance and abs(current - timestamp) > tolerance:
        raise WebhookSignatureError("Signature timestamp outside the tolerance zone")


def sign_stripe_payload(payload: bytes, secret: str, timestamp: Optional[int] = None) -> str:
    """Build a Stripe-Signature header value (used to exercise the webhook locally)."""
    timestamp = int(time.time()) if timestamp is None else timestamp
    signature = hmac.new(secret.encode(), f"{timestamp}.".encode() + payload, hashlib.sha256).hexdigest()
    return f"t={timestamp},{SIGNATURE_SCHEME}={signature}"


def _as_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def payment_result_from_event(event: Dict[str, Any]) -> Optional[PaymentResult]:
    """
    Translate a webhook event into a PaymentResult.

    Event types we don't act on return None; the caller acknowledges them.
    """
    event_type = event.get("type")
    if not isinstance(event_type, str) or event_type not in EVENT_STATUS:
        return None

    status, success = EVENT_STATUS[event_type]
    obj = _as_dict(_as_dict(event.get("data")).get("object"))
    metadata = _as_dict(obj.get("metadata"))

    if event_type == "charge.refunded":
        transaction_id = obj.get("payment_intent") or obj.get("id")
        amount = obj.get("amount_refunded")
    else:
        transaction_id = obj.get("id")
        amount = obj.get("amount_received") or obj.get("amount")

    error = _as_dict(obj.get("last_payment_error"))
    return PaymentResult(
        success=success,
        status=status,
        transaction_id=transaction_id,
        provider="stripe",
        amount_cents=amount,
        order_reference=metadata.get("orderReference") or metadata.get("order_id"),
        error_code=error.get("code"),
        error_message=error.get("message"),
        metadata={"event_id": event.get("id"), "event_type": event_type},
    )


def apply_payment_result(order_service, result: PaymentResult) -> Optional[Order]:
    """
    Find the order a payment result belongs to and update it.

    Lookup is by order reference first, then by payment intent id. An
    unknown order is logged and None is returned so the webhook can still
    be acknowledged.
    """
    order = None
    if result.order_reference:
        order = order_service.find_order_by_reference(result.order_reference)
    if order is None and result.transaction_id:
        order = order_service.get_order_by_payment_intent(result.transaction_id)

    if order is None:
        logger.warning(
            f"payment result {result.status} for unknown order "
            f"(reference={result.order_reference}, transaction={result.transaction_id})"
        )
        return None

    return order_service.update_order_from_payment(order.id, result)

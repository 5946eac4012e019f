import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from storefront.utils.date_utils import DateUtils
from storefront.utils.formatting import FormattingUtils

logger = logging.getLogger(__name__)

EMAIL_TEMPLATES = {
    "pending": ("order_created", "Order Confirmation: #{number}"),
    "processing": ("order_confirmed", "Order {number} has been confirmed"),
    "paid": ("payment_received", "Payment Received for Order {number}"),
    "completed": ("order_delivered", "Order {number} has been completed"),
    "cancelled": ("order_canceled", "Order {number} has been canceled"),
    "refunded": ("payment_refunded", "Refund Processed for Order {number}"),
    "failed": ("payment_failed", "Important: Issue with Order {number}"),
}

# Only the statuses a customer needs on their phone
SMS_TEMPLATES = {
    "processing": (
        "order_confirmed",
        "Your order #{number} has been confirmed and is being processed. "
        "We'll notify you when it ships.",
    ),
    "paid": (
        "payment_received",
        "Payment received for your order #{number}. Thank you for your purchase!",
    ),
    "completed": (
        "order_delivered",
        "Your order #{number} has been marked as completed. Thank you for shopping with us!",
    ),
    "cancelled": (
        "order_canceled",
        "Your order #{number} has been canceled. Contact customer service for more information.",
    ),
}


@dataclass
class EmailMessage:
    to: str
    subject: str
    template: str
    customer_name: Optional[str] = None
    data: Dict[str, Any] = field(default_factory=dict)


@dataclass
class SmsMessage:
    to: str
    message: str
    template: str
    data: Dict[str, Any] = field(default_factory=dict)


def build_status_email(order: Dict[str, Any], new_status: str, old_status: Optional[str] = None) -> EmailMessage:
    template, subject = EMAIL_TEMPLATES.get(new_status, ("order_created", "Order Update: #{number}"))
    address = order.get("shipping_address") or {}
    customer_name = FormattingUtils.format_name(address.get("first_name"), address.get("last_name")) or None
    items = order.get("items") or []
    return EmailMessage(
        to=order["email"],
        subject=subject.format(number=order["order_number"]),
        template=template,
        customer_name=customer_name,
        data={
            "order_id": order["id"],
            "order_number": order["order_number"],
            "old_status": old_status,
            "new_status": new_status,
            "status_change_date": DateUtils.now_utc().isoformat(),
            "item_count": sum(item["quantity"] for item in items),
            "items": items,
            "shipping_address": order.get("shipping_address"),
            "billing_address": order.get("billing_address"),
            "total": FormattingUtils.format_money(order["total_cents"], order.get("currency", "USD")),
        },
    )


def build_status_sms(order: Dict[str, Any], new_status: str) -> Optional[SmsMessage]:
    phone = (order.get("shipping_address") or {}).get("phone")
    if not phone or new_status not in SMS_TEMPLATES:
        return None
    template, message = SMS_TEMPLATES[new_status]
    return SmsMessage(
        to=phone,
        message=message.format(number=order["order_number"]),
        template=template,
        data={
            "order_id": order["id"],
            "order_number": order["order_number"],
            "status": new_status,
            "timestamp": DateUtils.now_utc().isoformat(),
        },
    )


class LoggingNotifier:
    """
    Default delivery: write the message to the log.

    Swap in a real mail/SMS sender by passing any object with send_email()
    and send_sms() to OrderService.
    """

    def __init__(self):
        self.sent: List[Any] = []

    def send_email(self, message: EmailMessage) -> bool:
        logger.info(f"email [{message.template}] to {message.to}: {message.subject}")
        self.sent.append(message)
        return True

    def send_sms(self, message: SmsMessage) -> bool:
        logger.info(f"sms [{message.template}] to {FormattingUtils.mask(message.to)}")
        self.sent.append(message)
        return True


def handle_status_change_notifications(
    order: Dict[str, Any],
    new_status: str,
    old_status: Optional[str],
    notifier,
) -> None:
    """Send the email (and SMS when applicable). Failures are logged, never raised."""
    try:
        notifier.send_email(build_status_email(order, new_status, old_status))
        sms = build_status_sms(order, new_status)
        if sms is not None:
            notifier.send_sms(sms)
    except Exception as e:
        # A failed notification must not roll back the status change
        logger.error(f"notification for order {order.get('order_number')} failed: {e}")

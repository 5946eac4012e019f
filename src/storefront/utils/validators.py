import re
import uuid
from typing import Any, Optional

from email_validator import EmailNotValidError, validate_email


class ValidationUtils:
    """Small validation helpers used by services and request schemas."""

    PATTERNS = {
        "uuid": re.compile(
            r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE
        ),
        "order_number": re.compile(r"^NO-\d{8}-[A-Z0-9]{4}$"),
        "hex_color": re.compile(r"^#(?:[0-9A-Fa-f]{3}){1,2}$"),
    }

    @classmethod
    def validate_email(cls, email: Optional[str]) -> bool:
        if not email:
            return False
        try:
            # No DNS lookups; that belongs to the mail provider
            validate_email(email, check_deliverability=False)
            return True
        except EmailNotValidError:
            return False

    @classmethod
    def normalize_email(cls, email: str) -> str:
        """Normalize email address for consistent storage and lookups"""
        try:
            validated = validate_email(email, check_deliverability=False)
            return validated.normalized.lower()
        except EmailNotValidError:
            raise ValueError(f"Invalid email address: {email}")

    @classmethod
    def is_uuid(cls, value: Any) -> bool:
        return isinstance(value, str) and bool(cls.PATTERNS["uuid"].match(value))

    @classmethod
    def parse_uuid(cls, value: Any) -> Optional[uuid.UUID]:
        """UUID from a str/UUID, or None when it isn't one."""
        if isinstance(value, uuid.UUID):
            return value
        if not isinstance(value, str):
            return None
        try:
            return uuid.UUID(value.strip())
        except ValueError:
            return None

    @classmethod
    def validate_order_number(cls, order_number: str) -> bool:
        return bool(cls.PATTERNS["order_number"].match(order_number or ""))

    @classmethod
    def is_hex_color(cls, value: Any) -> bool:
        return isinstance(value, str) and bool(cls.PATTERNS["hex_color"].match(value))

import base64
import binascii
import json
import logging
import uuid
from dataclasses import dataclass
from typing import Mapping, Optional
from urllib.parse import unquote

from storefront.core.config import CartConfig
from storefront.utils.validators import ValidationUtils

logger = logging.getLogger(__name__)


@dataclass
class AnonymousCartId:
    """
    The anonymous cart identifier resolved for one request.

    needs_refresh is True whenever the response must (re)write the cookie:
    the id was just generated, it came from the legacy cookie name, or the
    stored value wasn't in canonical form.
    """
    value: str
    is_new: bool = False
    needs_refresh: bool = False
    source: str = "cookie"  # cookie, legacy_cookie, generated


def _b64_json_string(value: str) -> Optional[str]:
    """Decode the framework cookie format: base64 of a JSON string literal."""
    padded = value + "=" * (-len(value) % 4)
    try:
        decoded = base64.b64decode(padded, validate=True).decode("utf-8")
        parsed = json.loads(unquote(decoded))
    except (binascii.Error, UnicodeDecodeError, ValueError):
        return None
    return parsed if isinstance(parsed, str) else None


def decode_cart_cookie(raw: Optional[str]) -> Optional[str]:
    """
    Extract a cart UUID from a cookie value, or None.

    Accepted forms, all seen in the wild:
      - bare UUID
      - URL-encoded UUID, possibly encoded twice
      - JSON string literal ("\"<uuid>\"")
      - base64 of a JSON string, itself possibly URL-encoded
    """
    if not raw:
        return None

    candidates = []
    value = raw.strip()
    # Up to two rounds of percent-decoding covers the double-encoded case
    for _ in range(3):
        candidates.append(value)
        unquoted = unquote(value)
        if unquoted == value:
            break
        value = unquoted

    for candidate in candidates:
        stripped = candidate.strip().strip('"')
        if ValidationUtils.is_uuid(stripped):
            return stripped.lower()

        decoded = _b64_json_string(candidate.strip())
        if decoded and ValidationUtils.is_uuid(decoded.strip()):
            return decoded.strip().lower()

    return None


def encode_cart_cookie(cart_id: str) -> str:
    return str(uuid.UUID(cart_id))


def resolve_anonymous_cart_id(cookies: Mapping[str, str], config: CartConfig) -> AnonymousCartId:
    """
    Pick the anonymous cart id for a request.

    Precedence: the primary cookie, then the legacy cookie name, then a fresh
    uuid4. Client-side caches are never consulted; when they disagree with the
    cookie, the cookie wins and the browser is told to resync.
    """
    raw = cookies.get(config.cookie_name)
    cart_id = decode_cart_cookie(raw)
    if cart_id:
        return AnonymousCartId(
            value=cart_id,
            needs_refresh=raw != encode_cart_cookie(cart_id),
            source="cookie",
        )
    if raw:
        logger.warning(f"discarding undecodable {config.cookie_name} cookie")

    legacy_raw = cookies.get(config.legacy_cookie_name)
    cart_id = decode_cart_cookie(legacy_raw)
    if cart_id:
        return AnonymousCartId(value=cart_id, needs_refresh=True, source="legacy_cookie")

    generated = str(uuid.uuid4())
    logger.info(f"generated anonymous cart id {generated}")
    return AnonymousCartId(value=generated, is_new=True, needs_refresh=True, source="generated")


def set_cart_cookie(response, cart_id: str, config: CartConfig) -> None:
    response.set_cookie(
        config.cookie_name,
        encode_cart_cookie(cart_id),
        max_age=config.cookie_max_age,
        path="/",
        httponly=True,
        secure=config.cookie_secure,
        samesite="Lax",
    )


def delete_legacy_cookie(response, config: CartConfig) -> None:
    response.delete_cookie(config.legacy_cookie_name, path="/")


def set_clear_signal(response, config: CartConfig) -> None:
    """
    Tell browser code to drop any cached cart state.

    Readable from JS (not HttpOnly) and short-lived; the browser clears it once
    acted on, or it simply expires.
    """
    response.set_cookie(
        config.clear_cookie_name,
        "true",
        max_age=config.clear_cookie_max_age,
        path="/",
        httponly=False,
        secure=config.cookie_secure,
        samesite="Lax",
    )


def clear_clear_signal(response, config: CartConfig) -> None:
    response.delete_cookie(config.clear_cookie_name, path="/")


def has_clear_signal(cookies: Mapping[str, str], config: CartConfig) -> bool:
    return cookies.get(config.clear_cookie_name) == "true"

"""Tests for anonymous cart cookie decoding and resolution."""

import base64
import json
import uuid
from urllib.parse import quote

import pytest

from storefront.core.config import CartConfig
from storefront.services.cart_identity import (
    decode_cart_cookie,
    encode_cart_cookie,
    has_clear_signal,
    resolve_anonymous_cart_id,
)

CART_ID = "3f1c2b9e-8d4a-4c1e-9b7f-2a6d5e4c3b21"


class TestDecodeCartCookie:
    """Every cookie shape seen in the wild resolves to the same id."""

    @pytest.mark.parametrize(
        "raw",
        [
            CART_ID,
            CART_ID.upper(),
            quote(CART_ID),
            quote(quote(f'"{CART_ID}"')),
            f'"{CART_ID}"',
            base64.b64encode(json.dumps(CART_ID).encode()).decode(),
            quote(base64.b64encode(json.dumps(CART_ID).encode()).decode()),
        ],
    )
    def test_accepts_known_formats(self, raw):
        assert decode_cart_cookie(raw) == CART_ID

    @pytest.mark.parametrize("raw", [None, "", "not-a-uuid", "e30=", base64.b64encode(b"42").decode()])
    def test_rejects_garbage(self, raw):
        assert decode_cart_cookie(raw) is None

    def test_encode_is_canonical(self):
        assert encode_cart_cookie(CART_ID.upper()) == CART_ID


class TestResolveAnonymousCartId:
    """Cookie precedence and when the response must rewrite the cookie."""

    def setup_method(self):
        self.config = CartConfig()

    def test_canonical_cookie_needs_no_refresh(self):
        result = resolve_anonymous_cart_id({self.config.cookie_name: CART_ID}, self.config)

        assert result.value == CART_ID
        assert result.source == "cookie"
        assert not result.is_new
        assert not result.needs_refresh

    def test_non_canonical_cookie_is_rewritten(self):
        result = resolve_anonymous_cart_id({self.config.cookie_name: f'"{CART_ID}"'}, self.config)

        assert result.value == CART_ID
        assert result.needs_refresh

    def test_primary_cookie_beats_legacy_cookie(self):
        other = str(uuid.uuid4())
        cookies = {self.config.cookie_name: CART_ID, self.config.legacy_cookie_name: other}

        assert resolve_anonymous_cart_id(cookies, self.config).value == CART_ID

    def test_legacy_cookie_is_migrated(self):
        result = resolve_anonymous_cart_id({self.config.legacy_cookie_name: CART_ID}, self.config)

        assert result.value == CART_ID
        assert result.source == "legacy_cookie"
        assert result.needs_refresh

    def test_undecodable_primary_falls_back_to_legacy(self):
        cookies = {self.config.cookie_name: "garbage", self.config.legacy_cookie_name: CART_ID}

        assert resolve_anonymous_cart_id(cookies, self.config).value == CART_ID

    def test_generates_id_when_no_cookie(self):
        result = resolve_anonymous_cart_id({}, self.config)

        assert uuid.UUID(result.value)
        assert result.is_new
        assert result.needs_refresh
        assert result.source == "generated"


def test_clear_signal_only_matches_true():
    config = CartConfig()
    assert has_clear_signal({config.clear_cookie_name: "true"}, config)
    assert not has_clear_signal({config.clear_cookie_name: "1"}, config)
    assert not has_clear_signal({}, config)

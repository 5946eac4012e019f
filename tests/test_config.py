"""Tests for environment-driven configuration."""

import logging
from decimal import Decimal

import pytest

from storefront.core.config import DEFAULT_JWT_SECRET, Config, load_config

ENV_VARS = (
    "ENVIRONMENT", "NODE_ENV", "DATABASE_URL", "SUPABASE_DB_URL", "SUPABASE_JWT_SECRET",
    "STRIPE_WEBHOOK_SECRET", "CART_COOKIE_SECURE", "CART_COOKIE_NAME", "TAX_RATE", "API_VERSION",
    "PAYMENT_PROVIDER",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


class TestFromEnv:
    def test_defaults(self):
        config = Config.from_env()

        assert config.is_development
        assert not config.is_production
        assert config.cart.cookie_name == "notalock_anonymous_cart"
        assert config.cart.cookie_secure is False
        assert config.checkout.tax_rate == Decimal("0.08")
        assert config.api.version == "v1"

    def test_node_env_is_accepted(self, monkeypatch):
        monkeypatch.setenv("NODE_ENV", "production")

        config = Config.from_env()

        assert config.is_production
        assert config.cart.cookie_secure is True

    def test_environment_wins_over_node_env(self, monkeypatch):
        monkeypatch.setenv("ENVIRONMENT", "staging")
        monkeypatch.setenv("NODE_ENV", "production")

        assert Config.from_env().environment == "staging"

    def test_supabase_db_url_fallback(self, monkeypatch):
        monkeypatch.setenv("SUPABASE_DB_URL", "postgresql://db.example/postgres")
        assert Config.from_env().database.url == "postgresql://db.example/postgres"


class TestValidate:
    def test_production_requires_a_real_jwt_secret(self, monkeypatch):
        monkeypatch.setenv("ENVIRONMENT", "production")
        monkeypatch.setenv("STRIPE_WEBHOOK_SECRET", "whsec_live")

        with pytest.raises(ValueError, match="SUPABASE_JWT_SECRET"):
            Config.from_env().validate()

    def test_production_requires_webhook_secret(self, monkeypatch):
        monkeypatch.setenv("ENVIRONMENT", "production")
        monkeypatch.setenv("SUPABASE_JWT_SECRET", "a-real-secret")

        with pytest.raises(ValueError, match="STRIPE_WEBHOOK_SECRET"):
            Config.from_env().validate()

    def test_configured_production_passes(self, monkeypatch):
        monkeypatch.setenv("ENVIRONMENT", "production")
        monkeypatch.setenv("SUPABASE_JWT_SECRET", "a-real-secret")
        monkeypatch.setenv("STRIPE_WEBHOOK_SECRET", "whsec_live")

        Config.from_env().validate()

    def test_development_warns_about_default_secret(self, caplog):
        with caplog.at_level(logging.WARNING, logger="storefront.core.config"):
            Config.from_env().validate()

        assert "default SUPABASE_JWT_SECRET" in caplog.text

    def test_tax_rate_bounds(self, monkeypatch):
        monkeypatch.setenv("TAX_RATE", "1.5")

        with pytest.raises(ValueError, match="TAX_RATE"):
            Config.from_env().validate()


def test_load_config_applies_overrides():
    config = load_config({"database.url": "sqlite://", "supabase.jwt_secret": "override"})

    assert config.database.url == "sqlite://"
    assert config.supabase.jwt_secret == "override"
    assert config.supabase.jwt_secret != DEFAULT_JWT_SECRET

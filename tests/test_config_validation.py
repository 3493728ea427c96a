"""Tests for configuration validation and health checks."""

from __future__ import annotations

import importlib.util
import os
from unittest.mock import patch

import pytest


def _load_real_config():
    """Load storefront/config.py directly.

    conftest.py replaces storefront.config in sys.modules to keep .env files
    out of the test run, so the real module is loaded from its path.
    """
    spec = importlib.util.spec_from_file_location(
        "storefront_config_under_test", "storefront/config.py"
    )
    assert spec is not None
    mod = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(mod)  # type: ignore[union-attr]
    return mod


@pytest.fixture(scope="module")
def config():
    return _load_real_config()


def _settings(config, **overrides):
    values = {
        "database_url": "postgresql+psycopg://db.internal/storefront",
        "secret_key": "s" * 40,
        "stripe_secret_key": "sk_test_abc",
        "stripe_webhook_secret": "whsec_abc",
        "slack_payment_webhook_url": "https://hooks.slack.com/services/T/B/X",
    }
    values.update(overrides)
    return config.Settings(**values)


class TestValidateSettings:
    def test_fully_configured_has_no_warnings(self, config) -> None:
        assert config.validate_settings(_settings(config)) == []

    def test_missing_stripe_key(self, config) -> None:
        warnings = config.validate_settings(_settings(config, stripe_secret_key=""))
        assert any("STRIPE_SECRET_KEY is not set" in w for w in warnings)

    def test_publishable_key_in_secret_slot(self, config) -> None:
        warnings = config.validate_settings(
            _settings(config, stripe_secret_key="pk_test_abc")
        )
        assert any("does not look like" in w for w in warnings)

    def test_restricted_key_accepted(self, config) -> None:
        warnings = config.validate_settings(
            _settings(config, stripe_secret_key="rk_live_abc")
        )
        assert warnings == []

    def test_missing_webhook_secret(self, config) -> None:
        warnings = config.validate_settings(_settings(config, stripe_webhook_secret=""))
        assert any("STRIPE_WEBHOOK_SECRET" in w for w in warnings)

    def test_missing_secret_key(self, config) -> None:
        warnings = config.validate_settings(_settings(config, secret_key=""))
        assert any("SECRET_KEY is not set" in w for w in warnings)

    def test_short_secret_key(self, config) -> None:
        warnings = config.validate_settings(_settings(config, secret_key="short"))
        assert any("shorter than 32" in w for w in warnings)

    def test_missing_notification_webhook(self, config) -> None:
        warnings = config.validate_settings(
            _settings(config, slack_payment_webhook_url="")
        )
        assert any("SLACK_PAYMENT_WEBHOOK_URL" in w for w in warnings)

    def test_localhost_database_in_production(self, config) -> None:
        s = _settings(config, database_url="postgresql+psycopg://localhost/storefront")
        with patch.dict(os.environ, {"ENVIRONMENT": "production"}):
            warnings = config.validate_settings(s)
        assert any("localhost in production" in w for w in warnings)

    def test_localhost_database_in_dev(self, config) -> None:
        s = _settings(config, database_url="postgresql+psycopg://localhost/storefront")
        with patch.dict(os.environ, {"ENVIRONMENT": "dev"}):
            assert config.validate_settings(s) == []


class TestSettingsFromEnvironment:
    def test_env_overrides(self) -> None:
        with patch.dict(
            os.environ,
            {
                "DEFAULT_REGION": "GB",
                "COOKIE_SECURE": "false",
                "PENDING_PURCHASE_TTL_HOURS": "24",
            },
        ):
            mod = _load_real_config()
        assert mod.settings.default_region == "GB"
        assert mod.settings.cookie_secure is False
        assert mod.settings.pending_purchase_ttl_hours == 24


class TestHealthEndpoints:
    def test_health(self, client) -> None:
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.json()["status"] == "ok"

    def test_readiness(self, client) -> None:
        resp = client.get("/health/ready")
        assert resp.status_code == 200
        body = resp.json()
        assert body["checks"]["database"] == "ok"
        assert body["checks"]["stripe"] == "ok"

    def test_metrics(self, client) -> None:
        resp = client.get("/metrics")
        assert resp.status_code == 200
        assert "storefront_http_requests_total" in resp.text

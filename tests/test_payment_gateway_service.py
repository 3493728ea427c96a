"""Unit tests for the Stripe gateway service."""

import json
from unittest.mock import patch

import pytest
import stripe

from storefront.services import payment_gateway


@pytest.fixture()
def configured_gateway(monkeypatch: pytest.MonkeyPatch) -> payment_gateway.StripeGateway:
    monkeypatch.setattr(payment_gateway.settings, "stripe_secret_key", "sk_test_abc123")
    monkeypatch.setattr(payment_gateway.settings, "stripe_webhook_secret", "whsec_abc")
    return payment_gateway.StripeGateway()


@pytest.fixture()
def unconfigured_gateway(monkeypatch: pytest.MonkeyPatch) -> payment_gateway.StripeGateway:
    monkeypatch.setattr(payment_gateway.settings, "stripe_secret_key", "")
    monkeypatch.setattr(payment_gateway.settings, "stripe_webhook_secret", "")
    return payment_gateway.StripeGateway()


def test_is_configured(configured_gateway, unconfigured_gateway):
    assert configured_gateway.is_configured() is True
    assert configured_gateway.webhook_configured() is True
    assert unconfigured_gateway.is_configured() is False
    assert unconfigured_gateway.webhook_configured() is False


def test_unconfigured_gateway_refuses_calls(unconfigured_gateway):
    with pytest.raises(RuntimeError):
        unconfigured_gateway.retrieve_coupon("SAVE10")


class TestCoupons:
    def test_retrieve_coupon_passes_api_key(self, configured_gateway):
        with patch.object(
            stripe.Coupon, "retrieve", return_value={"id": "SAVE10", "percent_off": 10}
        ) as retrieve:
            coupon = configured_gateway.retrieve_coupon("SAVE10")
        retrieve.assert_called_once_with("SAVE10", api_key="sk_test_abc123")
        assert coupon == {"id": "SAVE10", "percent_off": 10}

    def test_missing_coupon_returns_none(self, configured_gateway):
        error = stripe.InvalidRequestError(
            "No such coupon: 'NOPE'", "id", code="resource_missing", http_status=404
        )
        with patch.object(stripe.Coupon, "retrieve", side_effect=error):
            assert configured_gateway.retrieve_coupon("NOPE") is None

    def test_connection_error_raises_provider_error(self, configured_gateway):
        error = stripe.APIConnectionError("Network down")
        with patch.object(stripe.Coupon, "retrieve", side_effect=error):
            with pytest.raises(payment_gateway.PaymentProviderError):
                configured_gateway.retrieve_coupon("SAVE10")


class TestPaymentIntents:
    def test_create_sends_minor_units_and_metadata(self, configured_gateway):
        with patch.object(
            stripe.PaymentIntent,
            "create",
            return_value={"id": "pi_1", "client_secret": "pi_1_secret"},
        ) as create:
            intent = configured_gateway.create_payment_intent(
                amount=120,
                currency="AUD",
                metadata={"original_amount": "12000"},
                receipt_email="pat@example.com",
            )
        kwargs = create.call_args.kwargs
        assert kwargs["amount"] == 120
        assert kwargs["currency"] == "aud"
        assert kwargs["metadata"] == {"original_amount": "12000"}
        assert kwargs["automatic_payment_methods"] == {"enabled": True}
        assert kwargs["api_key"] == "sk_test_abc123"
        assert intent["id"] == "pi_1"

    def test_create_failure_raises_provider_error(self, configured_gateway):
        error = stripe.CardError("Your card was declined", None, code="card_declined")
        with patch.object(stripe.PaymentIntent, "create", side_effect=error):
            with pytest.raises(payment_gateway.PaymentProviderError) as exc_info:
                configured_gateway.create_payment_intent(120, "AUD", {})
        assert exc_info.value.code == "card_declined"

    def test_retrieve_normalizes_metadata(self, configured_gateway):
        with patch.object(
            stripe.PaymentIntent,
            "retrieve",
            return_value={"id": "pi_1", "status": "succeeded", "metadata": None},
        ):
            intent = configured_gateway.retrieve_payment_intent("pi_1")
        assert intent["metadata"] == {}

    def test_retrieve_missing_intent(self, configured_gateway):
        error = stripe.InvalidRequestError(
            "No such payment_intent", "id", code="resource_missing", http_status=404
        )
        with patch.object(stripe.PaymentIntent, "retrieve", side_effect=error):
            with pytest.raises(payment_gateway.PaymentProviderError) as exc_info:
                configured_gateway.retrieve_payment_intent("pi_missing")
        assert exc_info.value.code == "resource_missing"


class TestWebhook:
    def test_construct_event_returns_plain_dict(self, configured_gateway):
        payload = json.dumps({"id": "evt_1", "type": "payment_intent.succeeded"}).encode()
        with patch.object(stripe.Webhook, "construct_event") as construct:
            event = configured_gateway.construct_event(payload, "t=1,v1=abc")
        construct.assert_called_once_with(payload, "t=1,v1=abc", "whsec_abc")
        assert event == {"id": "evt_1", "type": "payment_intent.succeeded"}

    def test_bad_signature_raises_value_error(self, configured_gateway):
        error = stripe.SignatureVerificationError("bad", "t=1,v1=abc")
        with patch.object(stripe.Webhook, "construct_event", side_effect=error):
            with pytest.raises(ValueError):
                configured_gateway.construct_event(b"{}", "t=1,v1=abc")

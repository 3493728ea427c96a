"""Stripe payment gateway integration."""

import json
import logging
from typing import Any

import stripe

from storefront.config import settings

logger = logging.getLogger(__name__)


class PaymentProviderError(Exception):
    """The provider could not be reached or refused the request."""

    def __init__(self, message: str, code: str | None = None) -> None:
        super().__init__(message)
        self.code = code


def _as_dict(obj: Any) -> dict[str, Any]:
    if obj is None:
        return {}
    return dict(obj)


class StripeGateway:
    """Thin wrapper around the Stripe SDK.

    Every call passes the secret key explicitly so no module-level Stripe
    state is shared between requests.
    """

    def __init__(self) -> None:
        self._secret_key = settings.stripe_secret_key
        self._webhook_secret = settings.stripe_webhook_secret

    def is_configured(self) -> bool:
        return bool(self._secret_key)

    def webhook_configured(self) -> bool:
        return bool(self._webhook_secret)

    def _require_configured(self) -> None:
        if not self.is_configured():
            raise RuntimeError("Stripe is not configured")

    # ── Coupons ──────────────────────────────────────────

    def retrieve_coupon(self, code: str) -> dict[str, Any] | None:
        """Look up a coupon by its id. Returns None when Stripe has no such coupon."""
        self._require_configured()
        try:
            coupon = stripe.Coupon.retrieve(code, api_key=self._secret_key)
        except stripe.InvalidRequestError as e:
            if getattr(e, "code", None) == "resource_missing" or e.http_status == 404:
                logger.info("Stripe coupon not found: %s", code)
                return None
            raise PaymentProviderError(str(e), getattr(e, "code", None)) from e
        except stripe.StripeError as e:
            logger.warning("Stripe coupon lookup failed: %s", e)
            raise PaymentProviderError(str(e), getattr(e, "code", None)) from e
        return _as_dict(coupon)

    # ── Payment intents ──────────────────────────────────

    def create_payment_intent(
        self,
        amount: int,
        currency: str,
        metadata: dict[str, str],
        description: str | None = None,
        receipt_email: str | None = None,
    ) -> dict[str, Any]:
        """Register a charge with Stripe. ``amount`` is in minor units."""
        self._require_configured()
        try:
            intent = stripe.PaymentIntent.create(
                amount=amount,
                currency=currency.lower(),
                metadata=metadata,
                description=description,
                receipt_email=receipt_email,
                automatic_payment_methods={"enabled": True},
                api_key=self._secret_key,
            )
        except stripe.StripeError as e:
            message = getattr(e, "user_message", None) or str(e)
            logger.error("Stripe create_payment_intent failed: %s", message)
            raise PaymentProviderError(message, getattr(e, "code", None)) from e
        logger.info(
            "Created Stripe payment intent: %s",
            intent["id"],
            extra={"payment_intent_id": intent["id"], "currency": currency},
        )
        return _as_dict(intent)

    def retrieve_payment_intent(self, intent_id: str) -> dict[str, Any]:
        self._require_configured()
        try:
            intent = stripe.PaymentIntent.retrieve(intent_id, api_key=self._secret_key)
        except stripe.InvalidRequestError as e:
            logger.warning("Stripe payment intent lookup rejected: %s", e)
            code = getattr(e, "code", None) or "invalid_request"
            raise PaymentProviderError(str(e), code) from e
        except stripe.StripeError as e:
            logger.error("Stripe retrieve_payment_intent failed: %s", e)
            raise PaymentProviderError(str(e), getattr(e, "code", None)) from e
        result = _as_dict(intent)
        result["metadata"] = _as_dict(result.get("metadata"))
        return result

    # ── Webhook ──────────────────────────────────────────

    def construct_event(self, payload: bytes, signature: str) -> dict[str, Any]:
        """Verify the Stripe-Signature header and parse the event.

        Raises ``ValueError`` for a bad payload or signature.
        """
        try:
            stripe.Webhook.construct_event(payload, signature, self._webhook_secret)
        except stripe.SignatureVerificationError as e:
            raise ValueError("Invalid signature") from e
        # plain dicts, not StripeObjects
        return json.loads(payload)


stripe_gateway = StripeGateway()

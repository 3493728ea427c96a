"""Build provider payment intents from a checkout quote.

The intent carries everything needed to reconstruct the sale later from a
webhook, without a local database lookup.
"""
from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, fields
from uuid import UUID

from storefront.errors import api_error
from storefront.metrics import PAYMENT_INTENTS_CREATED
from storefront.models.billing import Product
from storefront.schemas.checkout import CustomerDetails
from storefront.services.coupons import Coupon, CouponEvaluation
from storefront.services.payment_gateway import (
    PaymentProviderError,
    StripeGateway,
    stripe_gateway,
)
from storefront.services.regional_pricing import RegionalPrice

logger = logging.getLogger(__name__)

# Stripe refuses charges below 50 minor units in every supported currency
MINIMUM_CHARGE = 50


@dataclass(frozen=True)
class IntentMetadata:
    product_id: str
    product_name: str
    original_amount: int
    discount_amount: int
    currency: str
    customer_email: str = ""
    customer_first_name: str = ""
    customer_last_name: str = ""
    coupon_id: str | None = None
    coupon_name: str | None = None
    region: str | None = None

    def to_provider(self) -> dict[str, str]:
        """Flatten to Stripe's string-to-string metadata map, dropping empties."""
        return {
            key: str(value)
            for key, value in asdict(self).items()
            if value is not None and value != ""
        }

    @classmethod
    def from_provider(cls, data: dict[str, str] | None) -> IntentMetadata | None:
        """Parse metadata written by :meth:`to_provider`.

        Returns None when required keys are missing or malformed, e.g. for an
        intent created outside this service.
        """
        data = data or {}
        known = {f.name for f in fields(cls)}
        values: dict[str, object] = {k: v for k, v in data.items() if k in known}
        try:
            values["original_amount"] = int(data["original_amount"])
            values["discount_amount"] = int(data.get("discount_amount") or 0)
            return cls(**values)  # type: ignore[arg-type]
        except (KeyError, TypeError, ValueError):
            return None

    @property
    def final_amount(self) -> int:
        return self.original_amount - self.discount_amount

    @property
    def customer_name(self) -> str:
        return f"{self.customer_first_name} {self.customer_last_name}".strip()


@dataclass(frozen=True)
class CheckoutQuote:
    product_id: UUID
    product_name: str
    region: str
    currency: str
    original_amount: int
    discount_amount: int
    final_amount: int
    coupon: Coupon | None = None

    @classmethod
    def build(
        cls,
        product: Product,
        price: RegionalPrice,
        evaluation: CouponEvaluation,
    ) -> CheckoutQuote:
        discount = evaluation.discount_amount if evaluation.valid else 0
        if price.base_price >= MINIMUM_CHARGE:
            # a coupon lowers the charge to the provider minimum, never below it
            discount = min(discount, price.base_price - MINIMUM_CHARGE)
        return cls(
            product_id=product.id,
            product_name=product.name,
            region=price.region,
            currency=price.currency,
            original_amount=price.base_price,
            discount_amount=discount,
            final_amount=price.base_price - discount,
            coupon=evaluation.coupon if evaluation.valid else None,
        )

    def metadata_for(self, customer: CustomerDetails) -> IntentMetadata:
        return IntentMetadata(
            product_id=str(self.product_id),
            product_name=self.product_name,
            customer_email=customer.email,
            customer_first_name=customer.first_name,
            customer_last_name=customer.last_name,
            original_amount=self.original_amount,
            discount_amount=self.discount_amount,
            currency=self.currency,
            coupon_id=self.coupon.id if self.coupon else None,
            coupon_name=self.coupon.display_name if self.coupon else None,
            region=self.region,
        )


@dataclass(frozen=True)
class BuiltIntent:
    intent_id: str
    client_secret: str
    amount: int
    currency: str
    metadata: IntentMetadata


class PaymentIntentBuilder:
    def __init__(self, gateway: StripeGateway | None = None) -> None:
        self.gateway = gateway or stripe_gateway

    @staticmethod
    def check_quote(quote: CheckoutQuote) -> None:
        if not (
            quote.final_amount == quote.original_amount - quote.discount_amount
            and 0 <= quote.final_amount <= quote.original_amount
        ):
            raise ValueError(
                f"Inconsistent quote: {quote.original_amount} - "
                f"{quote.discount_amount} != {quote.final_amount}"
            )
        if quote.final_amount < MINIMUM_CHARGE:
            raise api_error(
                400,
                "amount_below_minimum",
                "The amount to charge is below the minimum the payment provider accepts",
                {"amount": quote.final_amount, "minimum": MINIMUM_CHARGE},
            )

    def build(self, quote: CheckoutQuote, customer: CustomerDetails) -> BuiltIntent:
        self.check_quote(quote)
        metadata = quote.metadata_for(customer)
        try:
            intent = self.gateway.create_payment_intent(
                amount=quote.final_amount,
                currency=quote.currency,
                metadata=metadata.to_provider(),
                description=quote.product_name,
                receipt_email=customer.email,
            )
        except RuntimeError as exc:
            raise api_error(
                503, "payment_provider_unconfigured", "Payments are not available"
            ) from exc
        except PaymentProviderError as exc:
            raise api_error(
                502,
                "payment_provider_error",
                "The payment provider could not create the payment",
                {"provider_code": exc.code} if exc.code else None,
            ) from exc

        PAYMENT_INTENTS_CREATED.labels(currency=quote.currency).inc()
        return BuiltIntent(
            intent_id=intent["id"],
            client_secret=intent["client_secret"],
            amount=quote.final_amount,
            currency=quote.currency,
            metadata=metadata,
        )


payment_intent_builder = PaymentIntentBuilder()

"""Coupon evaluation against the payment provider's coupon registry.

A coupon is a bonus, never a gate: unknown codes, inactive coupons and
provider outages all evaluate to "no discount" and checkout carries on at the
full price.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from storefront.metrics import COUPON_LOOKUPS
from storefront.services.payment_gateway import (
    PaymentProviderError,
    StripeGateway,
    stripe_gateway,
)

logger = logging.getLogger(__name__)

NO_CODE = "no_code"
APPLIED = "applied"
NOT_FOUND = "not_found"
INACTIVE = "inactive"
CURRENCY_MISMATCH = "currency_mismatch"
PROVIDER_UNAVAILABLE = "provider_unavailable"

_MESSAGES = {
    APPLIED: "Coupon applied",
    NOT_FOUND: "Invalid coupon code",
    INACTIVE: "This coupon is no longer active",
    CURRENCY_MISMATCH: "This coupon cannot be used with this currency",
    PROVIDER_UNAVAILABLE: "Coupons are temporarily unavailable",
}


@dataclass(frozen=True)
class Coupon:
    id: str
    name: str | None = None
    percent_off: Decimal | None = None
    amount_off: int | None = None
    currency: str | None = None

    @classmethod
    def from_provider(cls, data: dict[str, Any]) -> Coupon:
        percent = data.get("percent_off")
        currency = data.get("currency")
        return cls(
            id=data["id"],
            name=data.get("name"),
            percent_off=Decimal(str(percent)) if percent is not None else None,
            amount_off=data.get("amount_off"),
            currency=currency.upper() if currency else None,
        )

    @property
    def display_name(self) -> str:
        return self.name or self.id


@dataclass(frozen=True)
class CouponEvaluation:
    valid: bool
    discount_amount: int = 0
    coupon: Coupon | None = None
    reason: str = NO_CODE

    @property
    def message(self) -> str | None:
        return _MESSAGES.get(self.reason)

    def final_amount(self, base_amount: int) -> int:
        return base_amount - self.discount_amount


def compute_discount(coupon: Coupon, base_amount: int) -> int:
    """Discount in minor units. Always within ``0..base_amount``."""
    if base_amount <= 0:
        return 0
    if coupon.percent_off is not None:
        percent = min(max(coupon.percent_off, Decimal(0)), Decimal(100))
        discount = (Decimal(base_amount) * percent / Decimal(100)).quantize(
            Decimal(1), rounding=ROUND_HALF_UP
        )
        return min(int(discount), base_amount)
    if coupon.amount_off is not None:
        return min(max(int(coupon.amount_off), 0), base_amount)
    return 0


class CouponEvaluator:
    def __init__(self, gateway: StripeGateway | None = None) -> None:
        self.gateway = gateway or stripe_gateway

    def _lookup(self, code: str) -> dict[str, Any] | None:
        return self.gateway.retrieve_coupon(code)

    def evaluate(
        self, code: str | None, base_amount: int, currency: str
    ) -> CouponEvaluation:
        code = code.strip() if code else None
        if not code:
            return CouponEvaluation(valid=False, reason=NO_CODE)

        try:
            data = self._lookup(code)
        except (PaymentProviderError, RuntimeError) as exc:
            logger.warning("Coupon lookup failed, continuing without discount: %s", exc)
            COUPON_LOOKUPS.labels(outcome=PROVIDER_UNAVAILABLE).inc()
            return CouponEvaluation(valid=False, reason=PROVIDER_UNAVAILABLE)

        if data is None:
            COUPON_LOOKUPS.labels(outcome=NOT_FOUND).inc()
            return CouponEvaluation(valid=False, reason=NOT_FOUND)

        coupon = Coupon.from_provider(data)
        if not data.get("valid", True):
            COUPON_LOOKUPS.labels(outcome=INACTIVE).inc()
            return CouponEvaluation(valid=False, coupon=coupon, reason=INACTIVE)
        if (
            coupon.percent_off is None
            and coupon.currency
            and coupon.currency != currency.upper()
        ):
            COUPON_LOOKUPS.labels(outcome=CURRENCY_MISMATCH).inc()
            return CouponEvaluation(
                valid=False, coupon=coupon, reason=CURRENCY_MISMATCH
            )

        discount = compute_discount(coupon, base_amount)
        COUPON_LOOKUPS.labels(outcome=APPLIED).inc()
        logger.info(
            "Coupon %s applied: %s off %s %s",
            coupon.id,
            discount,
            base_amount,
            currency,
        )
        return CouponEvaluation(
            valid=True, discount_amount=discount, coupon=coupon, reason=APPLIED
        )


coupon_evaluator = CouponEvaluator()

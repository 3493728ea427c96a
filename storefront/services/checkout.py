"""Checkout orchestration.

Every call works on an explicit :class:`CheckoutContext` built per request;
nothing about an in-flight checkout lives in module state.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass

from fastapi import BackgroundTasks
from sqlalchemy.orm import Session
from starlette.requests import Request

from storefront.config import settings
from storefront.errors import api_error
from storefront.models.billing import Product, ProductKind
from storefront.schemas.checkout import (
    CheckoutProductRead,
    CouponRead,
    CouponValidateRequest,
    CouponValidateResponse,
    PaymentIntentCreateRequest,
    PaymentIntentCreateResponse,
    ProfileCompletionRequest,
)
from storefront.services.accounts import AccountService
from storefront.services.catalog import products as product_service
from storefront.services.coupons import Coupon, CouponEvaluator, coupon_evaluator
from storefront.services.identity_router import PostPaymentRouter, RoutingResult
from storefront.services.notification import (
    NotificationDispatcher,
    TransactionSummary,
    notification_dispatcher,
)
from storefront.services.payment_intents import (
    CheckoutQuote,
    PaymentIntentBuilder,
    payment_intent_builder,
)
from storefront.services.regional_pricing import (
    RegionalPrice,
    RegionalPricingResolver,
    RequestOrigin,
    regional_pricing,
)

logger = logging.getLogger(__name__)


@dataclass
class CheckoutContext:
    db: Session
    origin: RequestOrigin
    request: Request | None = None
    background_tasks: BackgroundTasks | None = None

    @classmethod
    def from_request(
        cls,
        db: Session,
        request: Request,
        background_tasks: BackgroundTasks | None = None,
        region: str | None = None,
    ) -> CheckoutContext:
        return cls(
            db=db,
            origin=RequestOrigin.from_request(request, region_override=region),
            request=request,
            background_tasks=background_tasks,
        )


def _coupon_read(coupon: Coupon | None) -> CouponRead | None:
    if coupon is None:
        return None
    return CouponRead(
        id=coupon.id,
        name=coupon.name,
        percent_off=float(coupon.percent_off) if coupon.percent_off is not None else None,
        amount_off=coupon.amount_off,
        currency=coupon.currency,
    )


def transaction_summary(result: RoutingResult) -> TransactionSummary:
    return TransactionSummary.from_metadata(
        result.metadata,
        result.amount,
        result.currency,
        flow=result.flow,
        payment_intent_id=result.payment_intent_id,
        customer_name=result.person.full_name if result.person else "",
    )


class CheckoutService:
    def __init__(
        self,
        ctx: CheckoutContext,
        pricing: RegionalPricingResolver | None = None,
        coupons: CouponEvaluator | None = None,
        intents: PaymentIntentBuilder | None = None,
        notifier: NotificationDispatcher | None = None,
    ) -> None:
        self.ctx = ctx
        self.pricing = pricing or regional_pricing
        self.coupons = coupons or coupon_evaluator
        self.intents = intents or payment_intent_builder
        self.notifier = notifier or notification_dispatcher

    # ── Pricing ──────────────────────────────────────────

    def _price(self, product: Product) -> RegionalPrice:
        try:
            return self.pricing.price_for(product, self.ctx.origin)
        except LookupError as exc:
            raise api_error(
                409,
                "product_not_priced",
                "This product is not available for purchase",
            ) from exc

    def product_view(self, product_id: str) -> CheckoutProductRead:
        product = product_service.get_active(self.ctx.db, product_id)
        price = self._price(product)
        return CheckoutProductRead(
            id=product.id,
            name=product.name,
            slug=product.slug,
            description=product.description,
            kind=product.kind.value,
            billing_period=product.billing_period.value if product.billing_period else None,
            region=price.region,
            currency=price.currency,
            symbol=price.symbol,
            amount=price.base_price,
        )

    # ── Coupons ──────────────────────────────────────────

    def validate_coupon(self, payload: CouponValidateRequest) -> CouponValidateResponse:
        evaluation = self.coupons.evaluate(
            payload.coupon_code, payload.amount, payload.currency
        )
        discount = evaluation.discount_amount if evaluation.valid else 0
        return CouponValidateResponse(
            valid=evaluation.valid,
            coupon=_coupon_read(evaluation.coupon) if evaluation.valid else None,
            discount_amount=discount,
            final_amount=payload.amount - discount,
            message=evaluation.message,
        )

    def quote(self, product: Product, coupon_code: str | None) -> CheckoutQuote:
        price = self._price(product)
        evaluation = self.coupons.evaluate(coupon_code, price.base_price, price.currency)
        return CheckoutQuote.build(product, price, evaluation)

    # ── Payment intents ──────────────────────────────────

    def create_payment_intent(
        self, payload: PaymentIntentCreateRequest
    ) -> PaymentIntentCreateResponse:
        product = product_service.get_active(self.ctx.db, str(payload.product_id))
        if product.kind == ProductKind.subscription:
            raise api_error(
                400,
                "subscription_checkout_unsupported",
                "Subscriptions cannot be bought through one-off checkout",
            )
        quote = self.quote(product, payload.coupon_code)
        built = self.intents.build(quote, payload.customer)
        return PaymentIntentCreateResponse(
            client_secret=built.client_secret,
            payment_intent_id=built.intent_id,
            amount=built.amount,
            original_amount=quote.original_amount,
            discount_amount=quote.discount_amount,
            currency=built.currency,
            applied_coupon=quote.coupon.id if quote.coupon else None,
            publishable_key=settings.stripe_publishable_key or None,
        )

    # ── Completion ───────────────────────────────────────

    def _notify(self, result: RoutingResult) -> None:
        if self.ctx.background_tasks is None:
            logger.warning("No background task queue, payment notification dropped")
            return
        self.notifier.schedule(self.ctx.background_tasks, transaction_summary(result))

    def complete_purchase(
        self, payment_intent_id: str, client_secret: str | None, customer=None
    ) -> RoutingResult:
        router = PostPaymentRouter(self.ctx.db)
        result = router.confirm(
            payment_intent_id, client_secret, customer, self.ctx.request
        )
        if result.flow == "new" or result.notify:
            self._notify(result)
        return result

    def complete_profile(
        self, pending_token: str | None, profile: ProfileCompletionRequest
    ) -> RoutingResult:
        router = PostPaymentRouter(self.ctx.db)
        return router.complete_profile(pending_token, profile, self.ctx.request)

    def email_exists(self, email: str) -> bool:
        return AccountService(self.ctx.db).email_exists(email)

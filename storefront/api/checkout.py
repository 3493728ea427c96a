"""Checkout API routes used by the storefront UI."""

from fastapi import APIRouter, BackgroundTasks, Cookie, Depends, Query, Request, Response
from pydantic import EmailStr
from sqlalchemy.orm import Session

from storefront.api.deps import get_db
from storefront.schemas.checkout import (
    CheckoutProductRead,
    CompletePurchaseRequest,
    CompletePurchaseResponse,
    CouponValidateRequest,
    CouponValidateResponse,
    EmailCheckResponse,
    PaymentIntentCreateRequest,
    PaymentIntentCreateResponse,
    ProfileCompletionRequest,
    ProfileCompletionResponse,
)
from storefront.services import auth_flow
from storefront.services.checkout import CheckoutContext, CheckoutService

router = APIRouter(prefix="/checkout", tags=["checkout"])


@router.get("/products/{product_id}", response_model=CheckoutProductRead)
def get_checkout_product(
    product_id: str,
    request: Request,
    region: str | None = Query(default=None, min_length=2, max_length=2),
    db: Session = Depends(get_db),
):
    ctx = CheckoutContext.from_request(db, request, region=region)
    return CheckoutService(ctx).product_view(product_id)


@router.post("/coupons/validate", response_model=CouponValidateResponse)
def validate_coupon(
    payload: CouponValidateRequest, request: Request, db: Session = Depends(get_db)
):
    ctx = CheckoutContext.from_request(db, request)
    return CheckoutService(ctx).validate_coupon(payload)


@router.post(
    "/payment-intents", response_model=PaymentIntentCreateResponse, status_code=201
)
def create_payment_intent(
    payload: PaymentIntentCreateRequest,
    request: Request,
    db: Session = Depends(get_db),
):
    ctx = CheckoutContext.from_request(db, request, region=payload.region)
    return CheckoutService(ctx).create_payment_intent(payload)


@router.post("/complete", response_model=CompletePurchaseResponse)
def complete_purchase(
    payload: CompletePurchaseRequest,
    request: Request,
    response: Response,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
):
    ctx = CheckoutContext.from_request(db, request, background_tasks)
    result = CheckoutService(ctx).complete_purchase(
        payload.payment_intent_id, payload.client_secret, payload.customer
    )
    if result.pending_token:
        auth_flow.set_pending_purchase_cookie(response, result.pending_token)
    if result.session_token:
        auth_flow.set_session_cookie(response, result.session_token)
    return CompletePurchaseResponse(
        destination=result.destination,
        flow=result.flow,
        product_name=result.metadata.product_name,
        amount=result.amount,
        currency=result.currency,
        purchase_id=result.purchase.id if result.purchase else None,
        states=[state.value for state in result.states],
    )


@router.post("/complete-profile", response_model=ProfileCompletionResponse)
def complete_profile(
    payload: ProfileCompletionRequest,
    request: Request,
    response: Response,
    pending_purchase: str | None = Cookie(default=None),
    db: Session = Depends(get_db),
):
    ctx = CheckoutContext.from_request(db, request)
    result = CheckoutService(ctx).complete_profile(pending_purchase, payload)
    auth_flow.set_session_cookie(response, result.session_token)
    auth_flow.clear_pending_purchase_cookie(response)
    return ProfileCompletionResponse(
        destination=result.destination,
        person_id=result.person.id,
        purchase_id=result.purchase.id,
    )


@router.get("/check-email", response_model=EmailCheckResponse)
def check_email(email: EmailStr, request: Request, db: Session = Depends(get_db)):
    ctx = CheckoutContext.from_request(db, request)
    normalized = str(email).strip().lower()
    return EmailCheckResponse(
        email=normalized, exists=CheckoutService(ctx).email_exists(normalized)
    )

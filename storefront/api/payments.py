"""Payment provider webhook routes."""

import logging

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from storefront.api.deps import get_db
from storefront.services.notification import notification_dispatcher
from storefront.services.payment_gateway import stripe_gateway
from storefront.services.webhooks import StripeWebhookService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/payments", tags=["payments"])


@router.post("/webhook/stripe")
async def stripe_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
) -> dict:
    """Handle a Stripe webhook. No auth, the signature is verified instead."""
    if not stripe_gateway.webhook_configured():
        raise HTTPException(status_code=503, detail="Payment webhook not configured")

    body = await request.body()
    signature = request.headers.get("stripe-signature", "")
    try:
        event = stripe_gateway.construct_event(body, signature)
    except ValueError:
        logger.warning("Rejected Stripe webhook with bad payload or signature")
        raise HTTPException(status_code=400, detail="Invalid signature")

    try:
        service = StripeWebhookService(db)
        outcome = service.handle(event)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    db.commit()
    for summary in service.notifications:
        notification_dispatcher.schedule(background_tasks, summary)

    return {"status": "ok", "outcome": outcome}

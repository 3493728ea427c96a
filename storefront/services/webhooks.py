"""Stripe webhook reconciliation."""

import logging
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from storefront.models.billing import WebhookEvent, WebhookEventStatus
from storefront.services.accounts import AccountService
from storefront.services.common import now
from storefront.services.notification import TransactionSummary
from storefront.services.payment_intents import IntentMetadata
from storefront.services.purchases import PurchaseService

logger = logging.getLogger(__name__)

PROVIDER = "stripe"


class StripeWebhookService:
    def __init__(self, db: Session) -> None:
        self.db = db
        # summaries of purchases this delivery recorded, for the caller to send
        self.notifications: list[TransactionSummary] = []

    def _seen(self, event_id: str) -> bool:
        stmt = select(WebhookEvent.id).where(WebhookEvent.event_id == event_id)
        return self.db.scalar(stmt) is not None

    def handle(self, event: dict[str, Any]) -> str:
        """Store and process one verified event. Returns the outcome.

        Duplicate deliveries are acknowledged without being processed again.
        Flushes, the caller commits.
        """
        event_id = str(event.get("id") or "")
        event_type = event.get("type", "")
        if not event_id:
            raise ValueError("Event has no id")
        if self._seen(event_id):
            logger.info("Duplicate webhook %s ignored", event_id, extra={"event_id": event_id})
            return "duplicate"

        webhook = WebhookEvent(
            provider=PROVIDER,
            event_type=event_type,
            event_id=event_id,
            payload=event,
            status=WebhookEventStatus.pending,
        )
        self.db.add(webhook)
        self.db.flush()

        intent = (event.get("data") or {}).get("object") or {}
        if event_type == "payment_intent.succeeded":
            self._payment_succeeded(webhook, intent)
        elif event_type == "payment_intent.payment_failed":
            error = (intent.get("last_payment_error") or {}).get("message")
            logger.warning(
                "Payment failed for %s: %s",
                intent.get("id"),
                error or "unknown error",
                extra={"payment_intent_id": intent.get("id"), "event_id": event_id},
            )
            webhook.status = WebhookEventStatus.processed
            webhook.processed_at = now()
        else:
            webhook.status = WebhookEventStatus.processed
            webhook.processed_at = now()

        self.db.flush()
        logger.info("Processed webhook: %s %s", event_type, event_id)
        return webhook.status.value

    def _payment_succeeded(self, webhook: WebhookEvent, intent: dict[str, Any]) -> None:
        intent_id = intent.get("id")
        metadata = IntentMetadata.from_provider(dict(intent.get("metadata") or {}))
        if not intent_id or metadata is None or intent.get("status") != "succeeded":
            webhook.status = WebhookEventStatus.failed
            webhook.error_message = "Payment intent without checkout metadata"
            return

        person = (
            AccountService(self.db).get_by_email(metadata.customer_email)
            if metadata.customer_email
            else None
        )
        if person is None:
            # The purchase is written when the customer completes their profile
            logger.info(
                "No account yet for %s, awaiting profile completion",
                intent_id,
                extra={"payment_intent_id": intent_id},
            )
        else:
            amount = int(intent.get("amount_received") or intent.get("amount") or 0)
            purchases = PurchaseService(self.db)
            purchase, created = purchases.record(
                person.id, intent_id, metadata, amount
            )
            if purchases.claim_notification(purchase):
                self.notifications.append(
                    TransactionSummary.from_metadata(
                        metadata,
                        amount,
                        str(intent.get("currency") or metadata.currency).upper(),
                        flow="existing",
                        payment_intent_id=intent_id,
                        customer_name=person.full_name,
                    )
                )
            if created:
                logger.info(
                    "Purchase for %s recorded from webhook",
                    intent_id,
                    extra={"payment_intent_id": intent_id},
                )
        webhook.status = WebhookEventStatus.processed
        webhook.processed_at = now()

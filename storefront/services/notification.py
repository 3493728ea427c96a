"""Payment notifications to the team's messaging webhook.

Dispatch is best effort: one POST, no retry, and failures are only logged.
Callers queue :meth:`NotificationDispatcher.dispatch` as a background task so
it runs after the checkout response has been sent.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal

import httpx
from fastapi import BackgroundTasks

from storefront.config import settings
from storefront.metrics import NOTIFICATIONS
from storefront.services.payment_intents import IntentMetadata

logger = logging.getLogger(__name__)

CURRENCY_SYMBOLS = {"AUD": "$", "USD": "$", "CAD": "$", "NZD": "$", "GBP": "£", "EUR": "€"}


@dataclass(frozen=True)
class TransactionSummary:
    customer_name: str
    customer_email: str
    product_name: str
    original_amount: int
    final_amount: int
    discount_amount: int
    currency: str
    coupon_name: str | None = None
    flow: str | None = None
    payment_intent_id: str | None = None

    @classmethod
    def from_metadata(
        cls,
        metadata: IntentMetadata,
        amount: int,
        currency: str,
        flow: str | None = None,
        payment_intent_id: str | None = None,
        customer_name: str = "",
    ) -> TransactionSummary:
        return cls(
            customer_name=metadata.customer_name or customer_name,
            customer_email=metadata.customer_email,
            product_name=metadata.product_name,
            original_amount=metadata.original_amount,
            final_amount=amount,
            discount_amount=metadata.discount_amount,
            currency=currency,
            coupon_name=metadata.coupon_name,
            flow=flow,
            payment_intent_id=payment_intent_id,
        )


@dataclass(frozen=True)
class DispatchResult:
    sent: bool
    error: str | None = None


def format_amount(amount: int, currency: str) -> str:
    currency = currency.upper()
    major = (Decimal(amount) / Decimal(100)).quantize(Decimal("0.01"))
    return f"{CURRENCY_SYMBOLS.get(currency, '')}{major} {currency}"


def render_text(summary: TransactionSummary) -> str:
    lines = [
        f"New payment: {summary.product_name}",
        f"Customer: {summary.customer_name or 'Unknown'} <{summary.customer_email}>",
        f"Original amount: {format_amount(summary.original_amount, summary.currency)}",
        f"Final amount: {format_amount(summary.final_amount, summary.currency)}",
    ]
    if summary.discount_amount:
        lines.append(
            f"Discount: {format_amount(summary.discount_amount, summary.currency)}"
            f" ({summary.coupon_name or 'coupon'})"
        )
    return "\n".join(lines)


def render_message(summary: TransactionSummary) -> dict:
    """Slack incoming-webhook payload: blocks plus a plain-text fallback."""
    amount = format_amount(summary.final_amount, summary.currency)
    fields = [
        ("Customer", summary.customer_name or "Unknown"),
        ("Email", summary.customer_email),
        ("Details", summary.product_name),
        ("Amount", amount),
        ("Original Amount", format_amount(summary.original_amount, summary.currency)),
        ("Promotional Code", summary.coupon_name or "N/A"),
        ("Discount Amount", format_amount(summary.discount_amount, summary.currency)),
    ]
    if summary.flow:
        fields.append(("Customer Type", "New" if summary.flow == "new" else "Existing"))
    return {
        "text": render_text(summary),
        "blocks": [
            {
                "type": "header",
                "text": {"type": "plain_text", "text": "New Payment Received"},
            },
            {
                "type": "section",
                "fields": [
                    {"type": "mrkdwn", "text": f"*{label}:*\n{value}"}
                    for label, value in fields
                ],
            },
        ],
    }


class NotificationDispatcher:
    def __init__(self, webhook_url: str | None = None, timeout: float | None = None):
        self.webhook_url = (
            webhook_url if webhook_url is not None else settings.slack_payment_webhook_url
        )
        self.timeout = timeout or settings.notification_timeout_seconds

    def dispatch(self, summary: TransactionSummary) -> DispatchResult:
        """Send one notification. Never raises."""
        if not self.webhook_url:
            NOTIFICATIONS.labels(outcome="not_configured").inc()
            logger.info("Payment notification skipped: webhook not configured")
            return DispatchResult(sent=False, error="not_configured")
        try:
            payload = render_message(summary)
            with httpx.Client(timeout=self.timeout) as client:
                response = client.post(self.webhook_url, json=payload)
                response.raise_for_status()
        except httpx.HTTPError as exc:
            NOTIFICATIONS.labels(outcome="failed").inc()
            logger.warning(
                "Payment notification failed: %s",
                exc,
                extra={"payment_intent_id": summary.payment_intent_id},
            )
            return DispatchResult(sent=False, error=str(exc) or exc.__class__.__name__)
        except Exception as exc:
            NOTIFICATIONS.labels(outcome="failed").inc()
            logger.exception(
                "Unexpected error sending payment notification",
                extra={"payment_intent_id": summary.payment_intent_id},
            )
            return DispatchResult(sent=False, error=exc.__class__.__name__)
        NOTIFICATIONS.labels(outcome="sent").inc()
        logger.info(
            "Payment notification sent",
            extra={"payment_intent_id": summary.payment_intent_id},
        )
        return DispatchResult(sent=True)

    def schedule(
        self, background_tasks: BackgroundTasks, summary: TransactionSummary
    ) -> None:
        background_tasks.add_task(self.dispatch, summary)


notification_dispatcher = NotificationDispatcher()

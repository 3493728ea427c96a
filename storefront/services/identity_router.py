"""Decide where a customer goes after the provider confirms their payment.

New customers get a signed pending-purchase token and are sent to ``/complete``
to set a password; nothing is written until they submit that form. Existing
customers get their purchase recorded and a session, and go to ``/home``.

A payment that succeeded is never reversed here. When local bookkeeping fails
the transaction is rolled back, the failure is recorded for manual
reconciliation and the caller gets a 500.
"""
from __future__ import annotations

import enum
import hmac
import logging
from dataclasses import dataclass, field, replace

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from starlette.requests import Request

from storefront.errors import api_error
from storefront.metrics import POST_PAYMENT_ROUTES
from storefront.models.billing import PurchaseRecord
from storefront.models.person import Person
from storefront.schemas.checkout import CustomerDetails, ProfileCompletionRequest
from storefront.services.accounts import AccountService, normalize_email
from storefront.services.auth_flow import (
    create_session,
    decode_pending_purchase_token,
    issue_pending_purchase_token,
)
from storefront.services.payment_gateway import (
    PaymentProviderError,
    StripeGateway,
    stripe_gateway,
)
from storefront.services.payment_intents import IntentMetadata
from storefront.services.purchases import PurchaseService, record_reconciliation_issue

logger = logging.getLogger(__name__)

COMPLETE_PROFILE = "/complete"
HOME = "/home"


class RouterState(str, enum.Enum):
    payment_confirmed = "payment_confirmed"
    identity_resolved = "identity_resolved"
    new_user_flow = "new_user_flow"
    existing_user_flow = "existing_user_flow"
    routed = "routed"


@dataclass
class RoutingResult:
    destination: str
    flow: str
    payment_intent_id: str
    metadata: IntentMetadata
    amount: int
    currency: str
    states: list[RouterState] = field(default_factory=list)
    person: Person | None = None
    purchase: PurchaseRecord | None = None
    purchase_created: bool = False
    notify: bool = False
    session_token: str | None = None
    pending_token: str | None = None


@dataclass(frozen=True)
class ConfirmedPayment:
    payment_intent_id: str
    amount: int
    currency: str
    metadata: IntentMetadata


class PostPaymentRouter:
    def __init__(self, db: Session, gateway: StripeGateway | None = None) -> None:
        self.db = db
        self.gateway = gateway or stripe_gateway
        self.accounts = AccountService(db)
        self.purchases = PurchaseService(db)

    def confirm_payment(
        self, payment_intent_id: str, client_secret: str | None = None
    ) -> ConfirmedPayment:
        """Fetch the intent from the provider and require ``succeeded``.

        When ``client_secret`` is given it must match the intent's, which only
        the paying browser received.
        """
        try:
            intent = self.gateway.retrieve_payment_intent(payment_intent_id)
        except RuntimeError as exc:
            raise api_error(
                503, "payment_provider_unconfigured", "Payments are not available"
            ) from exc
        except PaymentProviderError as exc:
            if exc.code in {"resource_missing", "invalid_request"}:
                raise api_error(
                    404, "payment_intent_not_found", "Payment not found"
                ) from exc
            raise api_error(
                502,
                "payment_provider_error",
                "Could not verify the payment with the provider",
            ) from exc

        if client_secret is not None and not hmac.compare_digest(
            client_secret.encode("utf-8"),
            str(intent.get("client_secret") or "").encode("utf-8"),
        ):
            logger.warning(
                "Client secret mismatch for %s",
                payment_intent_id,
                extra={"payment_intent_id": payment_intent_id},
            )
            raise api_error(
                403, "payment_verification_failed", "Could not verify this payment"
            )

        status = intent.get("status")
        if status != "succeeded":
            logger.info(
                "Payment %s not completed (status=%s)",
                payment_intent_id,
                status,
                extra={"payment_intent_id": payment_intent_id},
            )
            raise api_error(
                400,
                "payment_not_completed",
                "Payment has not been completed",
                {"status": status},
            )

        metadata = IntentMetadata.from_provider(intent.get("metadata"))
        if metadata is None:
            raise api_error(
                400,
                "unknown_payment_intent",
                "Payment was not created by this checkout",
            )
        amount = int(intent.get("amount_received") or intent.get("amount") or 0)
        if amount != metadata.final_amount:
            logger.warning(
                "Charged amount %s differs from quoted %s for %s",
                amount,
                metadata.final_amount,
                payment_intent_id,
                extra={"payment_intent_id": payment_intent_id},
            )
        currency = (intent.get("currency") or metadata.currency).upper()
        return ConfirmedPayment(payment_intent_id, amount, currency, metadata)

    def _bookkeeping_failed(
        self, payment_intent_id: str, email: str, stage: str, exc: Exception
    ):
        self.db.rollback()
        record_reconciliation_issue(payment_intent_id, email, stage, exc)
        return api_error(
            500,
            "post_payment_bookkeeping_failed",
            "Your payment was received but we could not finish setting up your "
            "purchase. Our team has been notified.",
            {"payment_intent_id": payment_intent_id},
        )

    def confirm(
        self,
        payment_intent_id: str,
        client_secret: str | None,
        customer: CustomerDetails | None = None,
        request: Request | None = None,
    ) -> RoutingResult:
        """Route the payer of ``payment_intent_id``.

        The caller proves it is the payer with the intent's client secret;
        a missing secret is rejected like a wrong one.
        """
        payment = self.confirm_payment(payment_intent_id, client_secret or "")
        states = [RouterState.payment_confirmed]

        metadata = payment.metadata
        email = metadata.customer_email or (customer.email if customer else "")
        if not email:
            raise api_error(
                400, "customer_email_required", "Customer email is required"
            )
        email = normalize_email(email)
        if email != metadata.customer_email:
            metadata = replace(
                metadata,
                customer_email=email,
                customer_first_name=metadata.customer_first_name
                or (customer.first_name if customer else ""),
                customer_last_name=metadata.customer_last_name
                or (customer.last_name if customer else ""),
            )

        person = self.accounts.get_by_email(email)
        states.append(RouterState.identity_resolved)

        result = RoutingResult(
            destination=COMPLETE_PROFILE,
            flow="new",
            payment_intent_id=payment_intent_id,
            metadata=metadata,
            amount=payment.amount,
            currency=payment.currency,
            states=states,
        )
        if person is None:
            states.append(RouterState.new_user_flow)
            result.pending_token = issue_pending_purchase_token(payment_intent_id, email)
        else:
            states.append(RouterState.existing_user_flow)
            try:
                purchase, created = self.purchases.record(
                    person.id, payment_intent_id, metadata, payment.amount
                )
                notify = self.purchases.claim_notification(purchase)
                session_token = create_session(self.db, person.id, request)
                self.db.commit()
            except SQLAlchemyError as exc:
                raise self._bookkeeping_failed(
                    payment_intent_id, email, "existing_user_purchase", exc
                ) from exc
            result.destination = HOME
            result.flow = "existing"
            result.person = person
            result.purchase = purchase
            result.purchase_created = created
            result.notify = notify
            result.session_token = session_token

        states.append(RouterState.routed)
        POST_PAYMENT_ROUTES.labels(destination=result.destination).inc()
        logger.info(
            "Routed payment %s to %s",
            payment_intent_id,
            result.destination,
            extra={
                "payment_intent_id": payment_intent_id,
                "destination": result.destination,
            },
        )
        return result

    def complete_profile(
        self,
        pending_token: str | None,
        profile: ProfileCompletionRequest,
        request: Request | None = None,
    ) -> RoutingResult:
        """Create the account and purchase for a new customer's pending payment."""
        if not pending_token:
            raise api_error(
                401, "pending_purchase_missing", "No pending purchase to complete"
            )
        pending = decode_pending_purchase_token(pending_token)
        payment = self.confirm_payment(pending.payment_intent_id)
        metadata = replace(payment.metadata, customer_email=pending.email)
        states = [
            RouterState.payment_confirmed,
            RouterState.identity_resolved,
            RouterState.new_user_flow,
        ]

        try:
            person = self.accounts.get_by_email(pending.email)
            if person is None:
                person = self.accounts.create(
                    email=pending.email,
                    first_name=profile.first_name,
                    last_name=profile.last_name,
                    password=profile.password,
                    phone=profile.phone,
                    marketing_opt_in=profile.marketing_opt_in,
                )
            else:
                logger.info(
                    "Account for pending purchase %s already exists, reusing",
                    pending.payment_intent_id,
                )
            purchase, created = self.purchases.record(
                person.id, pending.payment_intent_id, metadata, payment.amount
            )
            # announced when /complete routed the new customer
            self.purchases.claim_notification(purchase)
            session_token = create_session(self.db, person.id, request)
            self.db.commit()
        except SQLAlchemyError as exc:
            raise self._bookkeeping_failed(
                pending.payment_intent_id, pending.email, "profile_completion", exc
            ) from exc

        states.append(RouterState.routed)
        POST_PAYMENT_ROUTES.labels(destination=HOME).inc()
        return RoutingResult(
            destination=HOME,
            flow="new",
            payment_intent_id=pending.payment_intent_id,
            metadata=metadata,
            amount=payment.amount,
            currency=payment.currency,
            states=states,
            person=person,
            purchase=purchase,
            purchase_created=created,
            session_token=session_token,
        )

"""Purchase records and reconciliation issues."""

import logging

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from storefront.db import SessionLocal
from storefront.metrics import RECONCILIATION_ISSUES
from storefront.models.billing import (
    PurchaseRecord,
    PurchaseStatus,
    ReconciliationIssue,
)
from storefront.services.common import coerce_uuid, now
from storefront.services.payment_intents import IntentMetadata

logger = logging.getLogger(__name__)


class PurchaseService:
    def __init__(self, db: Session) -> None:
        self.db = db

    def get_by_intent(self, payment_intent_id: str) -> PurchaseRecord | None:
        stmt = select(PurchaseRecord).where(
            PurchaseRecord.payment_intent_id == payment_intent_id
        )
        return self.db.scalar(stmt)

    def record(
        self,
        person_id,
        payment_intent_id: str,
        metadata: IntentMetadata,
        amount: int,
    ) -> tuple[PurchaseRecord, bool]:
        """Ensure exactly one purchase row for a succeeded intent.

        Callers must have confirmed the intent status with the provider.
        Returns ``(record, created)``. Flushes, never commits.
        """
        existing = self.get_by_intent(payment_intent_id)
        if existing:
            return existing, False
        purchase = PurchaseRecord(
            person_id=coerce_uuid(person_id),
            product_id=coerce_uuid(metadata.product_id),
            payment_intent_id=payment_intent_id,
            amount=amount,
            original_amount=metadata.original_amount,
            discount_amount=metadata.discount_amount,
            currency=metadata.currency.upper(),
            coupon_id=metadata.coupon_id,
            status=PurchaseStatus.completed,
        )
        self.db.add(purchase)
        self.db.flush()
        logger.info(
            "Recorded purchase %s",
            purchase.id,
            extra={
                "payment_intent_id": payment_intent_id,
                "product_id": metadata.product_id,
            },
        )
        return purchase, True

    def claim_notification(self, purchase: PurchaseRecord) -> bool:
        """Mark the purchase as notified. True only for the first caller.

        Conditional update: of concurrent callers, exactly one gets True.
        Never commits.
        """
        stmt = (
            update(PurchaseRecord)
            .where(PurchaseRecord.id == purchase.id)
            .where(PurchaseRecord.notified_at.is_(None))
            .values(notified_at=now())
            .execution_options(synchronize_session=False)
        )
        claimed = self.db.execute(stmt).rowcount == 1
        if claimed:
            self.db.expire(purchase, ["notified_at"])
        return claimed

    def list_for_person(
        self, person_id, limit: int = 50, offset: int = 0
    ) -> tuple[list[PurchaseRecord], int]:
        query = self.db.query(PurchaseRecord).filter(
            PurchaseRecord.person_id == coerce_uuid(person_id)
        )
        total = query.count()
        items = (
            query.order_by(PurchaseRecord.purchased_at.desc())
            .limit(limit)
            .offset(offset)
            .all()
        )
        return list(items), total


def record_reconciliation_issue(
    payment_intent_id: str, email: str | None, stage: str, error: Exception
) -> None:
    """Persist a bookkeeping failure for operators, in its own session.

    Falls back to an error log when the database is unavailable.
    """
    RECONCILIATION_ISSUES.labels(stage=stage).inc()
    db = SessionLocal()
    try:
        db.add(
            ReconciliationIssue(
                payment_intent_id=payment_intent_id,
                email=email,
                stage=stage,
                error_message=str(error)[:2000],
            )
        )
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception(
            "Could not record reconciliation issue for %s (%s): %s",
            payment_intent_id,
            stage,
            error,
            extra={"payment_intent_id": payment_intent_id},
        )
    else:
        logger.error(
            "Payment %s needs manual reconciliation (%s): %s",
            payment_intent_id,
            stage,
            error,
            extra={"payment_intent_id": payment_intent_id},
        )
    finally:
        db.close()

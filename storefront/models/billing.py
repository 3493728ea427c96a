import enum
import uuid
from datetime import UTC, datetime

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from storefront.db import Base, TimestampMixin

# ── Enums ────────────────────────────────────────────────


class ProductKind(str, enum.Enum):
    course = "course"
    book = "book"
    subscription = "subscription"


class BillingPeriod(str, enum.Enum):
    monthly = "monthly"
    yearly = "yearly"


class PurchaseStatus(str, enum.Enum):
    completed = "completed"
    refunded = "refunded"


class WebhookEventStatus(str, enum.Enum):
    pending = "pending"
    processed = "processed"
    failed = "failed"


# ── Catalog ──────────────────────────────────────────────


class Product(TimestampMixin, Base):
    __tablename__ = "products"
    __table_args__ = (UniqueConstraint("slug", name="uq_products_slug"),)

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    slug: Mapped[str] = mapped_column(String(120), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    kind: Mapped[ProductKind] = mapped_column(Enum(ProductKind), nullable=False)
    billing_period: Mapped[BillingPeriod | None] = mapped_column(Enum(BillingPeriod))
    external_product_id: Mapped[str | None] = mapped_column(String(255))
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    metadata_: Mapped[dict | None] = mapped_column("metadata", JSON)

    prices = relationship(
        "ProductPrice", back_populates="product", cascade="all, delete-orphan"
    )
    purchases = relationship("PurchaseRecord", back_populates="product")

    def price_for(self, currency: str) -> "ProductPrice | None":
        currency = currency.upper()
        for price in self.prices:
            if price.currency == currency:
                return price
        return None


class ProductPrice(TimestampMixin, Base):
    """Static price of a product in one currency, in minor units."""

    __tablename__ = "product_prices"
    __table_args__ = (
        UniqueConstraint(
            "product_id", "currency", name="uq_product_prices_product_currency"
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    product_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("products.id"), nullable=False, index=True
    )
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    unit_amount: Mapped[int] = mapped_column(Integer, nullable=False)

    product = relationship("Product", back_populates="prices")


# ── Purchases ────────────────────────────────────────────


class PurchaseRecord(TimestampMixin, Base):
    """Entitlement to a product, written only after the provider confirms payment."""

    __tablename__ = "purchase_records"
    __table_args__ = (
        UniqueConstraint(
            "payment_intent_id", name="uq_purchase_records_payment_intent"
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    person_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("people.id"), nullable=False, index=True
    )
    product_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("products.id"), nullable=False, index=True
    )
    payment_intent_id: Mapped[str] = mapped_column(String(255), nullable=False)
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    original_amount: Mapped[int] = mapped_column(Integer, nullable=False)
    discount_amount: Mapped[int] = mapped_column(Integer, default=0)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    coupon_id: Mapped[str | None] = mapped_column(String(255))
    status: Mapped[PurchaseStatus] = mapped_column(
        Enum(PurchaseStatus), default=PurchaseStatus.completed
    )
    purchased_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(UTC)
    )
    notified_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    person = relationship("Person", back_populates="purchases")
    product = relationship("Product", back_populates="purchases")


class ReconciliationIssue(TimestampMixin, Base):
    """A confirmed payment whose local bookkeeping failed; worked by operators."""

    __tablename__ = "reconciliation_issues"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    payment_intent_id: Mapped[str] = mapped_column(
        String(255), nullable=False, index=True
    )
    email: Mapped[str | None] = mapped_column(String(255))
    stage: Mapped[str] = mapped_column(String(80), nullable=False)
    error_message: Mapped[str | None] = mapped_column(Text)
    is_resolved: Mapped[bool] = mapped_column(Boolean, default=False)


# ── Webhook Tracking ─────────────────────────────────────


class WebhookEvent(TimestampMixin, Base):
    __tablename__ = "webhook_events"
    __table_args__ = (UniqueConstraint("event_id", name="uq_webhook_events_event_id"),)

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    provider: Mapped[str] = mapped_column(String(80), nullable=False)
    event_type: Mapped[str] = mapped_column(String(120), nullable=False)
    event_id: Mapped[str] = mapped_column(String(255), nullable=False)
    payload: Mapped[dict | None] = mapped_column(JSON)
    status: Mapped[WebhookEventStatus] = mapped_column(
        Enum(WebhookEventStatus), default=WebhookEventStatus.pending
    )
    error_message: Mapped[str | None] = mapped_column(Text)
    processed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

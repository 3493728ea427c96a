from datetime import datetime
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from storefront.models.billing import BillingPeriod, ProductKind, PurchaseStatus

# ── Product prices ───────────────────────────────────────


class ProductPriceBase(BaseModel):
    currency: str = Field(min_length=3, max_length=3)
    unit_amount: int = Field(ge=0)

    @field_validator("currency")
    @classmethod
    def _upper_currency(cls, value: str) -> str:
        return value.upper()


class ProductPriceCreate(ProductPriceBase):
    pass


class ProductPriceRead(ProductPriceBase):
    model_config = ConfigDict(from_attributes=True)
    id: UUID
    product_id: UUID


# ── Product ──────────────────────────────────────────────


class ProductBase(BaseModel):
    model_config = ConfigDict(populate_by_name=True)
    name: str = Field(min_length=1, max_length=255)
    slug: str = Field(min_length=1, max_length=120, pattern=r"^[a-z0-9][a-z0-9-]*$")
    description: str | None = None
    kind: Literal["course", "book", "subscription"]
    billing_period: Literal["monthly", "yearly"] | None = None
    external_product_id: str | None = Field(default=None, max_length=255)
    is_active: bool = True
    metadata_: dict | None = Field(default=None, serialization_alias="metadata")


class ProductCreate(ProductBase):
    prices: list[ProductPriceCreate] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_billing_period(self) -> "ProductCreate":
        if self.kind == "subscription" and self.billing_period is None:
            raise ValueError("Subscription products need a billing_period")
        if self.kind != "subscription" and self.billing_period is not None:
            raise ValueError("Only subscription products have a billing_period")
        currencies = [price.currency for price in self.prices]
        if len(currencies) != len(set(currencies)):
            raise ValueError("Each currency may only be priced once")
        return self


class ProductUpdate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)
    name: str | None = Field(default=None, max_length=255)
    description: str | None = None
    external_product_id: str | None = Field(default=None, max_length=255)
    is_active: bool | None = None
    metadata_: dict | None = Field(default=None, serialization_alias="metadata")


class ProductRead(ProductBase):
    model_config = ConfigDict(
        from_attributes=True, populate_by_name=True, use_enum_values=True
    )
    id: UUID
    kind: ProductKind  # type: ignore[assignment]
    billing_period: BillingPeriod | None = None  # type: ignore[assignment]
    prices: list[ProductPriceRead] = []
    created_at: datetime
    updated_at: datetime


# ── Purchases ────────────────────────────────────────────


class PurchaseRecordRead(BaseModel):
    model_config = ConfigDict(from_attributes=True, use_enum_values=True)
    id: UUID
    product_id: UUID
    payment_intent_id: str
    amount: int
    original_amount: int
    discount_amount: int
    currency: str
    coupon_id: str | None = None
    status: PurchaseStatus
    purchased_at: datetime

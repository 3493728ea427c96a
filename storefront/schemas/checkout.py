import re
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

COUPON_CODE_PATTERN = r"^[A-Za-z0-9_-]{1,64}$"


def _blank_to_none(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    return value or None


# ── Customer ─────────────────────────────────────────────


class CustomerDetails(BaseModel):
    email: EmailStr
    first_name: str = Field(default="", max_length=80)
    last_name: str = Field(default="", max_length=80)
    phone: str | None = Field(default=None, max_length=40)

    @field_validator("email")
    @classmethod
    def _normalize_email(cls, value: str) -> str:
        return value.strip().lower()

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


# ── Regions ──────────────────────────────────────────────


class RegionRead(BaseModel):
    region: str
    country: str | None = None
    currency: str
    symbol: str


class RegionalPriceRead(RegionRead):
    amount: int
    course_price: int


class RegionTableRead(BaseModel):
    regions: dict[str, RegionalPriceRead]
    default_region: str


# ── Products ─────────────────────────────────────────────


class CheckoutProductRead(BaseModel):
    id: UUID
    name: str
    slug: str
    description: str | None = None
    kind: str
    billing_period: str | None = None
    region: str
    currency: str
    symbol: str
    amount: int


# ── Coupons ──────────────────────────────────────────────


class CouponRead(BaseModel):
    id: str
    name: str | None = None
    percent_off: float | None = None
    amount_off: int | None = None
    currency: str | None = None


class CouponValidateRequest(BaseModel):
    coupon_code: str | None = Field(default=None, max_length=64)
    amount: int = Field(ge=0)
    currency: str = Field(min_length=3, max_length=3)

    @field_validator("coupon_code")
    @classmethod
    def _check_code(cls, value: str | None) -> str | None:
        return _validate_coupon_code(value)

    @field_validator("currency")
    @classmethod
    def _upper_currency(cls, value: str) -> str:
        return value.upper()


class CouponValidateResponse(BaseModel):
    valid: bool
    coupon: CouponRead | None = None
    discount_amount: int
    final_amount: int
    message: str | None = None


# ── Payment intents ──────────────────────────────────────


class PaymentIntentCreateRequest(BaseModel):
    product_id: UUID
    customer: CustomerDetails
    coupon_code: str | None = Field(default=None, max_length=64)
    region: str | None = Field(default=None, max_length=2)

    @field_validator("coupon_code")
    @classmethod
    def _check_code(cls, value: str | None) -> str | None:
        return _validate_coupon_code(value)


class PaymentIntentCreateResponse(BaseModel):
    client_secret: str
    payment_intent_id: str
    amount: int
    original_amount: int
    discount_amount: int
    currency: str
    applied_coupon: str | None = None
    publishable_key: str | None = None


# ── Completion ───────────────────────────────────────────


class CompletePurchaseRequest(BaseModel):
    payment_intent_id: str = Field(min_length=1, max_length=255)
    client_secret: str | None = Field(default=None, max_length=255)
    customer: CustomerDetails | None = None


class CompletePurchaseResponse(BaseModel):
    model_config = ConfigDict(use_enum_values=True)
    destination: Literal["/complete", "/home"]
    flow: Literal["new", "existing"]
    product_name: str
    amount: int
    currency: str
    purchase_id: UUID | None = None
    states: list[str]


class ProfileCompletionRequest(BaseModel):
    first_name: str = Field(min_length=1, max_length=80)
    last_name: str = Field(default="", max_length=80)
    password: str = Field(min_length=8, max_length=128)
    phone: str | None = Field(default=None, max_length=40)
    marketing_opt_in: bool = False


class ProfileCompletionResponse(BaseModel):
    destination: Literal["/home"]
    person_id: UUID
    purchase_id: UUID


class EmailCheckResponse(BaseModel):
    email: str
    exists: bool


def _validate_coupon_code(value: str | None) -> str | None:
    value = _blank_to_none(value)
    if value is None:
        return None
    if not re.fullmatch(COUPON_CODE_PATTERN, value):
        raise ValueError("Coupon code may only contain letters, digits, '-' and '_'")
    return value

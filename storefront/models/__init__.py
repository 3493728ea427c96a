from storefront.models.auth import Session, SessionStatus, UserCredential  # noqa: F401
from storefront.models.person import Person  # noqa: F401
from storefront.models.billing import (  # noqa: F401
    BillingPeriod,
    Product,
    ProductKind,
    ProductPrice,
    PurchaseRecord,
    PurchaseStatus,
    ReconciliationIssue,
    WebhookEvent,
    WebhookEventStatus,
)

"""Prometheus metrics shared by the middleware and the checkout services."""

from prometheus_client import Counter, Histogram

REQUEST_COUNT = Counter(
    "storefront_http_requests_total",
    "HTTP requests",
    ["method", "path", "status"],
)
REQUEST_LATENCY = Histogram(
    "storefront_http_request_duration_seconds",
    "HTTP request latency",
    ["method", "path", "status"],
)
REQUEST_ERRORS = Counter(
    "storefront_http_request_errors_total",
    "HTTP requests that ended in a 5xx",
    ["method", "path", "status"],
)

COUPON_LOOKUPS = Counter(
    "storefront_coupon_lookups_total",
    "Coupon evaluations by outcome",
    ["outcome"],
)
PAYMENT_INTENTS_CREATED = Counter(
    "storefront_payment_intents_created_total",
    "Payment intents registered with the provider",
    ["currency"],
)
POST_PAYMENT_ROUTES = Counter(
    "storefront_post_payment_routes_total",
    "Post-payment routing decisions",
    ["destination"],
)
NOTIFICATIONS = Counter(
    "storefront_payment_notifications_total",
    "Payment notification dispatches by outcome",
    ["outcome"],
)
RECONCILIATION_ISSUES = Counter(
    "storefront_reconciliation_issues_total",
    "Confirmed payments whose bookkeeping failed",
    ["stage"],
)

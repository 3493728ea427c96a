import os
import sys
import uuid
from datetime import UTC, datetime, timedelta
from types import ModuleType
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient
from jose import jwt
from sqlalchemy import DateTime, create_engine
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, sessionmaker
from sqlalchemy.pool import StaticPool

# Create a test engine BEFORE any storefront imports
_test_engine = create_engine(
    "sqlite+pysqlite:///:memory:",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)


class TestBase(DeclarativeBase):
    pass


_TestSessionLocal = sessionmaker(bind=_test_engine, autoflush=False, autocommit=False)


class TimestampMixin:
    """Mixin that adds created_at / updated_at columns to any model."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
    )


# Mock storefront.db so models bind to the SQLite engine
mock_db_module = ModuleType("storefront.db")
mock_db_module.Base = TestBase
mock_db_module.TimestampMixin = TimestampMixin
mock_db_module.SessionLocal = _TestSessionLocal
mock_db_module.get_engine = lambda: _test_engine

# Also mock storefront.config to prevent .env loading
mock_config_module = ModuleType("storefront.config")


class MockSettings:
    database_url = "sqlite+pysqlite:///:memory:"
    secret_key = "test-secret-key-for-pending-purchases"
    db_pool_size = 5
    db_max_overflow = 10
    db_pool_timeout = 30
    db_pool_recycle = 1800
    jwt_secret = "test-secret"
    jwt_algorithm = "HS256"
    stripe_secret_key = "sk_test_123"
    stripe_publishable_key = "pk_test_123"
    stripe_webhook_secret = "whsec_test"
    slack_payment_webhook_url = ""
    notification_timeout_seconds = 5.0
    default_region = "AU"
    session_ttl_days = 30
    pending_purchase_ttl_hours = 168
    cookie_secure = False
    cors_origins = ""


mock_config_module.settings = MockSettings()
mock_config_module.Settings = MockSettings
mock_config_module.validate_settings = lambda s: []

# Insert mocks before any storefront imports
sys.modules["storefront.config"] = mock_config_module
sys.modules["storefront.db"] = mock_db_module

os.environ["JWT_SECRET"] = "test-secret"
os.environ["JWT_ALGORITHM"] = "HS256"

# Now import the models - they'll use our mocked db module
from storefront.models.auth import Session as AuthSession  # noqa: E402,F401
from storefront.models.billing import (  # noqa: E402
    Product,
    ProductKind,
    ProductPrice,
)
from storefront.models.person import Person  # noqa: E402
from storefront.services.payment_gateway import (  # noqa: E402
    PaymentProviderError,
    stripe_gateway,
)

# Create all tables
TestBase.metadata.create_all(_test_engine)

Base = TestBase


@pytest.fixture(scope="session")
def engine():
    return _test_engine


@pytest.fixture()
def db_session(engine):
    """Session on the shared StaticPool connection."""
    Session = sessionmaker(bind=engine, autoflush=False, autocommit=False)
    session = Session()
    try:
        yield session
    finally:
        session.close()


def _unique_email() -> str:
    return f"test-{uuid.uuid4().hex}@example.com"


def _unique_slug(prefix: str = "course") -> str:
    return f"{prefix}-{uuid.uuid4().hex[:12]}"


@pytest.fixture()
def person(db_session):
    person = Person(
        first_name="Test",
        last_name="User",
        email=_unique_email(),
    )
    db_session.add(person)
    db_session.commit()
    db_session.refresh(person)
    return person


@pytest.fixture()
def product(db_session):
    """Course priced like the flagship sleep program."""
    product = Product(
        name="Big Baby Sleep Program",
        slug=_unique_slug(),
        kind=ProductKind.course,
        is_active=True,
    )
    product.prices = [
        ProductPrice(currency="AUD", unit_amount=12000),
        ProductPrice(currency="USD", unit_amount=12000),
        ProductPrice(currency="GBP", unit_amount=6000),
        ProductPrice(currency="EUR", unit_amount=6000),
    ]
    db_session.add(product)
    db_session.commit()
    db_session.refresh(product)
    return product


@pytest.fixture()
def second_product(db_session):
    product = Product(
        name="Little Baby Sleep Program",
        slug=_unique_slug(),
        kind=ProductKind.course,
        is_active=True,
    )
    product.prices = [ProductPrice(currency="AUD", unit_amount=12000)]
    db_session.add(product)
    db_session.commit()
    db_session.refresh(product)
    return product


# ============ Stripe fake ============


class FakeStripe:
    """In-memory stand-in for the Stripe calls made through StripeGateway."""

    def __init__(self) -> None:
        self.coupons: dict[str, dict] = {}
        self.intents: dict[str, dict] = {}
        self.coupon_error: Exception | None = None
        self.create_error: Exception | None = None

    def add_coupon(self, code: str, **fields) -> dict:
        coupon = {
            "id": code,
            "name": fields.pop("name", code),
            "percent_off": None,
            "amount_off": None,
            "currency": None,
            "valid": True,
        }
        coupon.update(fields)
        self.coupons[code] = coupon
        return coupon

    def retrieve_coupon(self, code: str) -> dict | None:
        if self.coupon_error:
            raise self.coupon_error
        coupon = self.coupons.get(code)
        return dict(coupon) if coupon else None

    def create_payment_intent(
        self, amount, currency, metadata, description=None, receipt_email=None
    ) -> dict:
        if self.create_error:
            raise self.create_error
        intent_id = f"pi_{uuid.uuid4().hex[:16]}"
        intent = {
            "id": intent_id,
            "client_secret": f"{intent_id}_secret_test",
            "amount": amount,
            "amount_received": 0,
            "currency": currency.lower(),
            "metadata": dict(metadata),
            "status": "requires_payment_method",
            "description": description,
            "receipt_email": receipt_email,
        }
        self.intents[intent_id] = intent
        return dict(intent)

    def retrieve_payment_intent(self, intent_id: str) -> dict:
        intent = self.intents.get(intent_id)
        if intent is None:
            raise PaymentProviderError("No such payment_intent", "resource_missing")
        return {**intent, "metadata": dict(intent["metadata"])}

    def secret(self, intent_id: str) -> str | None:
        intent = self.intents.get(intent_id)
        return intent["client_secret"] if intent else None

    def succeed(self, intent_id: str) -> None:
        intent = self.intents[intent_id]
        intent["status"] = "succeeded"
        intent["amount_received"] = intent["amount"]


@pytest.fixture()
def fake_stripe():
    fake = FakeStripe()
    with patch.multiple(
        stripe_gateway,
        is_configured=lambda: True,
        retrieve_coupon=fake.retrieve_coupon,
        create_payment_intent=fake.create_payment_intent,
        retrieve_payment_intent=fake.retrieve_payment_intent,
    ):
        yield fake


# ============ FastAPI Test Client Fixtures ============


@pytest.fixture()
def client(db_session):
    """Create a test client with database dependency override."""
    from storefront.api.deps import get_db
    from storefront.main import app

    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db

    with TestClient(app, raise_server_exceptions=False) as test_client:
        yield test_client

    app.dependency_overrides.clear()


def _create_access_token(person_id: str, roles: list[str] | None = None) -> str:
    """Create a JWT access token for testing."""
    secret = os.getenv("JWT_SECRET", "test-secret")
    algorithm = os.getenv("JWT_ALGORITHM", "HS256")
    now = datetime.now(UTC)
    payload = {
        "sub": person_id,
        "roles": roles or [],
        "typ": "access",
        "exp": int((now + timedelta(minutes=15)).timestamp()),
        "iat": int(now.timestamp()),
    }
    return jwt.encode(payload, secret, algorithm=algorithm)


@pytest.fixture()
def admin_headers():
    token = _create_access_token(str(uuid.uuid4()), roles=["admin"])
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture()
def customer_headers():
    token = _create_access_token(str(uuid.uuid4()), roles=["customer"])
    return {"Authorization": f"Bearer {token}"}

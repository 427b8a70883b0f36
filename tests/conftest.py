import json
from datetime import datetime, timedelta

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.main import app
from app.core.database import get_db
from app.core.limiter import limiter
from app.core.timeutils import utcnow
from app.middleware.auth import create_access_token
from app.models import Account, Base
from app.services.exceptions import BillingProviderError, PreconditionFailed
from app.services.stripe_provider import get_billing_provider
from app.services.subscription_config_service import SubscriptionConfigService
from app.services.subscription_records import SubscriptionRecordManager, OWNER_RESET

# Setup in-memory SQLite database for testing
SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"

engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


class FakeBillingProvider:
    """In-memory stand-in for StripeBillingProvider. Records every call."""

    def __init__(self):
        self.customers = {}
        self.subscriptions = {}
        self.calls = []
        self.error = None

    # Test helpers

    def fail_with(self, message: str) -> None:
        self.error = message

    def add_subscription(self, customer_id: str, status: str = "active", price_id: str = "price_monthly",
                         period_end: datetime = None, trial_end: datetime = None,
                         cancel_at_period_end: bool = False) -> dict:
        sub_id = f"sub_{len(self.subscriptions) + 1}"
        period_end = period_end or utcnow() + timedelta(days=30)
        subscription = {
            "id": sub_id,
            "object": "subscription",
            "customer": customer_id,
            "status": status,
            "created": len(self.subscriptions) + 1,
            "current_period_end": _unix(period_end),
            "cancel_at_period_end": cancel_at_period_end,
            "trial_end": _unix(trial_end) if trial_end else None,
            "pause_collection": None,
            "items": {"data": [{"price": {"id": price_id}}]},
            "metadata": {},
        }
        self.subscriptions[sub_id] = subscription
        return subscription

    def _record(self, name, *args):
        self.calls.append((name, args))
        if self.error:
            raise BillingProviderError(self.error)

    def call_names(self):
        return [name for name, _ in self.calls]

    # Provider interface

    def find_customer(self, account_id):
        self._record("find_customer", account_id)
        for customer_id, customer in self.customers.items():
            if customer["metadata"]["account_id"] == account_id:
                return customer_id
        return None

    def create_customer(self, account_id, email=None):
        self._record("create_customer", account_id, email)
        customer_id = f"cus_{len(self.customers) + 1}"
        self.customers[customer_id] = {"id": customer_id, "email": email, "metadata": {"account_id": account_id}}
        return customer_id

    def create_checkout_session(self, customer_id, price_id, account_id, success_url, cancel_url):
        self._record("create_checkout_session", customer_id, price_id, account_id, success_url, cancel_url)
        return f"https://checkout.stripe.test/{customer_id}/{price_id}"

    def create_portal_session(self, customer_id, return_url):
        self._record("create_portal_session", customer_id, return_url)
        return f"https://billing.stripe.test/{customer_id}"

    def get_latest_subscription(self, customer_id):
        self._record("get_latest_subscription", customer_id)
        owned = [s for s in self.subscriptions.values() if s["customer"] == customer_id]
        if not owned:
            return None
        return dict(max(owned, key=lambda s: s["created"]))

    def get_subscription(self, subscription_id):
        self._record("get_subscription", subscription_id)
        return dict(self.subscriptions[subscription_id])

    def pause_subscription(self, subscription_id, resumes_at):
        self._record("pause_subscription", subscription_id, resumes_at)
        self.subscriptions[subscription_id]["pause_collection"] = {
            "behavior": "void", "resumes_at": _unix(resumes_at),
        }
        return dict(self.subscriptions[subscription_id])

    def resume_subscription(self, subscription_id):
        self._record("resume_subscription", subscription_id)
        self.subscriptions[subscription_id]["pause_collection"] = None
        return dict(self.subscriptions[subscription_id])

    def set_cancel_at_period_end(self, subscription_id, cancel=True):
        self._record("set_cancel_at_period_end", subscription_id, cancel)
        self.subscriptions[subscription_id]["cancel_at_period_end"] = cancel
        return dict(self.subscriptions[subscription_id])

    def apply_retention_discount(self, subscription_id, account_id, percent_off, duration_months):
        self._record("apply_retention_discount", subscription_id, account_id, percent_off, duration_months)
        self.subscriptions[subscription_id]["cancel_at_period_end"] = False
        return dict(self.subscriptions[subscription_id])

    def construct_event(self, payload, sig_header):
        if sig_header != "valid-signature":
            raise PreconditionFailed("Webhook signature invalid")
        return json.loads(payload)


def _unix(moment: datetime) -> int:
    return int((moment - datetime(1970, 1, 1)).total_seconds())


@pytest.fixture(scope="function")
def db_session():
    """Create a fresh database session for each test."""
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def provider():
    return FakeBillingProvider()


@pytest.fixture
def make_account(db_session):
    def _make(email=None, is_admin=False):
        account = Account(email=email, is_admin=is_admin)
        db_session.add(account)
        db_session.commit()
        db_session.refresh(account)
        return account
    return _make


@pytest.fixture
def make_subscription(db_session):
    """Insert a subscription record with exactly the given fields (free/active otherwise)."""
    def _make(account_id, **fields):
        return SubscriptionRecordManager.create(db_session, account_id, fields, owner=OWNER_RESET)
    return _make


@pytest.fixture
def account(make_account):
    return make_account(email="cook@example.com")


@pytest.fixture
def admin(make_account):
    return make_account(email="admin@example.com", is_admin=True)


@pytest.fixture
def config(db_session):
    return SubscriptionConfigService.update(
        db_session,
        {
            "stripe_weekly_price_id": "price_weekly",
            "stripe_monthly_price_id": "price_monthly",
            "stripe_yearly_price_id": "price_yearly",
        },
    )


@pytest.fixture(scope="function")
def client(db_session, provider):
    """Create a test client with overridden dependencies."""

    # Override get_db
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_billing_provider] = lambda: provider
    limiter.enabled = False

    with TestClient(app) as c:
        yield c

    limiter.enabled = True
    app.dependency_overrides = {}


@pytest.fixture
def auth_headers():
    def _headers(account: Account) -> dict:
        return {"Authorization": f"Bearer {create_access_token(account.id)}"}
    return _headers

"""
Shared fixtures: in-memory SQLite database, fake Stripe gateway, recording
notifier and a TestClient wired to all three.
"""
import os

# Configure secrets and prices before app.core.config is imported
os.environ["APP_ENV"] = "test"
os.environ["JWT_SECRET"] = "test-access-secret"
os.environ["JWT_REFRESH_SECRET"] = "test-refresh-secret"
os.environ.setdefault("STRIPE_PRICE_BASIC", "price_basic_test")
os.environ.setdefault("STRIPE_PRICE_PRO", "price_pro_test")
os.environ.setdefault("STRIPE_PRICE_PRO_PLUS", "price_pro_plus_test")
os.environ.setdefault("STRIPE_PRICE_CANDIDATE_BASE", "price_cand_base_test")
os.environ.setdefault("STRIPE_PRICE_CANDIDATE_ADDON", "price_cand_addon_test")
os.environ.setdefault("STRIPE_PRICE_CANDIDATE_SINGLE_DOMAIN", "price_cand_single_test")
os.environ.setdefault("STRIPE_PRICE_CANDIDATE_FULL_BUNDLE", "price_cand_full_test")

import json

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.main import app as fastapi_app
from app.db.base import Base
from app.db import models  # noqa: F401  registers every table on Base.metadata
from app.core.auth_dependency import get_db, get_gateway, get_notifier, get_oauth_client
from app.core.errors import SignatureInvalid
from app.services.oauth_service import OAuthProfile


# Setup in-memory SQLite database for testing
TEST_DATABASE_URL = "sqlite:///:memory:"
test_engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=test_engine)

VALID_SIGNATURE = "t=1,v1=valid"


class FakeGateway:
    """Stands in for StripeGateway; records every call."""

    def __init__(self):
        self.customers = []
        self.subscription_checkouts = []
        self.payment_checkouts = []
        self.portal_sessions = []

    def construct_event(self, payload, signature):
        if signature != VALID_SIGNATURE:
            raise SignatureInvalid()
        return json.loads(payload)

    def create_customer(self, user_id, email, name):
        customer_id = f"cus_test_{len(self.customers) + 1}"
        self.customers.append({"user_id": user_id, "email": email, "name": name, "id": customer_id})
        return customer_id

    def create_subscription_checkout(self, customer_id, price_id, success_url, cancel_url, metadata):
        self.subscription_checkouts.append({
            "customer_id": customer_id, "price_id": price_id, "metadata": metadata,
        })
        return f"https://checkout.stripe.test/sub/{len(self.subscription_checkouts)}"

    def create_payment_checkout(self, customer_id, price_id, quantity, success_url, cancel_url, metadata):
        self.payment_checkouts.append({
            "customer_id": customer_id, "price_id": price_id, "quantity": quantity, "metadata": metadata,
        })
        return f"https://checkout.stripe.test/pay/{len(self.payment_checkouts)}"

    def create_portal_session(self, customer_id, return_url):
        self.portal_sessions.append(customer_id)
        return f"https://billing.stripe.test/{customer_id}"


class RecordingNotifier:
    def __init__(self, fail=False):
        self.sent = []
        self.fail = fail

    def send_welcome(self, to, first_name, user_type):
        self.sent.append(("welcome", to))
        if self.fail:
            raise RuntimeError("mail down")
        return True

    def send_subscription_activated(self, to, first_name, plan, current_period_end):
        self.sent.append(("subscription_activated", to, plan))
        if self.fail:
            raise RuntimeError("mail down")
        return True


class FakeOAuthClient:
    enabled = True

    def __init__(self, profile=None):
        self.profile = profile or OAuthProfile(
            provider_id="google-123", email="gina@example.com", first_name="Gina", last_name="Lopez",
        )

    def authorization_url(self, user_type):
        return f"https://accounts.google.test/auth?state={user_type or 'candidate'}:nonce"

    def fetch_profile(self, code):
        return self.profile


@pytest.fixture(scope="function", autouse=True)
def setup_db():
    """Create and drop tables for each test."""
    Base.metadata.create_all(bind=test_engine)
    yield
    Base.metadata.drop_all(bind=test_engine)


@pytest.fixture
def session_factory():
    return TestSessionLocal


@pytest.fixture
def db():
    """Provide a database session for tests."""
    session = TestSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def oauth_client():
    return FakeOAuthClient()


@pytest.fixture
def client(gateway, notifier, oauth_client):
    """Create test client with every external collaborator replaced."""
    def override_get_db():
        session = TestSessionLocal()
        try:
            yield session
        finally:
            session.close()

    fastapi_app.dependency_overrides[get_db] = override_get_db
    fastapi_app.dependency_overrides[get_gateway] = lambda: gateway
    fastapi_app.dependency_overrides[get_notifier] = lambda: notifier
    fastapi_app.dependency_overrides[get_oauth_client] = lambda: oauth_client
    try:
        yield TestClient(fastapi_app)
    finally:
        fastapi_app.dependency_overrides.clear()


@pytest.fixture
def webhook_headers():
    return {"stripe-signature": VALID_SIGNATURE, "Content-Type": "application/json"}

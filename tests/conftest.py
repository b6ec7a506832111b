"""Pytest configuration and fixtures."""

import hashlib
import hmac
import json
import os
import time
from typing import Any

import pytest
from fastapi.testclient import TestClient

from akadeo.api.dependencies import get_email_dispatcher, get_payment_gateway
from akadeo.config import Settings
from akadeo.database import BILLING_TABLES, Base, Database, build_engine
from akadeo.main import create_app
from akadeo.models import Plan
from akadeo.services.membership import DEFAULT_PLANS
from akadeo.services.payment_gateway import PaymentGatewayError, StripeGateway

WEBHOOK_SECRET = "whsec_test_secret"
STRONG_PASSWORD = "Correct-Horse-42"

# Use test database - PostgreSQL in Docker, SQLite locally
if os.getenv("DATABASE_URL"):
    # Running in Docker - both stores share one PostgreSQL test database
    CREDENTIALS_URL = os.getenv("DATABASE_URL").replace("/akadeo", "/akadeo_test")
    BILLING_URL = CREDENTIALS_URL
else:
    # Running locally - one SQLite file per store
    CREDENTIALS_URL = "sqlite:///./test_credentials.db"
    BILLING_URL = "sqlite:///./test_billing.db"


def _build_database() -> Database:
    credentials_engine = build_engine(CREDENTIALS_URL)
    if BILLING_URL == CREDENTIALS_URL:
        return Database(credentials_engine)
    return Database(credentials_engine, build_engine(BILLING_URL))


test_database = _build_database()


class FakeMailer:
    """Records verification emails instead of calling Brevo."""

    def __init__(self):
        self.sent: list[dict[str, str]] = []
        self.fail = False

    async def send_verification_email(self, email: str, name: str | None, code: str) -> bool:
        if self.fail:
            return False
        self.sent.append({"email": email, "name": name, "code": code})
        return True

    def last_code(self, email: str) -> str:
        return [message for message in self.sent if message["email"] == email][-1]["code"]


class FakeGateway(StripeGateway):
    """Stripe gateway with network calls replaced; signature checks stay real."""

    def __init__(self, settings: Settings):
        super().__init__(settings)
        self.checkout_calls: list[dict[str, Any]] = []
        self.canceled: list[str] = []
        self.subscriptions: dict[str, dict[str, Any]] = {}
        self.fail_cancel = False
        self._counter = 0

    async def create_checkout_session(self, **kwargs) -> dict[str, Any]:
        self._counter += 1
        self.checkout_calls.append(kwargs)
        session_id = f"cs_test_{self._counter}"
        return {"id": session_id, "url": f"https://checkout.stripe.test/{session_id}"}

    async def retrieve_subscription(self, subscription_id: str) -> dict[str, Any]:
        return self.subscriptions.get(
            subscription_id,
            {"id": subscription_id, "current_period_start": 1735689600, "current_period_end": 1738368000},
        )

    async def cancel_subscription(self, subscription_id: str) -> None:
        if self.fail_cancel:
            raise PaymentGatewayError("No such subscription")
        self.canceled.append(subscription_id)


def sign_payload(payload: bytes, secret: str = WEBHOOK_SECRET, timestamp: int | None = None) -> str:
    """Build a Stripe-Signature header for a payload."""
    timestamp = timestamp or int(time.time())
    signed = f"{timestamp}.".encode() + payload
    signature = hmac.new(secret.encode(), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={signature}"


@pytest.fixture(scope="session", autouse=True)
def setup_test_database():
    """Create test database schema once at the start of the test session."""
    if "postgresql" in CREDENTIALS_URL:
        # For PostgreSQL, create the test database
        from sqlalchemy_utils import create_database, database_exists

        if not database_exists(CREDENTIALS_URL):
            create_database(CREDENTIALS_URL)

    test_database.create_all()
    yield
    test_database.dispose()


@pytest.fixture(scope="function")
def database():
    """The test database, emptied after each test."""
    yield test_database

    for table in reversed(Base.metadata.sorted_tables):
        engine = test_database.billing_engine if table.name in BILLING_TABLES else test_database.credentials_engine
        with engine.begin() as connection:
            connection.execute(table.delete())


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        environment="test",
        database_url=CREDENTIALS_URL,
        billing_database_url=BILLING_URL,
        session_secret="test-session-secret",
        stripe_secret_key="sk_test_123",
        stripe_webhook_secret=WEBHOOK_SECRET,
        app_base_url="https://app.akadeo.test",
        brevo_api_key="test-brevo-key",
        brevo_sender_email="noreply@akadeo.test",
    )


@pytest.fixture
def mailer() -> FakeMailer:
    return FakeMailer()


@pytest.fixture
def gateway(settings) -> FakeGateway:
    return FakeGateway(settings)


@pytest.fixture
def app(settings, database, mailer, gateway):
    application = create_app(settings, database)
    application.dependency_overrides[get_email_dispatcher] = lambda: mailer
    application.dependency_overrides[get_payment_gateway] = lambda: gateway
    return application


@pytest.fixture
def client(app):
    """Create a test client with the fake collaborators installed."""
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def plans(database):
    """Seed the default plan catalogue."""
    with database.BillingSession() as session:
        session.add_all([Plan(**row) for row in DEFAULT_PLANS])
        session.commit()
    return DEFAULT_PLANS


@pytest.fixture
def register_and_verify(client, mailer):
    """Register an account, redeem its code and return the verify response body."""

    def _register_and_verify(email: str = "ada@example.com") -> dict:
        response = client.post(
            "/api/auth/register",
            json={"fullName": "Ada Lovelace", "email": email, "password": STRONG_PASSWORD},
        )
        assert response.status_code == 201, response.text
        response = client.post(
            "/api/auth/verify", json={"email": email, "code": mailer.last_code(email)}
        )
        assert response.status_code == 200, response.text
        return response.json()

    return _register_and_verify


@pytest.fixture
def setup_form() -> dict:
    return {
        "subject": "Mathematics",
        "gradeLevels": ["68", "912"],
        "country": "GB",
        "studentCountRange": "50_150",
        "primaryGoal": "Spend less time marking homework",
        "consentAiProcessing": True,
    }


@pytest.fixture
def signed_in(client, register_and_verify, setup_form) -> int:
    """Register, verify and finish setup; returns the user id."""
    register_and_verify()
    response = client.post("/api/auth/complete-setup", json=setup_form)
    assert response.status_code == 200, response.text
    return client.get("/api/auth/session").json()["data"]["userId"]


@pytest.fixture
def sign():
    return sign_payload


@pytest.fixture
def post_event(client):
    """Deliver a correctly signed Stripe event to the webhook endpoint."""

    def _post_event(event: dict):
        payload = json.dumps(event).encode()
        return client.post(
            "/api/webhooks/stripe",
            content=payload,
            headers={"Stripe-Signature": sign_payload(payload), "Content-Type": "application/json"},
        )

    return _post_event

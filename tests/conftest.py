import hashlib
import hmac
import json
import time

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from order_service.app import app, get_gateway, get_settings
from order_service.config import Settings, WebhookMode, WebhookSettings
from order_service.database import Base, get_db
from order_service.models import User
from order_service.payments import CheckoutSession, StripeGateway

WEBHOOK_SECRET = "whsec_test_secret"


class FakeGateway(StripeGateway):
    """Records checkout requests instead of calling Stripe."""

    def __init__(self, url="https://checkout.stripe.test/session"):
        super().__init__("sk_test_fake")
        self.url = url
        self.calls = []
        self.error = None

    def create_checkout_session(self, line_items, success_url, cancel_url, metadata):
        if self.error is not None:
            raise self.error
        self.calls.append({
            "line_items": line_items,
            "success_url": success_url,
            "cancel_url": cancel_url,
            "metadata": metadata,
        })
        return CheckoutSession(id=f"cs_test_{len(self.calls)}", url=self.url)


def sign_payload(payload: bytes, secret: str = WEBHOOK_SECRET, timestamp: int = None) -> str:
    timestamp = timestamp or int(time.time())
    signed = f"{timestamp}.{payload.decode('utf-8')}".encode("utf-8")
    signature = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={signature}"


def checkout_event(event_type="checkout.session.completed", order_id=None, session_id="cs_test_1") -> bytes:
    session = {"id": session_id, "object": "checkout.session", "metadata": {}}
    if order_id is not None:
        session["metadata"]["orderId"] = str(order_id)
    return json.dumps({"id": "evt_test", "type": event_type, "data": {"object": session}}).encode("utf-8")


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def user(db):
    user = User(name="Nimal", email="nimal@example.com", cartData={"12": 2, "31": 1})
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def settings():
    return Settings(
        stripe_secret_key="sk_test_fake",
        frontend_url="http://localhost:5173",
        delivery_fee=80.0,
        currency="lkr",
        webhook=WebhookSettings(mode=WebhookMode.STRICT, signing_secret=WEBHOOK_SECRET),
    )


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def client(session_factory, settings, gateway):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_gateway] = lambda: gateway
    yield TestClient(app)
    app.dependency_overrides.clear()

import hashlib
import hmac
import json
import os
import time
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional
from unittest.mock import MagicMock

# Module-level engine/settings in app.py are built at import time.
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("STRIPE_MODE", "test")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool

import models  # noqa: F401 - registers tables on Base.metadata
from billing import StripeGateway, SubscriptionReconciler, WebhookEvent, WebhookProcessor, load_price_catalog
from billing.plans import Plan
from db import Base, build_engine, build_session_factory
from notifications import EmailNotifier
from settings import AppSettings, EmailSettings, StripeSettings

WEBHOOK_SECRET = "whsec_test_secret"
PREMIUM_EUR_PRICE = "price_TEST_EUR_PREMIUM"
STARTER_DKK_PRICE = "price_TEST_DKK_STARTER"


def sign_payload(payload: bytes, secret: str = WEBHOOK_SECRET, timestamp: Optional[int] = None) -> str:
    """Build a ``Stripe-Signature`` header the way Stripe does."""
    timestamp = int(time.time()) if timestamp is None else timestamp
    signed = f"{timestamp}.".encode() + payload
    signature = hmac.new(secret.encode(), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={signature}"


def event_body(event_type: str, obj: Dict[str, Any], event_id: str = "evt_1") -> Dict[str, Any]:
    return {
        "id": event_id,
        "object": "event",
        "type": event_type,
        "data": {"object": obj},
    }


def event_payload(event_type: str, obj: Dict[str, Any], event_id: str = "evt_1") -> bytes:
    return json.dumps(event_body(event_type, obj, event_id)).encode()


def make_event(event_type: str, obj: Dict[str, Any], event_id: str = "evt_1") -> WebhookEvent:
    return WebhookEvent(id=event_id, type=event_type, data={"object": obj})


def unix(dt: datetime) -> int:
    return int(dt.timestamp())


def stripe_subscription(
    subscription_id: str = "sub_1",
    *,
    customer: str = "cus_1",
    status: str = "active",
    price_id: str = "price_unknown",
    period_end: Optional[datetime] = None,
    metadata: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    period_end = period_end or datetime.now(timezone.utc) + timedelta(days=30)
    return {
        "id": subscription_id,
        "object": "subscription",
        "customer": customer,
        "status": status,
        "current_period_end": unix(period_end),
        "cancel_at_period_end": False,
        "metadata": metadata or {},
        "items": {"data": [{"id": "si_1", "price": {"id": price_id}}]},
    }


@pytest.fixture
def engine():
    engine = build_engine("sqlite://", poolclass=StaticPool)
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
def catalog():
    return load_price_catalog("test", {})


@pytest.fixture
def app_settings(catalog):
    return AppSettings(
        stripe=StripeSettings(
            mode="test",
            secret_key="sk_test_123",
            webhook_secret=WEBHOOK_SECRET,
            catalog=catalog,
        ),
        email=EmailSettings(sender="noreply@example.com"),
        frontend_url="https://frontend.example",
        default_plan=Plan.STARTER,
        handler_timeout_seconds=5.0,
    )


@pytest.fixture
def gateway():
    gateway = MagicMock(spec=StripeGateway)
    gateway.customer_email.return_value = None
    gateway.retrieve_subscription.return_value = stripe_subscription()
    return gateway


@pytest.fixture
def notifier():
    return MagicMock(spec=EmailNotifier)


@pytest.fixture
def reconciler(gateway, catalog):
    return SubscriptionReconciler(gateway, catalog, default_plan=Plan.STARTER)


@pytest.fixture
def processor(session_factory, reconciler):
    return WebhookProcessor(session_factory, reconciler, gate_duplicates=True)


@pytest.fixture
def client(app_settings, gateway, notifier, session_factory):
    from app import app
    from routers.deps import get_gateway, get_notifier, get_session_factory, get_settings

    app.dependency_overrides[get_settings] = lambda: app_settings
    app.dependency_overrides[get_gateway] = lambda: gateway
    app.dependency_overrides[get_notifier] = lambda: notifier
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    try:
        with TestClient(app) as test_client:
            yield test_client
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def post_event(client):
    def _post(event_type: str, obj: Dict[str, Any], event_id: str = "evt_1", path: str = "/webhook"):
        payload = event_payload(event_type, obj, event_id)
        return client.post(
            path,
            content=payload,
            headers={"Stripe-Signature": sign_payload(payload), "Content-Type": "application/json"},
        )

    return _post

from types import SimpleNamespace

import pytest
import stripe

from billing import BillingConfigurationError
from conftest import PREMIUM_EUR_PRICE, STARTER_DKK_PRICE


@pytest.fixture
def checkout_gateway(gateway):
    gateway.create_subscription_checkout_session.return_value = SimpleNamespace(
        id="cs_test_1", url="https://checkout.stripe.test/cs_test_1"
    )
    return gateway


def test_creates_session_for_plan_and_currency(client, checkout_gateway):
    response = client.post(
        "/create-checkout-session",
        json={"plan": "premium", "currency": "EUR", "email": "a@x.com"},
    )

    assert response.status_code == 200
    assert response.json() == {"url": "https://checkout.stripe.test/cs_test_1"}
    kwargs = checkout_gateway.create_subscription_checkout_session.call_args.kwargs
    assert kwargs["price_id"] == PREMIUM_EUR_PRICE
    assert kwargs["customer_email"] == "a@x.com"
    assert kwargs["metadata"] == {"plan": "premium", "email": "a@x.com"}
    assert kwargs["success_url"] == "https://frontend.example/?success=1&plan=premium"
    assert kwargs["cancel_url"] == "https://frontend.example/?canceled=1"


def test_email_is_optional(client, checkout_gateway):
    response = client.post("/create-checkout-session", json={"plan": "starter", "currency": "dkk"})

    assert response.status_code == 200
    kwargs = checkout_gateway.create_subscription_checkout_session.call_args.kwargs
    assert kwargs["price_id"] == STARTER_DKK_PRICE
    assert kwargs["customer_email"] is None
    assert kwargs["metadata"] == {"plan": "starter"}


@pytest.mark.parametrize(
    "body",
    [
        {"plan": "gold", "currency": "eur"},
        {"plan": "free", "currency": "eur"},
        {"plan": "starter", "currency": "usd"},
        {"plan": "starter"},
        {},
    ],
)
def test_unknown_plan_or_currency_is_rejected(client, checkout_gateway, body):
    response = client.post("/create-checkout-session", json=body)

    assert response.status_code == 400
    assert response.json() == {"error": "Plan o moneda inválidos"}
    checkout_gateway.create_subscription_checkout_session.assert_not_called()


def test_invalid_json_is_rejected(client):
    response = client.post(
        "/create-checkout-session",
        content=b"not json",
        headers={"Content-Type": "application/json"},
    )

    assert response.status_code == 400


def test_stripe_error_is_reported(client, gateway):
    gateway.create_subscription_checkout_session.side_effect = stripe.InvalidRequestError(
        "No such price", param="price"
    )

    response = client.post("/create-checkout-session", json={"plan": "starter", "currency": "eur"})

    assert response.status_code == 500
    assert "No such price" in response.json()["error"]


def test_missing_secret_key_is_reported(client, gateway):
    gateway.create_subscription_checkout_session.side_effect = BillingConfigurationError("Stripe is not configured")

    response = client.post("/create-checkout-session", json={"plan": "starter", "currency": "eur"})

    assert response.status_code == 500
    assert response.json() == {"error": "Stripe is not configured"}

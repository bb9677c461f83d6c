from unittest.mock import MagicMock

import pytest
import stripe

from billing import BillingConfigurationError, StripeGateway, stripe_to_dict
from billing.reconciler import subscription_period_end, subscription_price_id
from conftest import PREMIUM_EUR_PRICE, stripe_subscription


def _sdk_subscription(**kwargs):
    return stripe.Subscription.construct_from(stripe_subscription(**kwargs), "sk_test_123")


def test_gateways_do_not_touch_sdk_globals():
    http_client = getattr(stripe, "default_http_client", None)
    retries = getattr(stripe, "max_network_retries", None)

    first = StripeGateway("sk_test_a", timeout_seconds=2.0, max_network_retries=0)
    second = StripeGateway("sk_test_b", timeout_seconds=30.0, max_network_retries=5)

    assert getattr(stripe, "default_http_client", None) is http_client
    assert getattr(stripe, "max_network_retries", None) == retries
    assert first.timeout_seconds == 2.0
    assert second.timeout_seconds == 30.0


def test_calls_without_secret_key_fail():
    gateway = StripeGateway(None)

    with pytest.raises(BillingConfigurationError):
        gateway.retrieve_subscription("sub_1")
    with pytest.raises(BillingConfigurationError):
        gateway.create_subscription_checkout_session(
            price_id=PREMIUM_EUR_PRICE, success_url="https://a", cancel_url="https://b"
        )


def test_sdk_subscription_converts_to_plain_dict():
    subscription = stripe_to_dict(_sdk_subscription(price_id=PREMIUM_EUR_PRICE))

    assert isinstance(subscription, dict)
    assert subscription["id"] == "sub_1"
    assert subscription_price_id(subscription) == PREMIUM_EUR_PRICE
    assert subscription_period_end(subscription) is not None


def test_retrieve_subscription_uses_owned_client():
    gateway = StripeGateway("sk_test_123")
    client = MagicMock()
    client.v1.subscriptions.retrieve.return_value = _sdk_subscription(price_id=PREMIUM_EUR_PRICE)
    gateway._client = client

    subscription = gateway.retrieve_subscription("sub_1")

    client.v1.subscriptions.retrieve.assert_called_once_with("sub_1")
    assert subscription_price_id(subscription) == PREMIUM_EUR_PRICE


def test_customer_email_ignores_deleted_customers():
    gateway = StripeGateway("sk_test_123")
    client = MagicMock()
    client.v1.customers.retrieve.return_value = stripe.Customer.construct_from(
        {"id": "cus_1", "object": "customer", "deleted": True}, "sk_test_123"
    )
    gateway._client = client

    assert gateway.customer_email("cus_1") is None
    assert gateway.customer_email(None) is None


def test_checkout_session_params():
    gateway = StripeGateway("sk_test_123")
    client = MagicMock()
    gateway._client = client

    gateway.create_subscription_checkout_session(
        price_id=PREMIUM_EUR_PRICE,
        success_url="https://front/?success=1",
        cancel_url="https://front/?canceled=1",
        customer_email="a@x.com",
        metadata={"plan": "premium"},
    )

    params = client.v1.checkout.sessions.create.call_args.kwargs["params"]
    assert params["mode"] == "subscription"
    assert params["line_items"] == [{"price": PREMIUM_EUR_PRICE, "quantity": 1}]
    assert params["customer_email"] == "a@x.com"
    assert params["metadata"] == {"plan": "premium"}

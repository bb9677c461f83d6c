"""Stripe integration helpers for subscription billing."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import stripe

logger = logging.getLogger(__name__)


class BillingConfigurationError(RuntimeError):
    """Raised when a Stripe call is attempted without the required keys."""


def stripe_to_dict(obj: Any) -> Dict[str, Any]:
    """Convert Stripe objects to plain nested dicts."""
    if obj is None:
        return {}
    if type(obj) is dict:
        return obj

    for attr in ("to_dict_recursive", "to_dict"):
        converter = getattr(obj, attr, None)
        if callable(converter):
            result = converter()
            if isinstance(result, dict):
                return result

    return dict(obj)


class StripeGateway:
    """Thin wrapper over one ``stripe.StripeClient`` bound to one API key.

    Timeouts and retries live on the owned client, so two gateways never
    share SDK module state. Handlers receive an instance so tests can hand
    in a fake.
    """

    def __init__(self, api_key: Optional[str], *, timeout_seconds: float = 10.0, max_network_retries: int = 2):
        self.timeout_seconds = timeout_seconds
        self.max_network_retries = max_network_retries
        self._client: Optional[stripe.StripeClient] = None
        if api_key:
            self._client = stripe.StripeClient(
                api_key,
                http_client=stripe.RequestsClient(timeout=timeout_seconds),
                max_network_retries=max_network_retries,
            )

    def _require_client(self) -> stripe.StripeClient:
        if self._client is None:
            raise BillingConfigurationError("Stripe secret key is not configured.")
        return self._client

    def retrieve_subscription(self, subscription_id: str) -> Dict[str, Any]:
        return stripe_to_dict(self._require_client().v1.subscriptions.retrieve(subscription_id))

    def retrieve_customer(self, customer_id: str) -> Dict[str, Any]:
        return stripe_to_dict(self._require_client().v1.customers.retrieve(customer_id))

    def customer_email(self, customer_id: Optional[str]) -> Optional[str]:
        """Return the customer's email, or None for deleted/emailless customers."""

        if not customer_id:
            return None
        customer = self.retrieve_customer(customer_id)
        if customer.get("deleted"):
            return None
        return customer.get("email") or None

    def create_subscription_checkout_session(
        self,
        *,
        price_id: str,
        success_url: str,
        cancel_url: str,
        customer_email: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> stripe.checkout.Session:
        """Create a Stripe Checkout session for a subscription plan."""

        params: Dict[str, Any] = {
            "mode": "subscription",
            "line_items": [
                {
                    "price": price_id,
                    "quantity": 1,
                }
            ],
            "success_url": success_url,
            "cancel_url": cancel_url,
            "metadata": metadata or {},
        }

        if customer_email:
            params["customer_email"] = customer_email

        return self._require_client().v1.checkout.sessions.create(params=params)

"""Stripe billing: signature checks, idempotency and subscription reconciliation."""

from .ledger import record_event, try_record_event
from .plans import PAID_PLANS, SUPPORTED_CURRENCIES, Plan, PriceCatalog, load_price_catalog, normalize_plan
from .reconciler import (
    CANCELLATION,
    WELCOME,
    NotificationRequest,
    ProcessingCancelled,
    ReconciliationResult,
    SubscriptionReconciler,
    WebhookProcessor,
)
from .stripe_client import BillingConfigurationError, StripeGateway, stripe_to_dict
from .webhooks import StripeWebhookConfig, WebhookEvent, WebhookVerificationError, parse_event

__all__ = [
    "PAID_PLANS",
    "SUPPORTED_CURRENCIES",
    "CANCELLATION",
    "WELCOME",
    "BillingConfigurationError",
    "NotificationRequest",
    "Plan",
    "ProcessingCancelled",
    "PriceCatalog",
    "ReconciliationResult",
    "StripeGateway",
    "StripeWebhookConfig",
    "SubscriptionReconciler",
    "WebhookEvent",
    "WebhookProcessor",
    "WebhookVerificationError",
    "load_price_catalog",
    "normalize_plan",
    "parse_event",
    "record_event",
    "stripe_to_dict",
    "try_record_event",
]

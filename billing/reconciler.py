"""Map verified Stripe events onto local user/subscription rows."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple

from sqlalchemy.orm import Session, sessionmaker

from core.datetime_utils import from_unix_seconds
from services.subscriptions import (
    get_subscription,
    mark_subscription_canceled_now,
    normalize_email,
    upsert_subscription,
    upsert_user_by_email,
)

from .ledger import try_record_event
from .plans import Plan, PriceCatalog, normalize_plan
from .stripe_client import StripeGateway
from .webhooks import WebhookEvent

logger = logging.getLogger(__name__)

CHECKOUT_COMPLETED = "checkout.session.completed"
SUBSCRIPTION_CREATED = "customer.subscription.created"
SUBSCRIPTION_UPDATED = "customer.subscription.updated"
SUBSCRIPTION_DELETED = "customer.subscription.deleted"

WELCOME = "welcome"
CANCELLATION = "cancellation"


@dataclass(frozen=True)
class NotificationRequest:
    kind: str
    email: str
    plan: Optional[str] = None
    language: Optional[str] = None


@dataclass
class ReconciliationResult:
    event_id: str
    event_type: str
    action: str = "ignored"
    reason: Optional[str] = None
    notifications: List[NotificationRequest] = field(default_factory=list)

    @property
    def duplicate(self) -> bool:
        return self.action == "duplicate"

    @property
    def skipped(self) -> bool:
        return self.action == "skipped"


def _coerce_id(value: Any) -> Optional[str]:
    """Stripe ids may arrive as strings or as expanded objects."""
    if not value:
        return None
    if isinstance(value, str):
        return value
    if isinstance(value, dict):
        candidate = value.get("id")
    else:
        candidate = getattr(value, "id", None)
    return candidate if isinstance(candidate, str) and candidate else None


def _metadata(obj: Dict[str, Any]) -> Dict[str, Any]:
    return obj.get("metadata") or {}


def _first_item(subscription: Dict[str, Any]) -> Dict[str, Any]:
    items = (subscription.get("items") or {}).get("data") or []
    return items[0] if items else {}


def subscription_price_id(subscription: Dict[str, Any]) -> Optional[str]:
    item = _first_item(subscription)
    price = item.get("price") or item.get("plan") or {}
    return _coerce_id(price)


def subscription_period_end(subscription: Dict[str, Any]) -> Optional[datetime]:
    """Newer API versions moved ``current_period_end`` onto subscription items."""

    period_end = from_unix_seconds(subscription.get("current_period_end"))
    if period_end is None:
        period_end = from_unix_seconds(_first_item(subscription).get("current_period_end"))
    return period_end


def _language(value: Any) -> Optional[str]:
    if not value:
        return None
    candidate = str(value).strip().lower()
    if not candidate or candidate == "auto":
        return None
    return candidate[:16]


class SubscriptionReconciler:
    """Apply one verified event to the store; returns the emails to send.

    Stripe lookups and database errors propagate so the caller answers 500
    and Stripe retries. Events that can never be resolved (no email, no id)
    are logged and skipped.
    """

    def __init__(self, gateway: StripeGateway, catalog: PriceCatalog, *, default_plan: Plan = Plan.STARTER):
        self.gateway = gateway
        self.catalog = catalog
        self.default_plan = default_plan
        self._handlers: Dict[str, Callable[[Session, WebhookEvent, ReconciliationResult], None]] = {
            CHECKOUT_COMPLETED: self._handle_checkout_completed,
            SUBSCRIPTION_CREATED: self._handle_subscription_changed,
            SUBSCRIPTION_UPDATED: self._handle_subscription_changed,
            SUBSCRIPTION_DELETED: self._handle_subscription_deleted,
        }

    def reconcile(self, session: Session, event: WebhookEvent) -> ReconciliationResult:
        result = ReconciliationResult(event_id=event.id, event_type=event.type)
        handler = self._handlers.get(event.type)
        if handler is None:
            logger.debug("Unhandled Stripe webhook event type: %s", event.type)
            return result
        handler(session, event, result)
        return result

    def resolve_plan(self, metadata_plan: Any, price_id: Optional[str]) -> Plan:
        return normalize_plan(metadata_plan) or self.catalog.plan_for_price(price_id) or self.default_plan

    @staticmethod
    def _skip(result: ReconciliationResult, reason: str) -> None:
        logger.warning("Skipping Stripe event %s (%s): %s", result.event_id, result.event_type, reason)
        result.action = "skipped"
        result.reason = reason

    def _handle_checkout_completed(self, session: Session, event: WebhookEvent, result: ReconciliationResult) -> None:
        checkout = event.object
        metadata = _metadata(checkout)
        subscription_id = _coerce_id(checkout.get("subscription"))
        customer_id = _coerce_id(checkout.get("customer"))

        email = normalize_email(
            (checkout.get("customer_details") or {}).get("email")
            or checkout.get("customer_email")
            or metadata.get("email")
        )
        if not email and customer_id:
            email = normalize_email(self.gateway.customer_email(customer_id))

        logger.info(
            "checkout.session.completed: email=%s plan=%s subscription=%s",
            email or None,
            metadata.get("plan"),
            subscription_id,
        )

        if not subscription_id:
            self._skip(result, "checkout completed without subscription id")
            return
        if not email:
            self._skip(result, "checkout completed without resolvable email")
            return

        subscription = self.gateway.retrieve_subscription(subscription_id)
        plan = self.resolve_plan(metadata.get("plan"), subscription_price_id(subscription))
        status = subscription.get("status") or "active"
        language = _language(metadata.get("language") or checkout.get("locale"))
        customer_id = customer_id or _coerce_id(subscription.get("customer"))

        user_id = upsert_user_by_email(session, email, stripe_customer_id=customer_id, language=language)
        upsert_subscription(
            session,
            user_id=user_id,
            stripe_subscription_id=subscription_id,
            plan=plan.value,
            status=status,
            current_period_end=subscription_period_end(subscription),
        )

        result.action = "subscription_upserted"
        result.notifications.append(
            NotificationRequest(kind=WELCOME, email=email, plan=plan.value, language=language)
        )

    def _handle_subscription_changed(self, session: Session, event: WebhookEvent, result: ReconciliationResult) -> None:
        subscription = event.object
        subscription_id = _coerce_id(subscription.get("id"))
        customer_id = _coerce_id(subscription.get("customer"))
        metadata = _metadata(subscription)

        if not subscription_id:
            self._skip(result, "subscription event without id")
            return
        if not customer_id:
            self._skip(result, "subscription event without customer id")
            return

        email = normalize_email(self.gateway.customer_email(customer_id) or metadata.get("email"))
        if not email:
            self._skip(result, f"no email for customer {customer_id}")
            return

        plan = self.resolve_plan(metadata.get("plan"), subscription_price_id(subscription))
        status = subscription.get("status") or "active"
        period_end = subscription_period_end(subscription)

        logger.info(
            "%s: subscription=%s status=%s plan=%s cancel_at_period_end=%s period_end=%s",
            event.type,
            subscription_id,
            status,
            plan.value,
            subscription.get("cancel_at_period_end"),
            period_end,
        )

        user_id = upsert_user_by_email(session, email, stripe_customer_id=customer_id)
        upsert_subscription(
            session,
            user_id=user_id,
            stripe_subscription_id=subscription_id,
            plan=plan.value,
            status=status,
            current_period_end=period_end,
        )
        result.action = "subscription_upserted"

    def _handle_subscription_deleted(self, session: Session, event: WebhookEvent, result: ReconciliationResult) -> None:
        subscription = event.object
        subscription_id = _coerce_id(subscription.get("id"))
        if not subscription_id:
            self._skip(result, "subscription deletion without id")
            return

        updated = mark_subscription_canceled_now(session, subscription_id)
        logger.info(
            "customer.subscription.deleted: subscription=%s provider_status=%s rows=%s",
            subscription_id,
            subscription.get("status"),
            updated,
        )
        result.action = "subscription_canceled"

        email, language = self._cancellation_recipient(session, subscription_id, _coerce_id(subscription.get("customer")))
        if email:
            result.notifications.append(NotificationRequest(kind=CANCELLATION, email=email, language=language))

    def _cancellation_recipient(
        self, session: Session, subscription_id: str, customer_id: Optional[str]
    ) -> Tuple[Optional[str], Optional[str]]:
        email: Optional[str] = None
        if customer_id:
            try:
                email = normalize_email(self.gateway.customer_email(customer_id)) or None
            except Exception:  # noqa: BLE001 - the email is optional, the cancellation is not
                logger.warning("Could not retrieve customer %s for cancellation email", customer_id, exc_info=True)

        row = get_subscription(session, subscription_id)
        local_user = row.user if row is not None else None
        if email is None and local_user is not None:
            email = local_user.email
        language = local_user.language if local_user is not None else None
        return email, language


class ProcessingCancelled(RuntimeError):
    """Raised inside the transaction when the caller stopped waiting for it."""


class WebhookProcessor:
    """Runs ledger + reconciliation for one event in a single transaction.

    A reconciliation failure rolls the ledger row back too, so the provider's
    retry is processed again instead of being mistaken for a duplicate. The
    same holds when ``cancelled`` is set before the commit: the caller has
    already answered 500 and dropped the notifications.
    """

    def __init__(
        self,
        session_factory: sessionmaker,
        reconciler: SubscriptionReconciler,
        *,
        gate_duplicates: bool = True,
    ):
        self.session_factory = session_factory
        self.reconciler = reconciler
        self.gate_duplicates = gate_duplicates

    def process(self, event: WebhookEvent, cancelled: Optional[threading.Event] = None) -> ReconciliationResult:
        with self.session_factory() as session:
            with session.begin():
                recorded = try_record_event(session, event.id, event.type)
                if recorded is False:
                    if self.gate_duplicates:
                        logger.info("Stripe event %s (%s) already processed; skipping", event.id, event.type)
                        return ReconciliationResult(
                            event_id=event.id,
                            event_type=event.type,
                            action="duplicate",
                            reason="event already processed",
                        )
                    logger.info("Stripe event %s (%s) seen before; reprocessing", event.id, event.type)

                result = self.reconciler.reconcile(session, event)
                if cancelled is not None and cancelled.is_set():
                    logger.warning("Stripe event %s (%s) timed out; rolling back", event.id, event.type)
                    raise ProcessingCancelled(f"processing of {event.id} was cancelled")
                return result

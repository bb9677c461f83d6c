"""Stripe webhook signature verification."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import stripe

from .stripe_client import stripe_to_dict

logger = logging.getLogger(__name__)


class WebhookVerificationError(ValueError):
    """Raised when a webhook payload cannot be trusted."""


@dataclass
class StripeWebhookConfig:
    signing_secret: Optional[str]
    tolerance_seconds: int = stripe.Webhook.DEFAULT_TOLERANCE


@dataclass(frozen=True)
class WebhookEvent:
    id: str
    type: str
    data: Dict[str, Any] = field(default_factory=dict)

    @property
    def object(self) -> Dict[str, Any]:
        return self.data.get("object") or {}

    @classmethod
    def from_payload(cls, payload: Any) -> "WebhookEvent":
        body = stripe_to_dict(payload)
        event_id = body.get("id")
        event_type = body.get("type")
        if not event_id or not event_type:
            raise WebhookVerificationError("Event is missing an id or type")
        return cls(id=str(event_id), type=str(event_type), data=stripe_to_dict(body.get("data")))


def parse_event(payload: bytes, signature_header: Optional[str], config: StripeWebhookConfig) -> WebhookEvent:
    """Validate the signature over the raw bytes and return the parsed event.

    ``payload`` must be the body exactly as received; re-serialized JSON
    will not verify.
    """

    if not config.signing_secret:
        raise WebhookVerificationError("Missing Stripe webhook secret")
    if not signature_header:
        raise WebhookVerificationError("Missing Stripe-Signature header")

    try:
        event = stripe.Webhook.construct_event(
            payload=payload,
            sig_header=signature_header,
            secret=config.signing_secret,
            tolerance=config.tolerance_seconds,
        )
    except stripe.SignatureVerificationError as exc:
        logger.warning("Invalid Stripe signature: %s", exc)
        raise WebhookVerificationError(str(exc) or "Invalid signature") from exc
    except ValueError as exc:
        logger.warning("Malformed Stripe webhook payload: %s", exc)
        raise WebhookVerificationError("Invalid payload") from exc

    return WebhookEvent.from_payload(event)

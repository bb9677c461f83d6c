"""Stripe webhook endpoint.

The body is read as raw bytes; nothing may parse it as JSON before the
signature check.
"""

from __future__ import annotations

import asyncio
import logging
import threading

from fastapi import APIRouter, BackgroundTasks, Depends, Request, status
from fastapi.responses import JSONResponse, PlainTextResponse

from billing import StripeWebhookConfig, WebhookProcessor, WebhookVerificationError, parse_event
from notifications import EmailNotifier
from settings import AppSettings

from .deps import get_notifier, get_settings, get_webhook_processor

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/webhook")
@router.post("/stripe-webhook")
async def stripe_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    settings: AppSettings = Depends(get_settings),
    processor: WebhookProcessor = Depends(get_webhook_processor),
    notifier: EmailNotifier = Depends(get_notifier),
):
    payload = await request.body()
    signature = request.headers.get("stripe-signature")

    try:
        event = parse_event(payload, signature, StripeWebhookConfig(signing_secret=settings.stripe.webhook_secret))
    except WebhookVerificationError as exc:
        logger.error("Webhook signature error: %s", exc)
        return PlainTextResponse(f"Webhook Error: {exc}", status_code=status.HTTP_400_BAD_REQUEST)

    logger.info("Stripe webhook received: %s (%s)", event.type, event.id)

    # The worker thread outlives a timeout; the flag makes it roll back.
    cancelled = threading.Event()
    try:
        result = await asyncio.wait_for(
            asyncio.to_thread(processor.process, event, cancelled),
            timeout=settings.handler_timeout_seconds,
        )
    except asyncio.TimeoutError:
        cancelled.set()
        logger.error(
            "Webhook processing for %s exceeded %.1fs; asking Stripe to retry",
            event.id,
            settings.handler_timeout_seconds,
        )
        return PlainTextResponse("Webhook handler failed", status_code=status.HTTP_500_INTERNAL_SERVER_ERROR)
    except Exception:  # noqa: BLE001 - any failure after verification must trigger a provider retry
        logger.exception("Webhook processing error for %s (%s)", event.id, event.type)
        return PlainTextResponse("Webhook handler failed", status_code=status.HTTP_500_INTERNAL_SERVER_ERROR)

    for notification in result.notifications:
        background_tasks.add_task(notifier.dispatch, notification)
        logger.info("Queued %s email for %s", notification.kind, notification.email)

    content = {"received": True}
    if result.duplicate:
        content["duplicate"] = True
    return JSONResponse(content=content)

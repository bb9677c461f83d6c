"""Hosted checkout session creation."""

from __future__ import annotations

import asyncio
import logging
import urllib.parse

import stripe
from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse

from billing import PAID_PLANS, BillingConfigurationError, StripeGateway, normalize_plan
from settings import AppSettings

from .deps import get_gateway, get_settings

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/create-checkout-session")
async def create_checkout_session(
    request: Request,
    settings: AppSettings = Depends(get_settings),
    gateway: StripeGateway = Depends(get_gateway),
):
    try:
        payload = await request.json()
    except ValueError:
        payload = None
    if not isinstance(payload, dict):
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"error": "JSON inválido."})

    plan = normalize_plan(payload.get("plan"))
    currency = str(payload.get("currency") or "").strip().lower()
    email = str(payload.get("email") or "").strip()

    price_id = settings.stripe.catalog.price_for(plan.value if plan else None, currency)
    if plan not in PAID_PLANS or not price_id:
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"error": "Plan o moneda inválidos"})

    metadata = {"plan": plan.value}
    if email:
        metadata["email"] = email

    success_url = f"{settings.frontend_url}/?{urllib.parse.urlencode({'success': 1, 'plan': plan.value})}"
    cancel_url = f"{settings.frontend_url}/?canceled=1"

    try:
        session_obj = await asyncio.to_thread(
            gateway.create_subscription_checkout_session,
            price_id=price_id,
            success_url=success_url,
            cancel_url=cancel_url,
            customer_email=email or None,
            metadata=metadata,
        )
    except stripe.StripeError as exc:
        logger.exception("Failed to create Stripe checkout session for plan %s (%s)", plan.value, currency)
        message = exc.user_message or str(exc) or "Stripe error"
        return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content={"error": message})
    except BillingConfigurationError as exc:
        logger.error("Checkout requested but billing is not configured: %s", exc)
        return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content={"error": str(exc)})

    logger.info("Checkout session created for plan=%s currency=%s", plan.value, currency)
    return JSONResponse(content={"url": session_obj.url})

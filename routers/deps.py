"""FastAPI dependency providers backed by handles stored on ``app.state``."""

from __future__ import annotations

from fastapi import Depends, Request
from sqlalchemy.orm import sessionmaker

from billing import StripeGateway, SubscriptionReconciler, WebhookProcessor
from notifications import EmailNotifier
from settings import AppSettings


def get_settings(request: Request) -> AppSettings:
    return request.app.state.settings


def get_gateway(request: Request) -> StripeGateway:
    return request.app.state.gateway


def get_notifier(request: Request) -> EmailNotifier:
    return request.app.state.notifier


def get_session_factory(request: Request) -> sessionmaker:
    return request.app.state.session_factory


def get_webhook_processor(
    settings: AppSettings = Depends(get_settings),
    gateway: StripeGateway = Depends(get_gateway),
    session_factory: sessionmaker = Depends(get_session_factory),
) -> WebhookProcessor:
    reconciler = SubscriptionReconciler(
        gateway,
        settings.stripe.catalog,
        default_plan=settings.default_plan,
    )
    return WebhookProcessor(
        session_factory,
        reconciler,
        gate_duplicates=settings.gate_duplicate_events,
    )

"""Environment-driven configuration for the webhook service."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Mapping, Optional

from dotenv import load_dotenv

from billing.plans import Plan, PriceCatalog, STRIPE_MODES, load_price_catalog, normalize_plan

logger = logging.getLogger(__name__)

DEFAULT_FRONTEND_URL = "https://construye-tu-futuro.netlify.app"
DEFAULT_EMAIL_SENDER = "Construye tu futuro <noreply@send.construye-tu-futuro.com>"


def _flag(value: Optional[str], default: bool) -> bool:
    if value is None or not value.strip():
        return default
    return value.strip().lower() not in {"0", "false", "no", "off"}


def _float(value: Optional[str], default: float) -> float:
    try:
        parsed = float(value) if value else default
    except ValueError:
        return default
    return parsed if parsed > 0 else default


@dataclass(frozen=True)
class StripeSettings:
    mode: str
    secret_key: Optional[str]
    webhook_secret: Optional[str]
    catalog: PriceCatalog
    timeout_seconds: float = 10.0


@dataclass(frozen=True)
class EmailSettings:
    sender: str
    acs_connection_string: Optional[str] = None
    smtp_host: Optional[str] = None
    smtp_port: int = 587
    smtp_username: Optional[str] = None
    smtp_password: Optional[str] = None
    smtp_use_tls: bool = True
    timeout_seconds: float = 15.0


@dataclass(frozen=True)
class AppSettings:
    stripe: StripeSettings
    email: EmailSettings
    frontend_url: str = DEFAULT_FRONTEND_URL
    frontend_origin: Optional[str] = None
    default_plan: Plan = Plan.STARTER
    gate_duplicate_events: bool = True
    handler_timeout_seconds: float = 25.0
    log_level: str = "INFO"

    @property
    def mode(self) -> str:
        return self.stripe.mode


def resolve_stripe_mode(value: Optional[str]) -> str:
    mode = (value or "live").strip().lower()
    if mode not in STRIPE_MODES:
        logger.warning("Unknown STRIPE_MODE %r; falling back to live", value)
        return "live"
    return mode


def load_settings(environ: Optional[Mapping[str, str]] = None) -> AppSettings:
    """Read settings from ``environ`` (defaults to ``os.environ`` after ``.env``)."""

    if environ is None:
        load_dotenv()
        environ = os.environ

    mode = resolve_stripe_mode(environ.get("STRIPE_MODE"))
    suffix = "_TEST" if mode == "test" else ""

    stripe_settings = StripeSettings(
        mode=mode,
        secret_key=environ.get(f"STRIPE_SECRET_KEY{suffix}") or None,
        webhook_secret=environ.get(f"STRIPE_WEBHOOK_SECRET{suffix}") or None,
        catalog=load_price_catalog(mode, environ),
        timeout_seconds=_float(environ.get("STRIPE_TIMEOUT_SECONDS"), 10.0),
    )

    if not stripe_settings.secret_key:
        logger.error("Missing Stripe secret key for mode: %s", mode)
    if not stripe_settings.webhook_secret:
        logger.error("Missing Stripe webhook secret for mode: %s", mode)

    smtp_username = environ.get("SMTP_USERNAME") or None
    email_settings = EmailSettings(
        sender=environ.get("EMAIL_SENDER") or smtp_username or DEFAULT_EMAIL_SENDER,
        acs_connection_string=environ.get("ACS_CONNECTION_STRING") or None,
        smtp_host=environ.get("SMTP_HOST") or None,
        smtp_port=int(environ.get("SMTP_PORT") or 587),
        smtp_username=smtp_username,
        smtp_password=environ.get("SMTP_PASSWORD") or None,
        smtp_use_tls=_flag(environ.get("SMTP_USE_TLS"), True),
    )

    default_plan = normalize_plan(environ.get("DEFAULT_PLAN")) or Plan.STARTER
    frontend_url = (environ.get("FRONTEND_URL") or environ.get("FRONTEND_ORIGIN") or DEFAULT_FRONTEND_URL).rstrip("/")

    return AppSettings(
        stripe=stripe_settings,
        email=email_settings,
        frontend_url=frontend_url,
        frontend_origin=environ.get("FRONTEND_ORIGIN") or None,
        default_plan=default_plan,
        gate_duplicate_events=_flag(environ.get("WEBHOOK_GATE_DUPLICATES"), True),
        handler_timeout_seconds=_float(environ.get("WEBHOOK_HANDLER_TIMEOUT_SECONDS"), 25.0),
        log_level=(environ.get("LOG_LEVEL") or "INFO").upper(),
    )

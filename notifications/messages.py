"""Plain welcome and cancellation messages."""

from __future__ import annotations

import html
from dataclasses import dataclass
from typing import Optional

BRAND = "Construye tu futuro"


@dataclass(frozen=True)
class EmailContent:
    subject: str
    text: str
    html: str


def _is_english(language: Optional[str]) -> bool:
    return bool(language) and str(language).lower().startswith("en")


def welcome_message(plan: Optional[str], frontend_url: str, language: Optional[str] = None) -> EmailContent:
    plan_label = plan or "starter"
    login_url = f"{frontend_url}/login.html"
    safe_plan = html.escape(plan_label)
    safe_url = html.escape(login_url, quote=True)

    if _is_english(language):
        subject = f"Welcome to {BRAND}"
        text = f"Thanks for subscribing to {BRAND}.\nPlan: {plan_label}\nSign in: {login_url}\n"
        body = (
            f"<h2>Welcome</h2><p>Thanks for subscribing to <b>{BRAND}</b>.</p>"
            f"<p>Plan: <b>{safe_plan}</b></p><p><a href=\"{safe_url}\">Sign in</a></p>"
        )
    else:
        subject = f"Bienvenido a {BRAND}"
        text = f"Gracias por suscribirte a {BRAND}.\nPlan: {plan_label}\nEntrar: {login_url}\n"
        body = (
            f"<h2>Bienvenido</h2><p>Gracias por suscribirte a <b>{BRAND}</b>.</p>"
            f"<p>Plan: <b>{safe_plan}</b></p><p><a href=\"{safe_url}\">Entrar</a></p>"
        )

    return EmailContent(subject=subject, text=text, html=body)


def cancellation_message(frontend_url: str, language: Optional[str] = None) -> EmailContent:
    safe_url = html.escape(frontend_url, quote=True)

    if _is_english(language):
        subject = "Your subscription has been canceled"
        text = (
            f"Your subscription to {BRAND} has been canceled.\n"
            f"If this was a mistake you can come back any time: {frontend_url}\n"
        )
        body = (
            f"<h2>Subscription canceled</h2><p>Your subscription to <b>{BRAND}</b> has been canceled.</p>"
            f"<p>If this was a mistake you can come back any time.</p><p><a href=\"{safe_url}\">{safe_url}</a></p>"
        )
    else:
        subject = "Tu suscripción ha sido cancelada"
        text = (
            f"Tu suscripción a {BRAND} ha sido cancelada.\n"
            f"Si fue un error, puedes volver cuando quieras: {frontend_url}\n"
        )
        body = (
            f"<h2>Suscripción cancelada</h2><p>Tu suscripción a <b>{BRAND}</b> ha sido cancelada.</p>"
            f"<p>Si fue un error, puedes volver cuando quieras.</p><p><a href=\"{safe_url}\">{safe_url}</a></p>"
        )

    return EmailContent(subject=subject, text=text, html=body)

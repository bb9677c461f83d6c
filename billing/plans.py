"""Static subscription plan catalogue and price lookups."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Mapping, Optional, Tuple


class Plan(str, Enum):
    FREE = "free"
    STARTER = "starter"
    PREMIUM = "premium"


PAID_PLANS: Tuple[Plan, ...] = (Plan.STARTER, Plan.PREMIUM)
SUPPORTED_CURRENCIES: Tuple[str, ...] = ("eur", "dkk")
STRIPE_MODES: Tuple[str, ...] = ("live", "test")


def _placeholder_price(mode: str, plan: Plan, currency: str) -> str:
    return f"price_{mode.upper()}_{currency.upper()}_{plan.value.upper()}"


def _price_env_name(mode: str, plan: Plan, currency: str) -> str:
    return f"STRIPE_PRICE_{mode.upper()}_{plan.value.upper()}_{currency.upper()}"


def normalize_plan(value: Optional[str]) -> Optional[Plan]:
    """Return the matching plan for a free-form value, or None."""

    if not value:
        return None

    candidate = str(value).strip().lower()
    for plan in Plan:
        if plan.value == candidate:
            return plan
    return None


@dataclass(frozen=True)
class PriceCatalog:
    """Price identifiers for one Stripe mode, keyed by plan then currency."""

    mode: str
    prices: Mapping[Plan, Mapping[str, str]] = field(default_factory=dict)

    def price_for(self, plan: Optional[str], currency: Optional[str]) -> Optional[str]:
        resolved = normalize_plan(plan)
        if resolved is None or not currency:
            return None
        return self.prices.get(resolved, {}).get(str(currency).strip().lower())

    def plan_for_price(self, price_id: Optional[str]) -> Optional[Plan]:
        if not price_id:
            return None
        for plan, by_currency in self.prices.items():
            if price_id in by_currency.values():
                return plan
        return None


def load_price_catalog(mode: str, environ: Optional[Mapping[str, str]] = None) -> PriceCatalog:
    """Build the catalogue for ``mode`` from ``STRIPE_PRICE_<MODE>_<PLAN>_<CURRENCY>``."""

    env = os.environ if environ is None else environ
    prices: Dict[Plan, Dict[str, str]] = {}
    for plan in PAID_PLANS:
        prices[plan] = {
            currency: env.get(_price_env_name(mode, plan, currency)) or _placeholder_price(mode, plan, currency)
            for currency in SUPPORTED_CURRENCIES
        }
    return PriceCatalog(mode=mode, prices=prices)

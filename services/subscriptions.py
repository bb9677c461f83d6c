"""Database helpers for users, subscriptions and access checks."""

from __future__ import annotations

from datetime import datetime
from typing import Iterable, Optional

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from core.datetime_utils import ensure_utc, utcnow
from db import dialect_insert
from models import Subscription, User

ACTIVE_SUBSCRIPTION_STATUSES = frozenset({"active", "trialing", "past_due"})


def normalize_email(value: Optional[str]) -> str:
    if value is None:
        return ""
    return str(value).strip().lower()


def upsert_user_by_email(
    session: Session,
    email: str,
    *,
    stripe_customer_id: Optional[str] = None,
    language: Optional[str] = None,
) -> int:
    """Insert the user or refresh it on email conflict; returns the user id.

    Existing customer ids and languages are kept when the new value is empty.
    """

    normalized = normalize_email(email)
    if not normalized:
        raise ValueError("email is required")

    table = User.__table__
    stmt = dialect_insert(session, User).values(
        email=normalized,
        stripe_customer_id=stripe_customer_id,
        language=language,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=[table.c.email],
        set_={
            "stripe_customer_id": func.coalesce(stmt.excluded.stripe_customer_id, table.c.stripe_customer_id),
            "language": func.coalesce(stmt.excluded.language, table.c.language),
            "updated_at": func.now(),
        },
    ).returning(table.c.id)
    return session.execute(stmt).scalar_one()


def upsert_subscription(
    session: Session,
    *,
    user_id: int,
    stripe_subscription_id: str,
    plan: str,
    status: str,
    current_period_end: Optional[datetime],
) -> None:
    """Insert or overwrite the row keyed by ``stripe_subscription_id``."""

    table = Subscription.__table__
    stmt = dialect_insert(session, Subscription).values(
        user_id=user_id,
        stripe_subscription_id=stripe_subscription_id,
        plan=plan,
        status=status,
        current_period_end=current_period_end,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=[table.c.stripe_subscription_id],
        set_={
            "user_id": stmt.excluded.user_id,
            "plan": stmt.excluded.plan,
            "status": stmt.excluded.status,
            "current_period_end": stmt.excluded.current_period_end,
            "updated_at": func.now(),
        },
    )
    session.execute(stmt)


def mark_subscription_canceled_now(session: Session, stripe_subscription_id: str) -> int:
    """Revoke access immediately; returns the number of rows touched."""

    result = session.execute(
        update(Subscription)
        .where(Subscription.stripe_subscription_id == stripe_subscription_id)
        .values(status="canceled", current_period_end=utcnow(), updated_at=func.now())
    )
    return result.rowcount or 0


def latest_subscription_for_email(session: Session, email: str) -> Optional[Subscription]:
    """Return the subscription with the furthest period end (NULLs last)."""

    normalized = normalize_email(email)
    if not normalized:
        return None

    stmt = (
        select(Subscription)
        .join(User, Subscription.user_id == User.id)
        .where(User.email == normalized)
        .order_by(Subscription.current_period_end.is_(None), Subscription.current_period_end.desc())
        .limit(1)
    )
    return session.execute(stmt).scalars().first()


def get_subscription(session: Session, stripe_subscription_id: str) -> Optional[Subscription]:
    return (
        session.query(Subscription)
        .filter(Subscription.stripe_subscription_id == stripe_subscription_id)
        .one_or_none()
    )


def is_access_active(
    subscription: Optional[Subscription],
    *,
    now: Optional[datetime] = None,
    allowed_statuses: Iterable[str] = ACTIVE_SUBSCRIPTION_STATUSES,
) -> bool:
    if subscription is None:
        return False

    status = str(subscription.status or "").lower()
    if status not in set(allowed_statuses):
        return False

    period_end = ensure_utc(subscription.current_period_end)
    if period_end is None:
        return False

    return period_end > (now or utcnow())

"""Idempotency ledger for Stripe event deliveries."""

from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from db import dialect_insert
from models import ProcessedEvent

logger = logging.getLogger(__name__)


def record_event(session: Session, event_id: str, event_type: str) -> bool:
    """Insert the event id if absent. Returns True when this call inserted it."""

    stmt = (
        dialect_insert(session, ProcessedEvent)
        .values(event_id=event_id, event_type=event_type)
        .on_conflict_do_nothing(index_elements=[ProcessedEvent.__table__.c.event_id])
    )
    result = session.execute(stmt)
    return bool(result.rowcount)


def try_record_event(session: Session, event_id: str, event_type: str) -> Optional[bool]:
    """Best-effort variant of :func:`record_event` run inside a SAVEPOINT.

    Returns None when the insert failed; the failure is logged and the outer
    transaction stays usable.
    """

    try:
        with session.begin_nested():
            return record_event(session, event_id, event_type)
    except SQLAlchemyError:
        logger.exception("Failed to record Stripe event %s (%s) in the idempotency ledger", event_id, event_type)
        return None

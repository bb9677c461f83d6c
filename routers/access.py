"""Email-based access checks and plan lookup."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Optional, Tuple

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from billing import Plan
from core.datetime_utils import isoformat_or_none
from services.subscriptions import is_access_active, latest_subscription_for_email, normalize_email

from .deps import get_session_factory

router = APIRouter()
logger = logging.getLogger(__name__)

MISSING_EMAIL = "Falta email"
NO_SUBSCRIPTION = "No tienes suscripción activa."
SUBSCRIPTION_INACTIVE = "Tu suscripción no está activa o ha expirado."


def _check_access(session_factory: sessionmaker, email: str) -> Tuple[int, Dict[str, Any]]:
    with session_factory() as session:
        subscription = latest_subscription_for_email(session, email)

        if subscription is None:
            return status.HTTP_401_UNAUTHORIZED, {"ok": False, "error": NO_SUBSCRIPTION}

        if not is_access_active(subscription):
            return status.HTTP_401_UNAUTHORIZED, {"ok": False, "error": SUBSCRIPTION_INACTIVE}

        return status.HTTP_200_OK, {
            "ok": True,
            "plan": subscription.plan,
            "status": subscription.status,
            "current_period_end": isoformat_or_none(subscription.current_period_end),
        }


async def _access_response(session_factory: sessionmaker, raw_email: Optional[str], route: str) -> JSONResponse:
    email = normalize_email(raw_email)
    if not email:
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"ok": False, "error": MISSING_EMAIL})

    try:
        status_code, content = await asyncio.to_thread(_check_access, session_factory, email)
    except SQLAlchemyError:
        logger.exception("%s failed for %s", route, email)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"ok": False, "error": "Server error"},
        )

    return JSONResponse(status_code=status_code, content=content)


@router.post("/auth/login")
async def login(request: Request, session_factory: sessionmaker = Depends(get_session_factory)):
    try:
        payload = await request.json()
    except ValueError:
        payload = None
    email = payload.get("email") if isinstance(payload, dict) else None
    return await _access_response(session_factory, email, "auth/login")


@router.get("/auth/check")
async def check(email: Optional[str] = None, session_factory: sessionmaker = Depends(get_session_factory)):
    return await _access_response(session_factory, email, "auth/check")


def _current_plan(session_factory: sessionmaker, email: str) -> str:
    with session_factory() as session:
        subscription = latest_subscription_for_email(session, email)
        if is_access_active(subscription):
            return subscription.plan
    return Plan.FREE.value


@router.get("/get-plan")
async def get_plan(email: Optional[str] = None, session_factory: sessionmaker = Depends(get_session_factory)):
    normalized = normalize_email(email)
    if not normalized:
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"error": MISSING_EMAIL})

    try:
        plan = await asyncio.to_thread(_current_plan, session_factory, normalized)
    except SQLAlchemyError:
        logger.exception("get-plan failed for %s", normalized)
        return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content={"error": "Server error"})

    return JSONResponse(content={"email": normalized, "plan": plan})
